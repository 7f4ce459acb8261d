#!/usr/bin/env python
#
# OpenFuse - Core Package
# © 2025 Shinichi Morita (shin3tky)
#

"""
Burst fusion core library.

This package fuses a burst of raw sensor frames into one noise-reduced image:
- schema: Data structures, constants and configuration
- coordinator: Burst collection and exactly-once dispatch
- decoder / aligner / merger / tone / encoder: Fusion stages
- pipeline: Stage orchestration
- sources / sinks: Frame delivery and artifact persistence
- controller: Request surface tying the pieces together

Logging:
    This library uses Python's standard logging module. By default, a NullHandler
    is attached to prevent "No handler found" warnings. To see log output, configure
    logging in your application:

    Example:
        >>> import logging
        >>> logging.basicConfig(level=logging.DEBUG)

    Or attach a handler to the 'fuse_core' logger:

        >>> import logging
        >>> logger = logging.getLogger('fuse_core')
        >>> logger.addHandler(logging.StreamHandler())
        >>> logger.setLevel(logging.DEBUG)
"""

import logging

# Configure library-level logger with NullHandler to prevent
# "No handler found" warnings when the library is used without
# explicit logging configuration.
_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())

from .schema import (
    VERSION,
    DEFAULT_BURST_COUNT,
    DEFAULT_JPEG_QUALITY,
    DEFAULT_SHADOW_AMOUNT,
    DEFAULT_SOURCE_FOLDER,
    DEFAULT_OUTPUT_FOLDER,
    ENCODER_BACKENDS,
    MEDIA_TYPE_JPEG,
    MEDIA_TYPE_DNG,
    RAW_EXTENSIONS,
    OutputMode,
    SessionState,
    FrameDecodeStatus,
    PipelineState,
    RawFrame,
    AlignmentTransform,
    IDENTITY,
    OutputArtifacts,
    FrameNotice,
    FusionResult,
    FusionConfig,
)

from .exceptions import (
    DiagnosticInfo,
    FuseError,
    FuseValidationError,
    FuseConfigError,
    FuseDecodeError,
    FuseUnsupportedFormatError,
    FusePipelineError,
    FuseNoFramesError,
    FuseMergeError,
    FuseEncodeError,
    FuseBurstStateError,
    FuseSourceError,
    FuseWriteError,
    format_error_for_user,
)

from .i18n import get_message
from .config_io import SUPPORTED_CONFIG_EXTENSIONS, load_fusion_config

from .decoder import FrameDecoder, neutral_decode_params
from .aligner import Aligner
from .merger import Merger
from .tone import ToneMapper
from .encoder import Encoder, linear_to_srgb, select_representative_raw
from .pipeline import FusionPipeline
from .coordinator import BurstCoordinator, BurstSession, BurstTicket

from .sources import DirectoryFrameSource, FrameSource, LiveFrameSource
from .sinks import (
    ArtifactSink,
    FallbackArtifactSink,
    FileArtifactSink,
    FileSinkConfig,
)
from .controller import FusionController, artifact_stem, build_pipeline

__version__ = VERSION

__all__ = [
    # Version
    "VERSION",
    "__version__",
    # Constants
    "DEFAULT_BURST_COUNT",
    "DEFAULT_JPEG_QUALITY",
    "DEFAULT_SHADOW_AMOUNT",
    "DEFAULT_SOURCE_FOLDER",
    "DEFAULT_OUTPUT_FOLDER",
    "ENCODER_BACKENDS",
    "MEDIA_TYPE_JPEG",
    "MEDIA_TYPE_DNG",
    "RAW_EXTENSIONS",
    # Types
    "OutputMode",
    "SessionState",
    "FrameDecodeStatus",
    "PipelineState",
    "RawFrame",
    "AlignmentTransform",
    "IDENTITY",
    "OutputArtifacts",
    "FrameNotice",
    "FusionResult",
    "FusionConfig",
    # Exceptions
    "DiagnosticInfo",
    "FuseError",
    "FuseValidationError",
    "FuseConfigError",
    "FuseDecodeError",
    "FuseUnsupportedFormatError",
    "FusePipelineError",
    "FuseNoFramesError",
    "FuseMergeError",
    "FuseEncodeError",
    "FuseBurstStateError",
    "FuseSourceError",
    "FuseWriteError",
    "format_error_for_user",
    # Messages and configuration
    "get_message",
    "SUPPORTED_CONFIG_EXTENSIONS",
    "load_fusion_config",
    # Stages
    "FrameDecoder",
    "neutral_decode_params",
    "Aligner",
    "Merger",
    "ToneMapper",
    "Encoder",
    "linear_to_srgb",
    "select_representative_raw",
    "FusionPipeline",
    # Coordination
    "BurstCoordinator",
    "BurstSession",
    "BurstTicket",
    # Sources and sinks
    "FrameSource",
    "LiveFrameSource",
    "DirectoryFrameSource",
    "ArtifactSink",
    "FileArtifactSink",
    "FileSinkConfig",
    "FallbackArtifactSink",
    # Request surface
    "FusionController",
    "artifact_stem",
    "build_pipeline",
]
