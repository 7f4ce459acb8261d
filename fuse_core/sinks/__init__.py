#!/usr/bin/env python
#
# OpenFuse - Sinks Package
# © 2025 Shinichi Morita (shin3tky)
#

"""
Artifact sinks for fused bursts.

Recommended usage::

    from fuse_core.sinks import FileArtifactSink, FileSinkConfig

    sink = FileArtifactSink(FileSinkConfig(output_folder="./fused"))
    paths = sink.save_artifacts(result.artifacts, stem="openfuse_burst")

Available sinks:
    - FileArtifactSink: writes ``.jpg`` / ``.dng`` files to a folder
    - FallbackArtifactSink: redirects a burst to a second sink on write failure

Status sinks are plain callables taking one string.
"""

from .base import ArtifactSink
from .file_sink import FallbackArtifactSink, FileArtifactSink, FileSinkConfig

__all__ = [
    "ArtifactSink",
    "FileArtifactSink",
    "FileSinkConfig",
    "FallbackArtifactSink",
]
