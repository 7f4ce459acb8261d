#!/usr/bin/env python
#
# OpenFuse - File Artifact Sink
# © 2025 Shinichi Morita (shin3tky)
#

"""
File-based artifact sinks.

``FileArtifactSink`` writes artifacts into a folder. ``FallbackArtifactSink``
redirects a burst's artifacts to a second sink when the primary one cannot
be written, so no artifact of a successful run is lost.
"""

import logging
import os
from dataclasses import dataclass
from typing import List

from .base import ArtifactSink
from ..exceptions import FuseWriteError
from ..schema import DEFAULT_OUTPUT_FOLDER, MEDIA_TYPE_EXTENSIONS, OutputArtifacts

# Module-level logger
logger = logging.getLogger(__name__)


@dataclass
class FileSinkConfig:
    """Configuration for FileArtifactSink.

    Attributes:
        output_folder: Directory for saved artifacts.
        overwrite: Whether to overwrite existing files.
    """

    #: Directory for saved artifacts
    output_folder: str = DEFAULT_OUTPUT_FOLDER

    #: Whether to overwrite existing files
    overwrite: bool = False


class FileArtifactSink(ArtifactSink):
    """Write artifacts as ``<stem>.jpg`` / ``<stem>.dng`` files.

    The output folder is created on first use. When a file of the same name
    exists and overwriting is disabled, a numeric suffix is appended
    (``<stem>_1.jpg``, ``<stem>_2.jpg``, ...).

    Example:
        >>> sink = FileArtifactSink(FileSinkConfig(output_folder="./fused"))
        >>> sink.save(jpeg_bytes, MEDIA_TYPE_JPEG, stem="openfuse_20250101T000000Z_1")
        './fused/openfuse_20250101T000000Z_1.jpg'
    """

    def __init__(self, config: FileSinkConfig) -> None:
        self.config = config
        logger.debug(
            "FileArtifactSink initializing: output_folder=%s, overwrite=%s",
            config.output_folder,
            config.overwrite,
        )

    def save(self, data: bytes, media_type: str, *, stem: str) -> str:
        extension = MEDIA_TYPE_EXTENSIONS.get(media_type)
        if extension is None:
            raise FuseWriteError(
                f"No file extension known for media type {media_type}",
                operation="write",
                context={"error_category": "unsupported_media_type"},
            )

        self._ensure_folder()
        output_path = self._target_path(stem, extension)

        try:
            with open(output_path, "wb") as f:
                f.write(data)
        except OSError as exc:
            logger.error(
                "Failed to write artifact %s: %s: %s",
                output_path,
                type(exc).__name__,
                exc,
                extra={"error_category": "write_failed"},
            )
            raise FuseWriteError(
                f"Failed to write artifact to {output_path}",
                original_error=exc,
                destination_path=output_path,
                operation="write",
                context={"error_category": "write_failed", "media_type": media_type},
            ) from exc

        logger.info("Saved %s (%d bytes) to %s", media_type, len(data), output_path)
        return output_path

    def _ensure_folder(self) -> None:
        folder = self.config.output_folder
        try:
            os.makedirs(folder, exist_ok=True)
        except OSError as exc:
            logger.error(
                "Failed to create output directory %s: %s: %s",
                folder,
                type(exc).__name__,
                exc,
                extra={"error_category": "directory_creation_failed"},
            )
            raise FuseWriteError(
                "Failed to create output directory",
                original_error=exc,
                destination_path=folder,
                operation="mkdir",
                context={"error_category": "directory_creation_failed"},
            ) from exc

    def _target_path(self, stem: str, extension: str) -> str:
        output_path = os.path.join(self.config.output_folder, stem + extension)
        if self.config.overwrite:
            return output_path

        suffix = 1
        while os.path.exists(output_path):
            output_path = os.path.join(
                self.config.output_folder, f"{stem}_{suffix}{extension}"
            )
            suffix += 1
        return output_path


class FallbackArtifactSink(ArtifactSink):
    """Save through ``primary``; on a write failure save through ``fallback``.

    ``save_artifacts`` keeps the artifacts of one burst together: if any of
    them fails on the primary sink, all of them are written to the fallback.
    If the fallback fails as well, its error propagates.
    """

    def __init__(self, primary: ArtifactSink, fallback: ArtifactSink) -> None:
        self.primary = primary
        self.fallback = fallback

    def save(self, data: bytes, media_type: str, *, stem: str) -> str:
        try:
            return self.primary.save(data, media_type, stem=stem)
        except FuseWriteError as exc:
            logger.warning("Primary sink failed, using fallback: %s", exc)
            return self.fallback.save(data, media_type, stem=stem)

    def save_artifacts(self, artifacts: OutputArtifacts, *, stem: str) -> List[str]:
        try:
            return self.primary.save_artifacts(artifacts, stem=stem)
        except FuseWriteError as exc:
            logger.warning("Primary sink failed, saving burst to fallback: %s", exc)
            return self.fallback.save_artifacts(artifacts, stem=stem)
