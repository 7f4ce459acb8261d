#!/usr/bin/env python
#
# OpenFuse - Directory Frame Source
# © 2025 Shinichi Morita (shin3tky)
#

"""
Frame source reading a burst from raw files in a folder.

Used in place of a camera: the files are delivered in file name order,
synchronously, on the calling thread.
"""

import logging
import os
from typing import List, Optional, Sequence

from .base import FrameReceiver, FrameSource
from ..exceptions import FuseSourceError
from ..schema import RAW_EXTENSIONS

# Module-level logger
logger = logging.getLogger(__name__)


class DirectoryFrameSource(FrameSource):
    """Deliver the raw files of a folder as a burst.

    Attributes:
        folder: Folder holding the raw files.
        extensions: Accepted file extensions, compared case-insensitively.

    Example:
        >>> source = DirectoryFrameSource("TestDNGs")
        >>> source.list_files()
        ['TestDNGs/burst_01.dng', 'TestDNGs/burst_02.dng', ...]
    """

    def __init__(
        self, folder: str, *, extensions: Sequence[str] = RAW_EXTENSIONS
    ) -> None:
        self.folder = folder
        self.extensions = {ext.lower() for ext in extensions}

    def list_files(self) -> List[str]:
        """Return matching files sorted by file name, ignoring case.

        Raises:
            FuseSourceError: If the folder does not exist or holds no raw files.
        """
        if not os.path.isdir(self.folder):
            logger.error("Source folder not found: %s", self.folder)
            raise FuseSourceError(
                "Source folder not found",
                filepath=self.folder,
                context={"error_category": "folder_not_found"},
            )

        names = sorted(
            (
                name
                for name in os.listdir(self.folder)
                if os.path.splitext(name)[1].lower() in self.extensions
                and os.path.isfile(os.path.join(self.folder, name))
            ),
            key=lambda name: (name.lower(), name),
        )
        if not names:
            logger.warning("No raw files found in directory: %s", self.folder)
            raise FuseSourceError(
                "No raw files found in source folder",
                filepath=self.folder,
                context={
                    "error_category": "no_files_found",
                    "supported_formats": ", ".join(sorted(self.extensions)),
                },
            )

        logger.info("Found %d raw files in %s", len(names), self.folder)
        return [os.path.join(self.folder, name) for name in names]

    def load_burst(self, count: Optional[int] = None) -> List[bytes]:
        """Read the first ``count`` files (all files when None).

        Raises:
            FuseSourceError: If the folder holds fewer than ``count`` raw
                files or a file cannot be read.
        """
        files = self.list_files()
        if count is not None:
            if count > len(files):
                raise FuseSourceError(
                    f"Source folder holds {len(files)} raw files, {count} requested",
                    filepath=self.folder,
                    context={
                        "error_category": "not_enough_frames",
                        "available": len(files),
                        "requested": count,
                    },
                )
            files = files[:count]

        blobs: List[bytes] = []
        for path in files:
            try:
                with open(path, "rb") as f:
                    blobs.append(f.read())
            except OSError as exc:
                logger.error(
                    "Failed to read raw file %s: %s: %s",
                    path,
                    type(exc).__name__,
                    exc,
                    extra={"error_category": "read_failed"},
                )
                raise FuseSourceError(
                    "Failed to read raw file",
                    filepath=path,
                    original_error=exc,
                    context={"error_category": "read_failed"},
                ) from exc
        return blobs

    def capture(self, count: int, receiver: FrameReceiver) -> None:
        """Submit the first ``count`` files in name order.

        Every file is read before the first one is submitted, so a failure
        leaves the receiver untouched.
        """
        blobs = self.load_burst(count)
        for blob in blobs:
            receiver.submit_frame(blob)
