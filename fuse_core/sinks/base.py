#!/usr/bin/env python
#
# OpenFuse - Artifact Sink Base Class
# © 2025 Shinichi Morita (shin3tky)
#

"""
Abstract base class for artifact sinks.

An artifact sink persists the outputs of a fusion run (the encoded image and,
optionally, the representative raw frame) and reports where they went.
"""

from abc import ABC, abstractmethod
from typing import List

from ..schema import MEDIA_TYPE_DNG, MEDIA_TYPE_JPEG, OutputArtifacts


class ArtifactSink(ABC):
    """Abstract base class for artifact sinks.

    Subclasses must define:
        - save: Persist one artifact and return its location

    Example:
        >>> class MemorySink(ArtifactSink):
        ...     def __init__(self):
        ...         self.saved = {}
        ...
        ...     def save(self, data, media_type, *, stem):
        ...         self.saved[stem + media_type] = data
        ...         return stem
    """

    @abstractmethod
    def save(self, data: bytes, media_type: str, *, stem: str) -> str:
        """Persist one artifact.

        Args:
            data: Artifact bytes.
            media_type: ``MEDIA_TYPE_JPEG`` or ``MEDIA_TYPE_DNG``.
            stem: Base name shared by all artifacts of one burst.

        Returns:
            Location of the saved artifact (for example a file path).

        Raises:
            FuseWriteError: If the artifact could not be saved.
        """

    def save_artifacts(self, artifacts: OutputArtifacts, *, stem: str) -> List[str]:
        """Save the encoded image, then the raw frame when present.

        Returns:
            Locations of the saved artifacts, encoded image first.
        """
        locations = [self.save(artifacts.encoded_image, MEDIA_TYPE_JPEG, stem=stem)]
        if artifacts.raw_frame is not None:
            locations.append(self.save(artifacts.raw_frame, MEDIA_TYPE_DNG, stem=stem))
        return locations
