#!/usr/bin/env python
#
# OpenFuse - Frame Source Base Class
# © 2025 Shinichi Morita (shin3tky)
#

"""Abstract base class for frame sources."""

from abc import ABC, abstractmethod
from typing import Protocol


class FrameReceiver(Protocol):
    """Destination of captured frames (normally ``BurstCoordinator``)."""

    def submit_frame(self, data: bytes) -> bool:
        ...

    def report_capture_error(self, detail: str) -> None:
        ...


class FrameSource(ABC):
    """Produces the raw frames of one burst.

    Subclasses must define:
        - capture(count, receiver): deliver ``count`` frames to ``receiver``,
          one ``submit_frame`` per frame, and report individual frame
          failures through ``report_capture_error``.

    Sources may deliver frames from any thread and in any order.
    """

    @abstractmethod
    def capture(self, count: int, receiver: FrameReceiver) -> None:
        """Start capturing ``count`` frames into ``receiver``.

        Raises:
            FuseSourceError: If the source cannot supply the burst at all.
        """

    def shutdown(self, wait: bool = True) -> None:
        """Release resources held by the source."""
