#!/usr/bin/env python
#
# OpenFuse - Live Frame Source
# © 2025 Shinichi Morita (shin3tky)
#

"""
Frame source backed by a capture callable.

Each frame of a burst is captured on a worker thread and delivered in
completion order, which models a device that hands back photos
asynchronously and not necessarily in request order.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from .base import FrameReceiver, FrameSource
from ..schema import DEFAULT_CAPTURE_WORKERS, FusionConfig

# Module-level logger
logger = logging.getLogger(__name__)

CaptureFunction = Callable[[int], bytes]


class LiveFrameSource(FrameSource):
    """Capture frames by calling ``capture_frame(index)`` on a thread pool.

    Args:
        capture_frame: Returns the raw container bytes of frame ``index``.
            May raise to signal a failed capture.
        max_workers: Number of concurrent captures.

    Example:
        >>> source = LiveFrameSource(camera.capture_dng)
        >>> source.capture(6, coordinator)
    """

    def __init__(
        self,
        capture_frame: CaptureFunction,
        *,
        max_workers: int = DEFAULT_CAPTURE_WORKERS,
    ) -> None:
        self.capture_frame = capture_frame
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(max_workers)),
            thread_name_prefix="openfuse-capture",
        )

    @classmethod
    def from_config(
        cls, capture_frame: CaptureFunction, config: FusionConfig
    ) -> "LiveFrameSource":
        return cls(capture_frame, max_workers=config.capture_workers)

    def capture(self, count: int, receiver: FrameReceiver) -> None:
        """Schedule ``count`` captures and return immediately."""
        logger.debug("Scheduling %d captures", count)
        for index in range(count):
            future = self._executor.submit(self.capture_frame, index)
            future.add_done_callback(
                lambda f, i=index: self._deliver(f, i, receiver)
            )

    @staticmethod
    def _deliver(future: Future, index: int, receiver: FrameReceiver) -> None:
        error = future.exception()
        if error is not None:
            logger.warning("Capture of frame %d failed: %s", index, error)
            receiver.report_capture_error(f"{type(error).__name__}: {error}")
            return

        data = future.result()
        if not data:
            logger.warning("Capture of frame %d returned no data", index)
            receiver.report_capture_error(f"frame {index} returned no data")
            return

        receiver.submit_frame(data)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
