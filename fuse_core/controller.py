#!/usr/bin/env python
#
# OpenFuse - Fusion Controller
# © 2025 Shinichi Morita (shin3tky)
#

"""
Request surface for burst fusion.

``FusionController.start_burst(count, mode)`` is the single entry point: it
opens a burst on the coordinator, starts the frame source, and when the
pipeline finishes delivers the artifacts to the artifact sink and one status
line per outcome to the status sink.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Union

from .aligner import Aligner
from .coordinator import BurstCoordinator, BurstTicket, FusionRunner
from .decoder import FrameDecoder
from .encoder import Encoder
from .exceptions import FuseBurstStateError, FuseSourceError, FuseWriteError
from .i18n import get_message
from .merger import Merger
from .pipeline import FusionPipeline
from .schema import DEFAULT_FILE_PREFIX, FusionConfig, FusionResult, OutputMode
from .sinks import ArtifactSink
from .sources import FrameSource
from .tone import ToneMapper

# Module-level logger
logger = logging.getLogger(__name__)

StatusSink = Callable[[str], None]
Dispatch = Callable[[Callable[[], None]], None]

_NOTICE_MESSAGE_KEYS = {
    "decode": "status.frame_dropped",
    "align": "status.alignment_fallback",
}


def build_pipeline(config: FusionConfig) -> FusionPipeline:
    """Create the fusion pipeline described by ``config``."""
    return FusionPipeline(
        decoder=FrameDecoder(),
        aligner=Aligner(min_response=config.min_alignment_response),
        merger=Merger(),
        tone_mapper=ToneMapper(shadow_amount=config.shadow_amount),
        encoder=Encoder(backend=config.encoder_backend),
        quality=config.jpeg_quality,
        decode_workers=config.decode_workers,
    )


def artifact_stem(session_id: int, when: Optional[datetime] = None) -> str:
    """Base file name for the artifacts of one burst."""
    when = when or datetime.now(timezone.utc)
    return f"{DEFAULT_FILE_PREFIX}_{when.strftime('%Y%m%dT%H%M%SZ')}_{session_id}"


def _run_immediately(callback: Callable[[], None]) -> None:
    callback()


class FusionController:
    """Drive one burst at a time from a frame source to an artifact sink.

    Args:
        frame_source: Supplies the raw frames of each burst.
        artifact_sink: Persists the artifacts of successful runs.
        status_sink: Receives human-readable status strings.
        config: Fusion settings; defaults to ``FusionConfig()``.
        pipeline: Pipeline override (built from ``config`` when omitted).
        executor: Executor for pipeline runs (see ``BurstCoordinator``).
        dispatch: Runs status and artifact delivery in the context the sinks
            require, e.g. a UI thread. Defaults to running them in place on
            the pipeline worker.

    Example:
        >>> controller = FusionController(
        ...     DirectoryFrameSource("TestDNGs"),
        ...     FileArtifactSink(FileSinkConfig("output")),
        ...     print,
        ... )
        >>> controller.start_burst(6, "encoded-only").result().ok
        True
    """

    def __init__(
        self,
        frame_source: FrameSource,
        artifact_sink: ArtifactSink,
        status_sink: Optional[StatusSink] = None,
        *,
        config: Optional[FusionConfig] = None,
        pipeline: Optional[FusionRunner] = None,
        executor=None,
        dispatch: Optional[Dispatch] = None,
    ) -> None:
        self.config = config or FusionConfig()
        self.frame_source = frame_source
        self.artifact_sink = artifact_sink
        self.status_sink = status_sink
        self.dispatch = dispatch or _run_immediately
        self.pipeline = pipeline or build_pipeline(self.config)
        self.coordinator = BurstCoordinator(
            self.pipeline,
            on_result=self._on_result,
            status=self._emit,
            executor=executor,
        )
        self._saved_lock = threading.Lock()
        self._saved: Dict[int, List[str]] = {}

    def start_burst(
        self,
        count: Optional[int] = None,
        mode: Union[OutputMode, str, None] = None,
    ) -> BurstTicket:
        """Capture and fuse one burst.

        Args:
            count: Burst size; defaults to ``config.burst_count``.
            mode: Output mode; defaults to ``config.output_mode``.

        Returns:
            Ticket resolving to the run's ``FusionResult``.

        Raises:
            FuseValidationError: If ``count`` or ``mode`` is invalid.
            FuseBurstStateError: If another burst is still collecting.
            FuseSourceError: If the frame source cannot supply the burst.
        """
        count = self.config.burst_count if count is None else count
        mode = self.config.output_mode if mode is None else mode

        try:
            ticket = self.coordinator.begin_burst(count, mode)
        except FuseBurstStateError as e:
            self._emit(self._message("status.process_error", detail=e.message))
            raise
        self._emit(self._message("status.capturing", count=count))

        try:
            self.frame_source.capture(count, self.coordinator)
        except FuseSourceError as e:
            discarded = self.coordinator.abandon_burst()
            logger.error(
                "Frame source failed for burst %d (%d frames discarded): %s",
                ticket.session_id,
                discarded,
                e,
                extra={"error_category": e.category or "source_failed"},
            )
            self._emit(self._message("status.capture_error", detail=e.message))
            raise

        return ticket

    def saved_paths(self, session_id: int) -> List[str]:
        """Locations of the artifacts saved for a burst (empty if none)."""
        with self._saved_lock:
            return list(self._saved.get(session_id, []))

    # ------------------------------------------------------------------
    # Result delivery
    # ------------------------------------------------------------------
    def _on_result(self, ticket: BurstTicket, result: FusionResult) -> None:
        self.dispatch(lambda: self._deliver(ticket, result))

    def _deliver(self, ticket: BurstTicket, result: FusionResult) -> None:
        for notice in result.notices:
            key = _NOTICE_MESSAGE_KEYS.get(notice.stage, "status.frame_dropped")
            self._send(self._message(key, index=notice.arrival_index, detail=notice.detail))

        if not result.ok:
            detail = result.error.message if result.error else result.failure_category
            self._send(self._message("status.process_error", detail=detail))
            return

        stem = artifact_stem(ticket.session_id)
        try:
            paths = self.artifact_sink.save_artifacts(result.artifacts, stem=stem)
        except FuseWriteError as e:
            logger.error(
                "Failed to save artifacts of burst %d: %s",
                ticket.session_id,
                e,
                extra={"error_category": e.category or "write_failed"},
            )
            self._send(self._message("status.process_error", detail=e.message))
            return

        with self._saved_lock:
            self._saved[ticket.session_id] = list(paths)
        self._send(self._message("status.saved", mode=ticket.mode.label))

    def _message(self, key: str, **params) -> str:
        return get_message(key, locale=self.config.locale, **params)

    def _emit(self, message: str) -> None:
        """Send a status line through ``dispatch``."""
        self.dispatch(lambda: self._send(message))

    def _send(self, message: str) -> None:
        logger.debug("Status: %s", message)
        if self.status_sink is not None:
            self.status_sink(message)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def shutdown(self, wait: bool = True) -> None:
        self.coordinator.shutdown(wait=wait)
        self.frame_source.shutdown(wait=wait)

    def __enter__(self) -> "FusionController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
