#!/usr/bin/env python
#
# OpenFuse - Burst Coordinator
# © 2025 Shinichi Morita (shin3tky)
#

"""
Burst synchronization.

Frames of one burst arrive one at a time from arbitrary threads. The
coordinator collects them under a single lock and, when the last expected
frame arrives, hands the complete list to the fusion pipeline exactly once.
Image work always runs on the coordinator's executor, never on the thread
that delivered the frame.
"""

import itertools
import logging
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Protocol, Sequence, Union

from .exceptions import FuseBurstStateError, FusePipelineError, FuseValidationError
from .i18n import get_message
from .schema import (
    FusionResult,
    OutputMode,
    RawFrame,
    SessionState,
)

# Module-level logger
logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


class FusionRunner(Protocol):
    """Anything that can fuse a burst (normally ``FusionPipeline``)."""

    def run(
        self, raw_blobs: Sequence[bytes], mode: Union[OutputMode, str]
    ) -> FusionResult:
        ...


@dataclass
class BurstSession:
    """One burst being collected.

    Attributes:
        session_id: Monotonic identifier of the burst.
        expected_count: Number of frames that complete the burst.
        mode: Requested output mode.
        collected: Frames received so far, in arrival order.
        state: Current lifecycle state.
    """

    session_id: int
    expected_count: int
    mode: OutputMode
    collected: List[RawFrame] = field(default_factory=list)
    state: SessionState = SessionState.COLLECTING


class BurstTicket:
    """Handle on the eventual result of one burst."""

    def __init__(self, session_id: int, expected_count: int, mode: OutputMode) -> None:
        self.session_id = session_id
        self.expected_count = expected_count
        self.mode = mode
        self._done = threading.Event()
        self._result: Optional[FusionResult] = None

    def done(self) -> bool:
        return self._done.is_set()

    def result(self, timeout: Optional[float] = None) -> FusionResult:
        """Block until the burst has been fused.

        Raises:
            TimeoutError: If the result is not available within ``timeout``.
        """
        if not self._done.wait(timeout):
            raise TimeoutError(
                f"Burst {self.session_id} did not complete within {timeout}s"
            )
        return self._result

    def _resolve(self, result: FusionResult) -> None:
        self._result = result
        self._done.set()

    def __repr__(self) -> str:
        return (
            f"BurstTicket(session_id={self.session_id}, "
            f"expected_count={self.expected_count}, mode={self.mode.label}, "
            f"done={self.done()})"
        )


class BurstCoordinator:
    """Collect burst frames and dispatch complete bursts to the pipeline.

    Args:
        pipeline: Object with ``run(raw_blobs, mode) -> FusionResult``.
        on_result: Called as ``on_result(ticket, result)`` on the worker after
            every run.
        status: Status sink receiving human-readable status strings.
        executor: Executor for pipeline runs. When omitted the coordinator
            owns a single-worker thread pool, which serializes runs.

    Example:
        >>> coordinator = BurstCoordinator(FusionPipeline())
        >>> ticket = coordinator.begin_burst(6, OutputMode.ENCODED_ONLY)
        >>> for blob in blobs:
        ...     coordinator.submit_frame(blob)
        >>> ticket.result().ok
        True
    """

    def __init__(
        self,
        pipeline: FusionRunner,
        *,
        on_result: Optional[Callable[[BurstTicket, FusionResult], None]] = None,
        status: Optional[StatusCallback] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.pipeline = pipeline
        self.on_result = on_result
        self.status = status
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="openfuse-pipeline"
        )

        self._lock = threading.Lock()
        self._session: Optional[BurstSession] = None
        self._ticket: Optional[BurstTicket] = None
        self._session_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------
    def begin_burst(
        self, expected_count: int, mode: Union[OutputMode, str]
    ) -> BurstTicket:
        """Open a new collecting session.

        Raises:
            FuseValidationError: If ``expected_count`` is less than 1 or the
                mode is unknown.
            FuseBurstStateError: If a burst is already collecting. The partial
                burst is left untouched.
        """
        if not isinstance(expected_count, int) or expected_count < 1:
            raise FuseValidationError(
                "Invalid burst size",
                parameter_name="expected_count",
                provided_value=expected_count,
                expected="integer >= 1",
            )
        try:
            output_mode = OutputMode.parse(mode)
        except ValueError as e:
            raise FuseValidationError(
                "Invalid output mode",
                original_error=e,
                parameter_name="mode",
                provided_value=mode,
                expected="encoded-only or encoded-plus-raw",
            ) from e

        with self._lock:
            if self._session is not None:
                current = self._session
                raise FuseBurstStateError(
                    "A burst is already being collected",
                    context={
                        "session_id": current.session_id,
                        "collected": len(current.collected),
                        "expected_count": current.expected_count,
                    },
                )
            session_id = next(self._session_ids)
            self._session = BurstSession(session_id, expected_count, output_mode)
            ticket = BurstTicket(session_id, expected_count, output_mode)
            self._ticket = ticket

        logger.info(
            "Burst %d started: expecting %d frames (%s)",
            session_id,
            expected_count,
            output_mode.label,
        )
        return ticket

    def submit_frame(self, data: bytes) -> bool:
        """Append one frame to the collecting burst.

        Safe to call from any thread.

        Returns:
            True if this frame completed the burst and it was dispatched,
            False otherwise (burst incomplete, or no burst collecting).

        Raises:
            FuseValidationError: If ``data`` is empty.
        """
        if not data:
            raise FuseValidationError(
                "Frame payload is empty",
                parameter_name="data",
                expected="non-empty raw container bytes",
            )

        with self._lock:
            session = self._session
            ticket = self._ticket
            if session is not None:
                session.collected.append(
                    RawFrame(bytes(data), len(session.collected), time.monotonic())
                )
                count = len(session.collected)
                complete = count == session.expected_count
                if complete:
                    # Take ownership; a new burst may begin from here on
                    session.state = SessionState.READY
                    self._session = None
                    self._ticket = None

        if session is None or ticket is None:
            logger.warning("Dropping frame received with no active burst")
            return False
        if not complete:
            logger.debug(
                "Burst %d: %d of %d frames",
                session.session_id,
                count,
                session.expected_count,
            )
            return False

        self._dispatch(session, ticket)
        return True

    def report_capture_error(self, detail: str) -> None:
        """Report a frame that failed to capture; progress is unaffected."""
        logger.warning(
            "Capture error: %s", detail, extra={"error_category": "capture_error"}
        )
        self._emit(get_message("status.capture_error", detail=detail))

    def abandon_burst(self) -> int:
        """Discard the collecting burst, if any.

        Its ticket resolves to a failed result with category ``abandoned``.

        Returns:
            Number of frames that were discarded.
        """
        with self._lock:
            session = self._session
            ticket = self._ticket
            self._session = None
            self._ticket = None
        if session is None:
            return 0
        logger.info(
            "Burst %d abandoned with %d of %d frames",
            session.session_id,
            len(session.collected),
            session.expected_count,
        )
        if ticket is not None:
            ticket._resolve(
                FusionResult.failed(
                    FuseBurstStateError(
                        "Burst abandoned",
                        context={
                            "error_category": "abandoned",
                            "session_id": session.session_id,
                            "collected": len(session.collected),
                        },
                    )
                )
            )
        return len(session.collected)

    @property
    def active_session(self) -> Optional[BurstSession]:
        """Snapshot of the collecting session, or None."""
        with self._lock:
            if self._session is None:
                return None
            return replace(self._session, collected=list(self._session.collected))

    @property
    def is_collecting(self) -> bool:
        with self._lock:
            return self._session is not None

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def _dispatch(self, session: BurstSession, ticket: BurstTicket) -> None:
        session.state = SessionState.DRAINING
        blobs = [frame.data for frame in session.collected]
        logger.info(
            "Burst %d complete: dispatching %d frames",
            session.session_id,
            len(blobs),
        )
        try:
            self._executor.submit(self._drain, ticket, blobs, session.mode)
        except RuntimeError as e:
            logger.error(
                "Cannot dispatch burst %d: %s",
                session.session_id,
                e,
                extra={"error_category": "dispatch_failed"},
            )
            ticket._resolve(
                FusionResult.failed(
                    FusePipelineError(
                        "Pipeline executor is not accepting work",
                        original_error=e,
                        context={"error_category": "dispatch_failed"},
                    )
                )
            )

    def _drain(
        self, ticket: BurstTicket, blobs: List[bytes], mode: OutputMode
    ) -> None:
        try:
            result = self.pipeline.run(blobs, mode)
        except Exception as e:
            logger.error(
                "Pipeline raised for burst %d: %s: %s",
                ticket.session_id,
                type(e).__name__,
                e,
                extra={"error_category": "unexpected"},
                exc_info=True,
            )
            result = FusionResult.failed(
                FusePipelineError(
                    f"Unexpected error during fusion: {type(e).__name__}",
                    original_error=e,
                    context={"error_category": "unexpected"},
                ),
                "unexpected",
            )

        if self.on_result is not None:
            try:
                self.on_result(ticket, result)
            except Exception as e:
                logger.error(
                    "Result callback failed for burst %d: %s: %s",
                    ticket.session_id,
                    type(e).__name__,
                    e,
                    extra={"error_category": "callback_failed"},
                    exc_info=True,
                )

        ticket._resolve(result)

    def _emit(self, message: str) -> None:
        if self.status is not None:
            self.status(message)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def shutdown(self, wait: bool = True) -> None:
        """Shut down the executor if the coordinator owns it."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def __enter__(self) -> "BurstCoordinator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
