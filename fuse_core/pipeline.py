#!/usr/bin/env python
#
# OpenFuse - Pipeline
# © 2025 Shinichi Morita (shin3tky)
#

"""
Fusion pipeline orchestration.

Runs one burst through decode, align, merge, tone-map and encode as a
linear state machine with a single terminal failure state. Per-frame
decode and alignment problems degrade the result; anything else fails
the whole run and is reported as one ``FusionResult``.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .aligner import Aligner
from .decoder import FrameDecoder
from .encoder import Encoder, select_representative_raw
from .exceptions import FuseDecodeError, FuseError, FuseNoFramesError, FusePipelineError
from .merger import Merger
from .schema import (
    DEFAULT_DECODE_WORKERS,
    DEFAULT_JPEG_QUALITY,
    FrameDecodeStatus,
    FrameNotice,
    FusionResult,
    OutputArtifacts,
    OutputMode,
    PipelineState,
)
from .tone import ToneMapper

# Module-level logger
logger = logging.getLogger(__name__)

_DecodeOutcome = Tuple[Optional[np.ndarray], Optional[FuseDecodeError]]


class FusionPipeline:
    """Deterministic decode → align → merge → tone-map → encode chain.

    Attributes:
        decoder: Raw frame decoder.
        aligner: Translation estimator and resampler.
        merger: Frame averager.
        tone_mapper: Fixed tone curve.
        encoder: Lossy encoder.
        quality: Encode quality in (0, 1].
        decode_workers: Threads used to decode frames of one burst.

    Example:
        >>> pipeline = FusionPipeline()
        >>> result = pipeline.run(blobs, OutputMode.ENCODED_PLUS_RAW)
        >>> result.ok, result.frames_fused
        (True, 6)
    """

    def __init__(
        self,
        decoder: Optional[FrameDecoder] = None,
        aligner: Optional[Aligner] = None,
        merger: Optional[Merger] = None,
        tone_mapper: Optional[ToneMapper] = None,
        encoder: Optional[Encoder] = None,
        *,
        quality: float = DEFAULT_JPEG_QUALITY,
        decode_workers: int = DEFAULT_DECODE_WORKERS,
    ) -> None:
        self.decoder = decoder or FrameDecoder()
        self.aligner = aligner or Aligner()
        self.merger = merger or Merger()
        self.tone_mapper = tone_mapper or ToneMapper()
        self.encoder = encoder or Encoder()
        self.quality = quality
        self.decode_workers = max(1, int(decode_workers))

    def run(
        self, raw_blobs: Sequence[bytes], mode: Union[OutputMode, str]
    ) -> FusionResult:
        """Fuse one burst.

        Args:
            raw_blobs: Raw frames in arrival order.
            mode: Which artifacts to produce.

        Returns:
            ``FusionResult`` with artifacts on success, or with the error and
            its category on failure. Never raises.
        """
        run = _PipelineRun(len(raw_blobs))
        try:
            mode = OutputMode.parse(mode)
            artifacts = self._run_stages(run, list(raw_blobs), mode)
        except FuseError as e:
            run.transition(PipelineState.FAILED)
            logger.error(
                "Fusion failed: %s",
                e,
                extra={"error_category": e.category or "unexpected"},
            )
            return FusionResult.failed(e, **run.result_fields())
        except ValueError as e:
            run.transition(PipelineState.FAILED)
            error = FusePipelineError(
                str(e),
                original_error=e,
                context={"error_category": "invalid_input"},
            )
            logger.error(
                "Fusion failed: %s", e, extra={"error_category": "invalid_input"}
            )
            return FusionResult.failed(error, **run.result_fields())
        except Exception as e:
            run.transition(PipelineState.FAILED)
            logger.error(
                "Unexpected error during fusion: %s: %s",
                type(e).__name__,
                e,
                extra={"error_category": "unexpected"},
                exc_info=True,
            )
            error = FusePipelineError(
                f"Unexpected error during fusion: {type(e).__name__}",
                stage=run.state.value,
                original_error=e,
                context={"error_category": "unexpected"},
            )
            return FusionResult.failed(error, "unexpected", **run.result_fields())

        run.transition(PipelineState.DONE)
        return FusionResult.succeeded(artifacts, **run.result_fields())

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _run_stages(
        self, run: "_PipelineRun", raw_blobs: List[bytes], mode: OutputMode
    ) -> OutputArtifacts:
        run.transition(PipelineState.DECODING)
        decoded = self._decode_all(run, raw_blobs)
        if not decoded:
            raise FuseNoFramesError(
                context={
                    "error_category": "no_decodable_frames",
                    "frame_count": len(raw_blobs),
                }
            )

        run.transition(PipelineState.ALIGNING)
        aligned = self._align_all(run, decoded)

        run.transition(PipelineState.MERGING)
        fused = self.merger.average(aligned)
        run.frames_fused = len(aligned)

        run.transition(PipelineState.TONE_MAPPING)
        toned = self.tone_mapper.apply(fused)

        run.transition(PipelineState.ENCODING)
        encoded = self.encoder.encode(toned, self.quality)
        raw_frame = select_representative_raw(raw_blobs) if mode.includes_raw else None

        logger.info(
            "Fused %d of %d frames (%s)",
            run.frames_fused,
            len(raw_blobs),
            mode.label,
        )
        return OutputArtifacts(encoded_image=encoded, raw_frame=raw_frame)

    def _decode_one(self, blob: bytes) -> _DecodeOutcome:
        try:
            return self.decoder.decode(blob), None
        except FuseDecodeError as e:
            return None, e

    def _decode_all(
        self, run: "_PipelineRun", raw_blobs: List[bytes]
    ) -> List[Tuple[int, np.ndarray]]:
        """Decode every frame, preserving arrival order."""
        if self.decode_workers > 1 and len(raw_blobs) > 1:
            with ThreadPoolExecutor(max_workers=self.decode_workers) as executor:
                outcomes = list(executor.map(self._decode_one, raw_blobs))
        else:
            outcomes = [self._decode_one(blob) for blob in raw_blobs]

        decoded: List[Tuple[int, np.ndarray]] = []
        for index, (image, error) in enumerate(outcomes):
            if error is not None:
                run.frame_status[index] = FrameDecodeStatus.DECODE_FAILED
                run.notices.append(FrameNotice(index, "decode", str(error)))
                logger.warning(
                    "Dropping frame %d: %s",
                    index,
                    error,
                    extra={"error_category": error.category or "decode_failed"},
                )
                continue
            run.frame_status[index] = FrameDecodeStatus.DECODED
            decoded.append((index, image))

        logger.debug("Decoded %d of %d frames", len(decoded), len(raw_blobs))
        return decoded

    def _align_all(
        self, run: "_PipelineRun", decoded: List[Tuple[int, np.ndarray]]
    ) -> List[np.ndarray]:
        """Register every survivor to the first one."""
        _, reference = decoded[0]
        aligned = [reference]
        for index, image in decoded[1:]:
            transform = self.aligner.estimate(image, reference)
            if not transform.estimated:
                run.notices.append(
                    FrameNotice(index, "align", "registration failed, using identity")
                )
            aligned.append(self.aligner.apply(image, transform))
        return aligned


class _PipelineRun:
    """Mutable bookkeeping for a single run."""

    def __init__(self, frame_count: int) -> None:
        self.state = PipelineState.IDLE
        self.state_history: List[PipelineState] = [PipelineState.IDLE]
        self.frame_status = [FrameDecodeStatus.UNDECODED] * frame_count
        self.notices: List[FrameNotice] = []
        self.frames_fused = 0

    def transition(self, state: PipelineState) -> None:
        logger.debug("Pipeline state: %s -> %s", self.state.value, state.value)
        self.state = state
        self.state_history.append(state)

    def result_fields(self) -> dict:
        return {
            "notices": list(self.notices),
            "frame_status": list(self.frame_status),
            "frames_fused": self.frames_fused,
            "state_history": list(self.state_history),
        }
