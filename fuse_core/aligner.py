#!/usr/bin/env python
#
# OpenFuse - Aligner
# © 2025 Shinichi Morita (shin3tky)
#

"""
Translation-only frame registration.

Frames are registered to the burst reference with phase correlation on
their luminance. Estimation never raises: when registration is not possible
the identity transform is returned with ``estimated=False``.
"""

import logging
import math
from typing import Tuple

import cv2
import numpy as np

from .schema import DEFAULT_MIN_ALIGNMENT_RESPONSE, IDENTITY, AlignmentTransform

# Module-level logger
logger = logging.getLogger(__name__)

# Luminance standard deviation below which an image has nothing to register.
_FLAT_STDDEV = 1e-6

# Extra correlation passes on the residual shift after the first estimate.
_REFINE_PASSES = 3
_REFINE_TOLERANCE = 0.01


def _luminance(image: np.ndarray) -> np.ndarray:
    """Single-channel float32 luminance of an RGB or grayscale image."""
    data = np.asarray(image, dtype=np.float32)
    if data.ndim == 2:
        return data
    if data.ndim == 3 and data.shape[2] == 1:
        return data[:, :, 0]
    return cv2.cvtColor(data, cv2.COLOR_RGB2GRAY)


class Aligner:
    """Estimate and apply translations between burst frames.

    Attributes:
        min_response: Minimum phase correlation peak response accepted as a
            valid registration.
    """

    def __init__(self, min_response: float = DEFAULT_MIN_ALIGNMENT_RESPONSE) -> None:
        self.min_response = min_response

    def estimate(self, moving: np.ndarray, reference: np.ndarray) -> AlignmentTransform:
        """Estimate the displacement of ``moving`` relative to ``reference``.

        A copy of ``reference`` shifted by (dx, dy) yields (dx, dy).

        Args:
            moving: Image to register.
            reference: Fixed reference image of the same size.

        Returns:
            The estimated transform, or ``AlignmentTransform.fallback()`` when
            registration failed.
        """
        if moving.shape[:2] != reference.shape[:2]:
            logger.warning(
                "Cannot align frames of different size: moving=%s, reference=%s",
                moving.shape,
                reference.shape,
            )
            return AlignmentTransform.fallback()

        try:
            ref_luma = _luminance(reference)
            moving_luma = _luminance(moving)

            if float(np.std(ref_luma)) < _FLAT_STDDEV:
                logger.debug("Reference frame is featureless; using identity")
                return IDENTITY

            window = cv2.createHanningWindow(
                (ref_luma.shape[1], ref_luma.shape[0]), cv2.CV_32F
            )
            (dx, dy), response = cv2.phaseCorrelate(ref_luma, moving_luma, window)
        except (cv2.error, ValueError) as exc:
            logger.warning(
                "Phase correlation failed: %s: %s", type(exc).__name__, exc
            )
            return AlignmentTransform.fallback()

        if not (math.isfinite(dx) and math.isfinite(dy) and math.isfinite(response)):
            logger.warning(
                "Phase correlation returned non-finite shift (%s, %s)", dx, dy
            )
            return AlignmentTransform.fallback()

        if response < self.min_response:
            logger.warning(
                "Phase correlation did not converge: response=%.4f < %.4f",
                response,
                self.min_response,
            )
            return AlignmentTransform.fallback()

        dx, dy = self._refine(ref_luma, moving_luma, window, dx, dy)

        logger.debug(
            "Estimated translation dx=%.3f, dy=%.3f (response=%.4f)",
            dx,
            dy,
            response,
        )
        return AlignmentTransform(float(dx), float(dy), response=float(response))

    def _refine(
        self,
        ref_luma: np.ndarray,
        moving_luma: np.ndarray,
        window: np.ndarray,
        dx: float,
        dy: float,
    ) -> Tuple[float, float]:
        """Re-correlate after undoing the current estimate and add the residual.

        The peak interpolation of ``cv2.phaseCorrelate`` underestimates
        fractional shifts; measuring the much smaller residual converges on
        the sub-pixel displacement.
        """
        for _ in range(_REFINE_PASSES):
            try:
                warped = self.apply(moving_luma, AlignmentTransform(dx, dy))
                (rx, ry), _response = cv2.phaseCorrelate(ref_luma, warped, window)
            except cv2.error as exc:
                logger.debug("Keeping coarse shift, refinement failed: %s", exc)
                break
            if not (math.isfinite(rx) and math.isfinite(ry)):
                break
            dx += rx
            dy += ry
            if abs(rx) < _REFINE_TOLERANCE and abs(ry) < _REFINE_TOLERANCE:
                break
        return float(dx), float(dy)

    def apply(self, image: np.ndarray, transform: AlignmentTransform) -> np.ndarray:
        """Resample ``image`` onto the reference grid by undoing its displacement.

        Args:
            image: Image to shift.
            transform: Displacement previously estimated for this image.

        Returns:
            The shifted image (the input itself for an identity transform).
        """
        if transform.is_identity:
            return image

        height, width = image.shape[:2]
        matrix = np.float32([[1, 0, -transform.dx], [0, 1, -transform.dy]])
        return cv2.warpAffine(
            image,
            matrix,
            (width, height),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_REPLICATE,
        )
