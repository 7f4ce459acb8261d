#!/usr/bin/env python
#
# OpenFuse - Merger
# © 2025 Shinichi Morita (shin3tky)
#

"""
Multi-frame averaging in linear light.
"""

import logging
from typing import Sequence

import numpy as np

from .exceptions import FuseMergeError

# Module-level logger
logger = logging.getLogger(__name__)


class Merger:
    """Average aligned frames with a single running accumulator."""

    def average(self, images: Sequence[np.ndarray]) -> np.ndarray:
        """Compute the per-pixel, per-channel arithmetic mean.

        The mean is accumulated as ``acc += image * (1/N)`` in float64, so
        memory stays at one accumulator regardless of N and values are never
        clipped.

        Args:
            images: One or more images of identical shape.

        Returns:
            The mean image as float32.

        Raises:
            FuseMergeError: If no images are given or their shapes differ.
        """
        count = len(images)
        if count == 0:
            raise FuseMergeError(
                "No frames to merge",
                context={"error_category": "merge_failed", "frame_count": 0},
            )

        shape = np.shape(images[0])
        scale = 1.0 / count
        accumulator = np.zeros(shape, dtype=np.float64)

        for index, image in enumerate(images):
            if np.shape(image) != shape:
                logger.error(
                    "Frame %d has shape %s, expected %s",
                    index,
                    np.shape(image),
                    shape,
                    extra={"error_category": "merge_failed"},
                )
                raise FuseMergeError(
                    "Frame dimensions do not match",
                    context={
                        "error_category": "merge_failed",
                        "frame_index": index,
                        "expected_shape": tuple(shape),
                        "actual_shape": tuple(np.shape(image)),
                    },
                )
            accumulator += np.asarray(image, dtype=np.float64) * scale

        logger.debug("Merged %d frames of shape %s", count, shape)
        return accumulator.astype(np.float32)
