#!/usr/bin/env python
#
# OpenFuse - Tone Mapper
# © 2025 Shinichi Morita (shin3tky)
#

"""
Fixed shadow-lift tone curve applied to the fused image.
"""

import logging

import cv2
import numpy as np

from .schema import DEFAULT_SHADOW_AMOUNT, DEFAULT_SHADOW_PIVOT

# Module-level logger
logger = logging.getLogger(__name__)


class ToneMapper:
    """Brighten low-luminance regions without touching highlights.

    Each pixel is scaled by ``1 + shadow_amount * w`` where
    ``w = clip(1 - Y / pivot, 0, 1) ** 2`` and Y is the pixel luminance.
    Pixels at or above ``pivot`` are unchanged.

    Attributes:
        shadow_amount: Strength of the shadow lift.
        pivot: Luminance above which the curve is the identity.
    """

    def __init__(
        self,
        shadow_amount: float = DEFAULT_SHADOW_AMOUNT,
        pivot: float = DEFAULT_SHADOW_PIVOT,
    ) -> None:
        self.shadow_amount = shadow_amount
        self.pivot = pivot

    def apply(self, image: np.ndarray) -> np.ndarray:
        """Apply the curve; pass the image through if it cannot be evaluated."""
        try:
            return self._shadow_lift(image)
        except (cv2.error, ValueError) as exc:
            logger.warning(
                "Tone curve unavailable for image of shape %s, passing through: %s",
                np.shape(image),
                exc,
            )
            return image

    def _shadow_lift(self, image: np.ndarray) -> np.ndarray:
        if self.shadow_amount == 0.0:
            return image

        data = np.asarray(image, dtype=np.float32)
        luma = cv2.cvtColor(data, cv2.COLOR_RGB2GRAY)
        weight = np.clip(1.0 - luma / self.pivot, 0.0, 1.0) ** 2
        gain = 1.0 + self.shadow_amount * weight
        return data * gain[:, :, np.newaxis]
