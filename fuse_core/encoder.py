#!/usr/bin/env python
#
# OpenFuse - Encoder
# © 2025 Shinichi Morita (shin3tky)
#

"""
Lossy encoding of the fused image and representative raw selection.
"""

import io
import logging
from typing import Sequence

import cv2
import numpy as np

from .exceptions import FuseEncodeError, FuseValidationError
from .schema import DEFAULT_ENCODER_BACKEND, ENCODER_BACKENDS

# Module-level logger
logger = logging.getLogger(__name__)

try:
    from PIL import Image

    PILLOW_AVAILABLE = True
except ImportError:
    PILLOW_AVAILABLE = False


def linear_to_srgb(image: np.ndarray) -> np.ndarray:
    """Apply the sRGB transfer function to linear values (clipped to [0, 1])."""
    linear = np.clip(np.asarray(image, dtype=np.float32), 0.0, 1.0)
    return np.where(
        linear <= 0.0031308,
        linear * 12.92,
        1.055 * np.power(linear, 1.0 / 2.4) - 0.055,
    ).astype(np.float32)


def to_display_uint8(image: np.ndarray) -> np.ndarray:
    """Render a linear float image to 8-bit sRGB."""
    return np.round(linear_to_srgb(image) * 255.0).astype(np.uint8)


def select_representative_raw(raw_blobs: Sequence[bytes]) -> bytes:
    """Return the middle raw blob (index ``len // 2``) verbatim.

    Raises:
        FuseValidationError: If ``raw_blobs`` is empty.
    """
    if not raw_blobs:
        raise FuseValidationError(
            "No raw frames to choose from",
            parameter_name="raw_blobs",
            expected="at least one raw frame",
        )
    return raw_blobs[len(raw_blobs) // 2]


class Encoder:
    """Encode fused images to JPEG.

    Attributes:
        backend: "opencv" (cv2.imencode) or "pillow" (PIL.Image.save).
    """

    def __init__(self, backend: str = DEFAULT_ENCODER_BACKEND) -> None:
        self.backend = backend

    def encode(self, image: np.ndarray, quality: float) -> bytes:
        """Encode a linear-light image to JPEG bytes.

        Args:
            image: Linear float image, shape (H, W, 3) or (H, W).
            quality: Lossy quality in (0, 1].

        Returns:
            JPEG byte stream.

        Raises:
            FuseValidationError: If quality is outside (0, 1].
            FuseEncodeError: If the image is invalid, the backend is
                unavailable, or encoding fails.
        """
        if not 0.0 < quality <= 1.0:
            raise FuseValidationError(
                "Invalid encode quality",
                parameter_name="quality",
                provided_value=quality,
                expected="float in (0, 1]",
            )
        self._validate_image(image)

        pixels = to_display_uint8(image)
        jpeg_quality = max(1, int(round(quality * 100)))
        logger.debug(
            "Encoding %s image with backend=%s, quality=%d",
            pixels.shape,
            self.backend,
            jpeg_quality,
        )

        if self.backend == "opencv":
            data = self._encode_opencv(pixels, jpeg_quality)
        elif self.backend == "pillow":
            data = self._encode_pillow(pixels, jpeg_quality)
        else:
            raise FuseEncodeError(
                f"Unknown encoder backend: {self.backend}",
                context={
                    "error_category": "backend_unavailable",
                    "supported_backends": ", ".join(ENCODER_BACKENDS),
                },
            )

        logger.info("Encoded fused image: %d bytes", len(data))
        return data

    select_representative_raw = staticmethod(select_representative_raw)

    @staticmethod
    def _validate_image(image: np.ndarray) -> None:
        data = np.asarray(image) if image is not None else None
        if data is None or data.size == 0:
            raise FuseEncodeError(
                "Image buffer is empty",
                context={"error_category": "invalid_image"},
            )
        if data.ndim not in (2, 3) or (data.ndim == 3 and data.shape[2] != 3):
            raise FuseEncodeError(
                "Image buffer has unsupported shape",
                context={"error_category": "invalid_image", "shape": data.shape},
            )
        if not np.issubdtype(data.dtype, np.number) or not np.all(np.isfinite(data)):
            raise FuseEncodeError(
                "Image buffer contains non-finite values",
                context={"error_category": "invalid_image"},
            )

    @staticmethod
    def _encode_opencv(pixels: np.ndarray, jpeg_quality: int) -> bytes:
        if pixels.ndim == 3:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR)
        try:
            ok, buffer = cv2.imencode(
                ".jpg", pixels, [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality]
            )
        except cv2.error as exc:
            raise FuseEncodeError(
                "OpenCV failed to encode JPEG",
                original_error=exc,
            ) from exc
        if not ok:
            raise FuseEncodeError("OpenCV failed to encode JPEG")
        return buffer.tobytes()

    @staticmethod
    def _encode_pillow(pixels: np.ndarray, jpeg_quality: int) -> bytes:
        if not PILLOW_AVAILABLE:
            raise FuseEncodeError(
                "Pillow encoder backend is not installed",
                context={"error_category": "backend_unavailable"},
            )
        output = io.BytesIO()
        try:
            Image.fromarray(pixels).save(output, format="JPEG", quality=jpeg_quality)
        except (OSError, ValueError) as exc:
            raise FuseEncodeError(
                "Pillow failed to encode JPEG",
                original_error=exc,
            ) from exc
        return output.getvalue()
