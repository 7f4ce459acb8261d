#!/usr/bin/env python
#
# OpenFuse - Frame Decoder
# © 2025 Shinichi Morita (shin3tky)
#

"""
Raw frame decoding.

Develops one raw container blob into a linear-light float32 RGB image with
fixed, neutral LibRaw parameters: no exposure boost, full resolution, no
noise reduction and no sharpening.
"""

import io
import logging
from typing import Any, Dict, Optional

import numpy as np
import rawpy

from .exceptions import FuseDecodeError, FuseUnsupportedFormatError

# Module-level logger
logger = logging.getLogger(__name__)


def neutral_decode_params() -> Dict[str, Any]:
    """Return the fixed LibRaw postprocess parameters used for every frame.

    Returns:
        Keyword arguments for ``rawpy.RawPy.postprocess``.
    """
    return {
        # Linear light, no automatic exposure boost
        "gamma": (1, 1),
        "no_auto_bright": True,
        "bright": 1.0,
        # Scale factor 1.0
        "half_size": False,
        # No chroma/luma noise reduction and no sharpening
        "fbdd_noise_reduction": rawpy.FBDDNoiseReductionMode.Off,
        "noise_thr": None,
        "median_filter_passes": 0,
        # Neutral colour defaults
        "use_camera_wb": True,
        "output_color": rawpy.ColorSpace.sRGB,
        "output_bps": 16,
    }


class FrameDecoder:
    """Decode raw container blobs into linear float32 RGB images.

    Example:
        >>> decoder = FrameDecoder()
        >>> image = decoder.decode(dng_bytes)
        >>> image.dtype, image.shape[2]
        (dtype('float32'), 3)
    """

    def __init__(self, decode_params: Optional[Dict[str, Any]] = None) -> None:
        self.decode_params = dict(decode_params or neutral_decode_params())

    def decode(self, raw: bytes) -> np.ndarray:
        """Decode one raw blob.

        Args:
            raw: Raw container bytes (DNG or any LibRaw-supported format).

        Returns:
            Linear-light image, float32, shape (H, W, 3), values in [0, 1].

        Raises:
            FuseUnsupportedFormatError: If LibRaw does not recognise the container.
            FuseDecodeError: For empty input, corrupted data, I/O failures,
                unsupported sensor patterns and any other decode failure.
        """
        if not raw:
            raise FuseDecodeError(
                "Raw frame is empty",
                context={"error_category": "empty_input"},
            )

        logger.debug("Decoding raw frame: %d bytes", len(raw))

        try:
            with rawpy.imread(io.BytesIO(raw)) as raw_image:
                rgb = raw_image.postprocess(**self.decode_params)

        except rawpy.LibRawFileUnsupportedError as e:
            logger.warning(
                "Unsupported raw container: %s",
                e,
                extra={"error_category": "unsupported_format"},
            )
            raise FuseUnsupportedFormatError(
                "Unsupported raw container",
                original_error=e,
            ) from e

        except rawpy.LibRawIOError as e:
            logger.warning(
                "I/O error reading raw frame: %s",
                e,
                extra={"error_category": "io_error"},
            )
            raise FuseDecodeError(
                "I/O error while reading raw frame",
                original_error=e,
                context={"error_category": "io_error"},
            ) from e

        except rawpy.LibRawDataError as e:
            logger.warning(
                "Data corruption in raw frame: %s",
                e,
                extra={"error_category": "data_corruption"},
            )
            raise FuseDecodeError(
                "Raw frame data is corrupted or invalid",
                original_error=e,
                context={"error_category": "data_corruption"},
            ) from e

        except rawpy.LibRawError as e:
            logger.warning(
                "LibRaw error decoding raw frame: %s",
                e,
                extra={"error_category": "libraw_error"},
            )
            raise FuseDecodeError(
                "Failed to decode raw frame",
                original_error=e,
                context={"error_category": "libraw_error"},
            ) from e

        except MemoryError as e:
            logger.error(
                "Out of memory while decoding raw frame",
                extra={"error_category": "memory_error"},
            )
            raise FuseDecodeError(
                "Out of memory while decoding raw frame",
                original_error=e,
                context={"error_category": "memory_error"},
            ) from e

        except Exception as e:
            logger.error(
                "Unexpected error decoding raw frame: %s: %s",
                type(e).__name__,
                e,
                extra={"error_category": "unexpected"},
                exc_info=True,
            )
            raise FuseDecodeError(
                f"Unexpected error decoding raw frame: {type(e).__name__}",
                original_error=e,
                context={"error_category": "unexpected"},
            ) from e

        rgb = np.asarray(rgb)
        if rgb.ndim != 3 or rgb.shape[2] != 3 or rgb.size == 0:
            logger.warning(
                "Decoded frame has unsupported layout: shape=%s",
                rgb.shape,
                extra={"error_category": "unsupported_pattern"},
            )
            raise FuseDecodeError(
                "Unsupported sensor pattern: decoded frame is not a 3-channel image",
                context={
                    "error_category": "unsupported_pattern",
                    "shape": tuple(rgb.shape),
                },
            )

        if np.issubdtype(rgb.dtype, np.integer):
            scale = float(np.iinfo(rgb.dtype).max)
            image = rgb.astype(np.float32) / scale
        else:
            image = rgb.astype(np.float32, copy=False)

        logger.debug(
            "Decoded raw frame: shape=%s, dtype=%s", image.shape, image.dtype
        )
        return image
