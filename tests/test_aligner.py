#!/usr/bin/env python
#
# OpenFuse - Aligner Tests
# © 2025 Shinichi Morita (shin3tky)
#

"""
Unit tests for phase correlation registration.
"""

import unittest
from unittest.mock import patch

import cv2
import numpy as np

from fake_raw import textured_image

from fuse_core.aligner import Aligner
from fuse_core.schema import AlignmentTransform

# Largest registration error accepted for fractional shifts, in pixels.
SUBPIXEL_TOLERANCE = 0.25


def _shift(image, dx, dy):
    """Move image content by (dx, dy) pixels with wrap-around."""
    return np.roll(image, shift=(dy, dx), axis=(0, 1))


class TestAlignerEstimate(unittest.TestCase):
    def setUp(self):
        self.aligner = Aligner()
        self.reference = textured_image((64, 64), seed=1)

    def test_identical_frames_give_zero_shift(self):
        transform = self.aligner.estimate(self.reference.copy(), self.reference)
        self.assertTrue(transform.estimated)
        self.assertAlmostEqual(transform.dx, 0.0, delta=0.1)
        self.assertAlmostEqual(transform.dy, 0.0, delta=0.1)

    def test_recovers_integer_translation(self):
        for dx, dy in [(3, 2), (-4, 1), (0, -5)]:
            with self.subTest(dx=dx, dy=dy):
                moving = _shift(self.reference, dx, dy)
                transform = self.aligner.estimate(moving, self.reference)
                self.assertTrue(transform.estimated)
                self.assertAlmostEqual(transform.dx, dx, delta=0.5)
                self.assertAlmostEqual(transform.dy, dy, delta=0.5)

    def test_recovers_subpixel_translation(self):
        reference = textured_image((96, 96), seed=3)
        height, width = reference.shape[:2]
        for dx, dy in [(2.5, -1.25), (-0.75, 0.5), (1.3, 3.6)]:
            with self.subTest(dx=dx, dy=dy):
                matrix = np.float32([[1, 0, dx], [0, 1, dy]])
                moving = cv2.warpAffine(
                    reference,
                    matrix,
                    (width, height),
                    flags=cv2.INTER_CUBIC,
                    borderMode=cv2.BORDER_REFLECT,
                )
                transform = self.aligner.estimate(moving, reference)
                self.assertTrue(transform.estimated)
                self.assertAlmostEqual(transform.dx, dx, delta=SUBPIXEL_TOLERANCE)
                self.assertAlmostEqual(transform.dy, dy, delta=SUBPIXEL_TOLERANCE)

    def test_flat_reference_is_identity(self):
        flat = np.full((32, 32, 3), 0.4, dtype=np.float32)
        transform = self.aligner.estimate(flat.copy(), flat)
        self.assertTrue(transform.is_identity)
        self.assertTrue(transform.estimated)

    def test_size_mismatch_falls_back(self):
        transform = self.aligner.estimate(
            textured_image((32, 32)), textured_image((64, 64))
        )
        self.assertEqual(transform, AlignmentTransform.fallback())

    def test_opencv_failure_falls_back(self):
        moving = _shift(self.reference, 2, 2)
        with patch(
            "fuse_core.aligner.cv2.phaseCorrelate", side_effect=cv2.error("failed")
        ):
            transform = self.aligner.estimate(moving, self.reference)
        self.assertFalse(transform.estimated)
        self.assertTrue(transform.is_identity)

    def test_low_response_falls_back(self):
        aligner = Aligner(min_response=0.5)
        with patch(
            "fuse_core.aligner.cv2.phaseCorrelate", return_value=((1.0, 2.0), 0.01)
        ):
            transform = aligner.estimate(self.reference.copy(), self.reference)
        self.assertFalse(transform.estimated)

    def test_non_finite_shift_falls_back(self):
        with patch(
            "fuse_core.aligner.cv2.phaseCorrelate",
            return_value=((float("nan"), 0.0), 0.9),
        ):
            transform = self.aligner.estimate(self.reference.copy(), self.reference)
        self.assertFalse(transform.estimated)


class TestAlignerApply(unittest.TestCase):
    def setUp(self):
        self.aligner = Aligner()
        self.reference = textured_image((64, 64), seed=2)

    def test_identity_returns_input(self):
        self.assertIs(self.aligner.apply(self.reference, AlignmentTransform()), self.reference)

    def test_apply_undoes_displacement(self):
        moving = _shift(self.reference, 3, 2)
        aligned = self.aligner.apply(moving, AlignmentTransform(3.0, 2.0))
        self.assertEqual(aligned.shape, self.reference.shape)
        np.testing.assert_allclose(
            aligned[5:-5, 5:-5], self.reference[5:-5, 5:-5], atol=1e-5
        )

    def test_estimate_then_apply_registers_frame(self):
        moving = _shift(self.reference, -2, 4)
        transform = self.aligner.estimate(moving, self.reference)
        aligned = self.aligner.apply(moving, transform)
        error = np.abs(aligned[8:-8, 8:-8] - self.reference[8:-8, 8:-8]).mean()
        self.assertLess(error, 0.02)


if __name__ == "__main__":
    unittest.main()
