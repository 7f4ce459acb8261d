#!/usr/bin/env python
#
# OpenFuse - Controller Integration Tests
# © 2025 Shinichi Morita (shin3tky)
#

"""
End-to-end tests: directory source → coordinator → pipeline → file sink,
with status lines as the observable contract.
"""

import os
import tempfile
import threading
import unittest
from datetime import datetime, timezone

import cv2
import numpy as np

from fake_raw import GARBAGE, gray_raw, patch_rawpy

from fuse_core.controller import FusionController, artifact_stem, build_pipeline
from fuse_core.encoder import linear_to_srgb
from fuse_core.exceptions import (
    FuseBurstStateError,
    FuseSourceError,
    FuseValidationError,
)
from fuse_core.schema import FusionConfig
from fuse_core.sinks import FileArtifactSink, FileSinkConfig
from fuse_core.sources import DirectoryFrameSource, FrameSource
from fuse_core.tone import ToneMapper

TIMEOUT = 30.0


class IdleSource(FrameSource):
    """Source that never delivers, leaving the burst collecting."""

    def capture(self, count, receiver):
        pass


class ControllerTestBase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.source_folder = os.path.join(self._tmp.name, "TestDNGs")
        self.output_folder = os.path.join(self._tmp.name, "output")
        os.makedirs(self.source_folder)
        self.statuses = []
        self._status_lock = threading.Lock()

        patcher = patch_rawpy()
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self._tmp.cleanup()

    def record_status(self, message):
        with self._status_lock:
            self.statuses.append(message)

    def write_frames(self, blobs):
        for index, blob in enumerate(blobs):
            path = os.path.join(self.source_folder, f"burst_{index:02d}.dng")
            with open(path, "wb") as handle:
                handle.write(blob)

    def make_controller(self, **kwargs):
        controller = FusionController(
            kwargs.pop("source", DirectoryFrameSource(self.source_folder)),
            kwargs.pop(
                "sink", FileArtifactSink(FileSinkConfig(output_folder=self.output_folder))
            ),
            self.record_status,
            **kwargs,
        )
        self.addCleanup(controller.shutdown)
        return controller

    def output_files(self):
        if not os.path.isdir(self.output_folder):
            return []
        return sorted(os.listdir(self.output_folder))


class TestEndToEnd(ControllerTestBase):
    def test_six_gray_frames_encoded_only(self):
        self.write_frames([gray_raw(26214) for _ in range(6)])
        controller = self.make_controller()

        ticket = controller.start_burst(6, "encoded-only")
        result = ticket.result(timeout=TIMEOUT)

        self.assertTrue(result.ok)
        self.assertEqual(
            self.statuses, ["capturing burst of size 6", "saved encoded-only"]
        )
        files = self.output_files()
        self.assertEqual(len(files), 1)
        self.assertTrue(files[0].endswith(".jpg"))
        self.assertEqual(
            controller.saved_paths(ticket.session_id),
            [os.path.join(self.output_folder, files[0])],
        )

        decoded = cv2.imread(os.path.join(self.output_folder, files[0]))
        expected = float(
            linear_to_srgb(ToneMapper().apply(np.full((1, 1, 3), 0.4, np.float32)))[0, 0, 0]
        ) * 255.0
        self.assertLess(float(decoded.std()), 1.0)
        self.assertAlmostEqual(float(decoded.mean()), expected, delta=2.0)

    def test_encoded_plus_raw_saves_middle_frame(self):
        blobs = [gray_raw(20000 + 100 * i) for i in range(6)]
        self.write_frames(blobs)
        controller = self.make_controller()

        result = controller.start_burst(6, "encoded-plus-raw").result(timeout=TIMEOUT)

        self.assertTrue(result.ok)
        self.assertEqual(self.statuses[-1], "saved encoded-plus-raw")
        files = self.output_files()
        self.assertEqual([os.path.splitext(f)[1] for f in files], [".dng", ".jpg"])
        with open(os.path.join(self.output_folder, files[0]), "rb") as handle:
            self.assertEqual(handle.read(), blobs[3])

    def test_config_defaults_drive_burst(self):
        self.write_frames([gray_raw() for _ in range(3)])
        config = FusionConfig(burst_count=3, output_mode="encoded-plus-raw")
        controller = self.make_controller(config=config)
        result = controller.start_burst().result(timeout=TIMEOUT)
        self.assertTrue(result.ok)
        self.assertEqual(
            self.statuses, ["capturing burst of size 3", "saved encoded-plus-raw"]
        )


class TestDegradation(ControllerTestBase):
    def test_dropped_frame_is_reported(self):
        blobs = [gray_raw() for _ in range(6)]
        blobs[2] = GARBAGE
        self.write_frames(blobs)
        controller = self.make_controller()

        result = controller.start_burst(6, "encoded-only").result(timeout=TIMEOUT)

        self.assertTrue(result.ok)
        self.assertEqual(result.frames_fused, 5)
        self.assertEqual(self.statuses[0], "capturing burst of size 6")
        self.assertTrue(self.statuses[1].startswith("skipped frame 2: "))
        self.assertEqual(self.statuses[2], "saved encoded-only")

    def test_no_decodable_frames(self):
        self.write_frames([GARBAGE] * 6)
        controller = self.make_controller()

        result = controller.start_burst(6, "encoded-plus-raw").result(timeout=TIMEOUT)

        self.assertFalse(result.ok)
        self.assertEqual(self.statuses[-1], "process error: no decodable frames")
        self.assertEqual(
            sum(s.startswith("skipped frame") for s in self.statuses), 6
        )
        self.assertEqual(self.output_files(), [])

    def test_unwritable_output(self):
        self.write_frames([gray_raw() for _ in range(2)])
        blocker = os.path.join(self._tmp.name, "blocker")
        with open(blocker, "wb") as handle:
            handle.write(b"")
        sink = FileArtifactSink(FileSinkConfig(os.path.join(blocker, "out")))
        controller = self.make_controller(sink=sink)

        ticket = controller.start_burst(2, "encoded-only")
        result = ticket.result(timeout=TIMEOUT)

        self.assertTrue(result.ok)
        self.assertEqual(
            self.statuses[-1], "process error: Failed to create output directory"
        )
        self.assertEqual(controller.saved_paths(ticket.session_id), [])


class TestRequestSurfaceErrors(ControllerTestBase):
    def test_source_failure_abandons_burst(self):
        self.write_frames([gray_raw() for _ in range(2)])
        controller = self.make_controller()

        with self.assertRaises(FuseSourceError):
            controller.start_burst(6, "encoded-only")

        self.assertEqual(self.statuses[0], "capturing burst of size 6")
        self.assertTrue(self.statuses[1].startswith("capture error: "))
        self.assertFalse(controller.coordinator.is_collecting)

    def test_overlapping_burst_is_rejected(self):
        controller = self.make_controller(source=IdleSource())
        first = controller.start_burst(3, "encoded-only")

        with self.assertRaises(FuseBurstStateError):
            controller.start_burst(3, "encoded-only")

        self.assertEqual(self.statuses[0], "capturing burst of size 3")
        self.assertEqual(len(self.statuses), 2)
        self.assertTrue(self.statuses[-1].startswith("process error: "))
        self.assertFalse(first.done())
        self.assertTrue(controller.coordinator.is_collecting)

    def test_invalid_request_reports_no_capture(self):
        controller = self.make_controller(source=IdleSource())
        for count, mode in [(0, "encoded-only"), (2, "thumbnail")]:
            with self.subTest(count=count, mode=mode):
                with self.assertRaises(FuseValidationError):
                    controller.start_burst(count, mode)
        self.assertEqual(self.statuses, [])
        self.assertFalse(controller.coordinator.is_collecting)

    def test_dispatch_marshals_status_delivery(self):
        self.write_frames([gray_raw() for _ in range(2)])
        pending = []
        controller = self.make_controller(dispatch=pending.append)

        controller.start_burst(2, "encoded-only").result(timeout=TIMEOUT)
        self.assertEqual(self.statuses, [])
        self.assertEqual(self.output_files(), [])

        for callback in pending:
            callback()
        self.assertEqual(
            self.statuses, ["capturing burst of size 2", "saved encoded-only"]
        )
        self.assertEqual(len(self.output_files()), 1)


class TestHelpers(unittest.TestCase):
    def test_artifact_stem(self):
        when = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        self.assertEqual(artifact_stem(7, when), "openfuse_20250102T030405Z_7")

    def test_build_pipeline_uses_config(self):
        config = FusionConfig(
            jpeg_quality=0.5,
            shadow_amount=0.4,
            min_alignment_response=0.2,
            encoder_backend="pillow",
            decode_workers=2,
        )
        pipeline = build_pipeline(config)
        self.assertEqual(pipeline.quality, 0.5)
        self.assertEqual(pipeline.tone_mapper.shadow_amount, 0.4)
        self.assertEqual(pipeline.aligner.min_response, 0.2)
        self.assertEqual(pipeline.encoder.backend, "pillow")
        self.assertEqual(pipeline.decode_workers, 2)


if __name__ == "__main__":
    unittest.main()
