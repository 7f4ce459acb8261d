"""
Tests for frame sources in fuse_core.sources.
"""

import os
import tempfile
import threading
import unittest

import fake_raw  # noqa: F401

from fuse_core.coordinator import BurstCoordinator
from fuse_core.exceptions import FuseSourceError
from fuse_core.schema import FusionConfig, FusionResult, OutputArtifacts, OutputMode
from fuse_core.sources import DirectoryFrameSource, LiveFrameSource


class RecordingReceiver:
    def __init__(self):
        self._lock = threading.Lock()
        self.frames = []
        self.errors = []

    def submit_frame(self, data):
        with self._lock:
            self.frames.append(data)
        return False

    def report_capture_error(self, detail):
        with self._lock:
            self.errors.append(detail)


class TestDirectoryFrameSource(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.folder = self._tmp.name
        for name in ("b.dng", "a.DNG", "d.ORF", "notes.txt"):
            with open(os.path.join(self.folder, name), "wb") as handle:
                handle.write(name.encode())

    def tearDown(self):
        self._tmp.cleanup()

    def test_list_files_sorted_case_insensitive(self):
        files = DirectoryFrameSource(self.folder).list_files()
        self.assertEqual(
            [os.path.basename(path) for path in files], ["a.DNG", "b.dng", "d.ORF"]
        )

    def test_upper_case_names_do_not_sort_first(self):
        with tempfile.TemporaryDirectory() as folder:
            for name in ("C.dng", "b.dng", "A.dng"):
                with open(os.path.join(folder, name), "wb") as handle:
                    handle.write(name.encode())
            blobs = DirectoryFrameSource(folder).load_burst()
        self.assertEqual(blobs, [b"A.dng", b"b.dng", b"C.dng"])

    def test_custom_extensions(self):
        source = DirectoryFrameSource(self.folder, extensions=[".dng"])
        self.assertEqual(len(source.list_files()), 2)

    def test_capture_submits_first_count_in_order(self):
        receiver = RecordingReceiver()
        DirectoryFrameSource(self.folder).capture(2, receiver)
        self.assertEqual(receiver.frames, [b"a.DNG", b"b.dng"])
        self.assertEqual(receiver.errors, [])

    def test_load_burst_all(self):
        blobs = DirectoryFrameSource(self.folder).load_burst()
        self.assertEqual(blobs, [b"a.DNG", b"b.dng", b"d.ORF"])

    def test_not_enough_frames(self):
        receiver = RecordingReceiver()
        with self.assertRaises(FuseSourceError) as ctx:
            DirectoryFrameSource(self.folder).capture(6, receiver)
        self.assertEqual(ctx.exception.category, "not_enough_frames")
        self.assertEqual(receiver.frames, [])

    def test_missing_folder(self):
        with self.assertRaises(FuseSourceError) as ctx:
            DirectoryFrameSource(os.path.join(self.folder, "nope")).list_files()
        self.assertEqual(ctx.exception.category, "folder_not_found")

    def test_folder_without_raw_files(self):
        with tempfile.TemporaryDirectory() as empty:
            with self.assertRaises(FuseSourceError) as ctx:
                DirectoryFrameSource(empty).list_files()
        self.assertEqual(ctx.exception.category, "no_files_found")


class TestLiveFrameSource(unittest.TestCase):
    def test_all_frames_delivered(self):
        receiver = RecordingReceiver()
        source = LiveFrameSource(lambda i: f"frame-{i}".encode(), max_workers=3)
        source.capture(5, receiver)
        source.shutdown(wait=True)
        self.assertEqual(
            sorted(receiver.frames), sorted(f"frame-{i}".encode() for i in range(5))
        )

    def test_failed_capture_is_reported(self):
        def capture(index):
            if index == 1:
                raise OSError("shutter jammed")
            return b"ok"

        receiver = RecordingReceiver()
        source = LiveFrameSource(capture)
        source.capture(4, receiver)
        source.shutdown(wait=True)
        self.assertEqual(len(receiver.frames), 3)
        self.assertEqual(receiver.errors, ["OSError: shutter jammed"])

    def test_empty_payload_is_reported(self):
        receiver = RecordingReceiver()
        source = LiveFrameSource(lambda i: b"" if i == 0 else b"ok")
        source.capture(2, receiver)
        source.shutdown(wait=True)
        self.assertEqual(receiver.frames, [b"ok"])
        self.assertEqual(len(receiver.errors), 1)

    def test_from_config_uses_capture_workers(self):
        source = LiveFrameSource.from_config(
            lambda i: b"ok", FusionConfig(capture_workers=2)
        )
        self.addCleanup(source.shutdown)
        self.assertEqual(source._executor._max_workers, 2)

    def test_feeds_coordinator(self):
        class Pipeline:
            def run(self, raw_blobs, mode):
                return FusionResult.succeeded(
                    OutputArtifacts(b"jpeg"), frames_fused=len(raw_blobs)
                )

        source = LiveFrameSource(lambda i: bytes([65 + i]) * 8)
        with BurstCoordinator(Pipeline()) as coordinator:
            ticket = coordinator.begin_burst(6, OutputMode.ENCODED_ONLY)
            source.capture(6, coordinator)
            result = ticket.result(timeout=10.0)
        source.shutdown()
        self.assertEqual(result.frames_fused, 6)


if __name__ == "__main__":
    unittest.main()
