#!/usr/bin/env python
#
# OpenFuse - Artifact Sink Tests
# © 2025 Shinichi Morita (shin3tky)
#

"""
Unit tests for file and fallback artifact sinks.
"""

import os
import tempfile
import unittest
from unittest.mock import patch

import fake_raw  # noqa: F401

from fuse_core.exceptions import FuseWriteError
from fuse_core.schema import MEDIA_TYPE_DNG, MEDIA_TYPE_JPEG, OutputArtifacts
from fuse_core.sinks import FallbackArtifactSink, FileArtifactSink, FileSinkConfig


def _read(path):
    with open(path, "rb") as handle:
        return handle.read()


class TestFileArtifactSink(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = self._tmp.name
        self.folder = os.path.join(self.root, "nested", "out")
        self.sink = FileArtifactSink(FileSinkConfig(output_folder=self.folder))

    def tearDown(self):
        self._tmp.cleanup()

    def test_save_creates_folder(self):
        path = self.sink.save(b"jpeg", MEDIA_TYPE_JPEG, stem="burst")
        self.assertEqual(path, os.path.join(self.folder, "burst.jpg"))
        self.assertEqual(_read(path), b"jpeg")

    def test_existing_file_is_not_overwritten(self):
        first = self.sink.save(b"one", MEDIA_TYPE_JPEG, stem="burst")
        second = self.sink.save(b"two", MEDIA_TYPE_JPEG, stem="burst")
        third = self.sink.save(b"three", MEDIA_TYPE_JPEG, stem="burst")
        self.assertEqual(os.path.basename(second), "burst_1.jpg")
        self.assertEqual(os.path.basename(third), "burst_2.jpg")
        self.assertEqual(_read(first), b"one")

    def test_overwrite_enabled(self):
        sink = FileArtifactSink(FileSinkConfig(output_folder=self.folder, overwrite=True))
        first = sink.save(b"one", MEDIA_TYPE_DNG, stem="burst")
        second = sink.save(b"two", MEDIA_TYPE_DNG, stem="burst")
        self.assertEqual(first, second)
        self.assertTrue(first.endswith(".dng"))
        self.assertEqual(_read(first), b"two")

    def test_save_artifacts_order(self):
        paths = self.sink.save_artifacts(
            OutputArtifacts(b"jpeg", raw_frame=b"dng"), stem="burst"
        )
        self.assertEqual([os.path.basename(p) for p in paths], ["burst.jpg", "burst.dng"])
        self.assertEqual(_read(paths[1]), b"dng")

    def test_save_artifacts_encoded_only(self):
        paths = self.sink.save_artifacts(OutputArtifacts(b"jpeg"), stem="burst")
        self.assertEqual(len(paths), 1)

    def test_unsupported_media_type(self):
        with self.assertRaises(FuseWriteError) as ctx:
            self.sink.save(b"x", "image/heic", stem="burst")
        self.assertEqual(ctx.exception.category, "unsupported_media_type")

    def test_directory_creation_failure(self):
        blocker = os.path.join(self.root, "file")
        with open(blocker, "wb") as handle:
            handle.write(b"")
        sink = FileArtifactSink(FileSinkConfig(output_folder=os.path.join(blocker, "out")))
        with self.assertRaises(FuseWriteError) as ctx:
            sink.save(b"jpeg", MEDIA_TYPE_JPEG, stem="burst")
        self.assertEqual(ctx.exception.category, "directory_creation_failed")
        self.assertEqual(ctx.exception.operation, "mkdir")

    def test_write_failure(self):
        with patch(
            "fuse_core.sinks.file_sink.open",
            side_effect=PermissionError("denied"),
            create=True,
        ):
            with self.assertRaises(FuseWriteError) as ctx:
                self.sink.save(b"jpeg", MEDIA_TYPE_JPEG, stem="burst")
        self.assertEqual(ctx.exception.category, "write_failed")
        self.assertIsInstance(ctx.exception.original_error, PermissionError)


class TestFallbackArtifactSink(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = self._tmp.name
        blocker = os.path.join(self.root, "file")
        with open(blocker, "wb") as handle:
            handle.write(b"")
        self.broken = FileArtifactSink(
            FileSinkConfig(output_folder=os.path.join(blocker, "out"))
        )
        self.fallback_folder = os.path.join(self.root, "fallback")
        self.fallback = FileArtifactSink(FileSinkConfig(self.fallback_folder))

    def tearDown(self):
        self._tmp.cleanup()

    def test_both_artifacts_land_in_fallback(self):
        sink = FallbackArtifactSink(self.broken, self.fallback)
        paths = sink.save_artifacts(
            OutputArtifacts(b"jpeg", raw_frame=b"dng"), stem="burst"
        )
        self.assertEqual(len(paths), 2)
        for path in paths:
            self.assertEqual(os.path.dirname(path), self.fallback_folder)
        self.assertEqual(_read(paths[0]), b"jpeg")
        self.assertEqual(_read(paths[1]), b"dng")

    def test_primary_used_when_writable(self):
        primary_folder = os.path.join(self.root, "primary")
        sink = FallbackArtifactSink(
            FileArtifactSink(FileSinkConfig(primary_folder)), self.fallback
        )
        paths = sink.save_artifacts(OutputArtifacts(b"jpeg"), stem="burst")
        self.assertEqual(os.path.dirname(paths[0]), primary_folder)
        self.assertFalse(os.path.exists(self.fallback_folder))

    def test_single_save_falls_back(self):
        sink = FallbackArtifactSink(self.broken, self.fallback)
        path = sink.save(b"jpeg", MEDIA_TYPE_JPEG, stem="burst")
        self.assertEqual(os.path.dirname(path), self.fallback_folder)

    def test_fallback_failure_propagates(self):
        sink = FallbackArtifactSink(self.broken, self.broken)
        with self.assertRaises(FuseWriteError):
            sink.save_artifacts(OutputArtifacts(b"jpeg"), stem="burst")


if __name__ == "__main__":
    unittest.main()
