# Copyright Red Hat
#
# tests/treediff/test_filetypes.py - Content type detection tests.
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import MagicMock, patch

from treepatch.treediff.filetypes import (
    FileTypeCategory,
    FileTypeDetector,
    FileTypeInfo,
)


def _magic_result(mime_type, name="mock", encoding="us-ascii"):
    fm = MagicMock()
    fm.mime_type = mime_type
    fm.name = name
    fm.encoding = encoding
    return fm


class TestFileTypeInfo(unittest.TestCase):
    def test_text_like(self):
        self.assertTrue(FileTypeInfo("text/plain", "x", FileTypeCategory.TEXT).is_text_like)
        self.assertTrue(
            FileTypeInfo("text/markdown", "x", FileTypeCategory.DOCUMENT).is_text_like
        )
        self.assertFalse(
            FileTypeInfo("application/pdf", "x", FileTypeCategory.DOCUMENT).is_text_like
        )
        self.assertFalse(FileTypeInfo("image/png", "x", FileTypeCategory.IMAGE).is_text_like)

    def test_str(self):
        info = FileTypeInfo("text/plain", "ASCII text", FileTypeCategory.TEXT)
        self.assertIn("MIME type: text/plain", str(info))
        self.assertIn("Encoding: unknown", str(info))


class TestFileTypeDetector(unittest.TestCase):
    def setUp(self):
        self.detector = FileTypeDetector()

    def test_empty_is_text(self):
        info = self.detector.detect_content_type(b"")
        self.assertEqual(info.category, FileTypeCategory.EMPTY)
        self.assertTrue(self.detector.is_text(b""))

    def test_nul_byte_is_binary(self):
        with patch("treepatch.treediff.filetypes.magic.detect_from_content") as dfc:
            self.assertFalse(self.detector.is_text(b"abc\0def\n"))
            dfc.assert_not_called()

    def test_plain_text(self):
        self.assertTrue(self.detector.is_text(b"hello world\n"))

    @patch("treepatch.treediff.filetypes.magic.detect_from_content")
    def test_categories(self, dfc):
        cases = [
            ("text/x-python", FileTypeCategory.SOURCE_CODE, True),
            ("application/json", FileTypeCategory.CONFIG, True),
            ("text/plain", FileTypeCategory.TEXT, True),
            ("image/png", FileTypeCategory.IMAGE, False),
            ("application/x-sharedlib", FileTypeCategory.EXECUTABLE, False),
            ("application/x-unheard-of", FileTypeCategory.BINARY, False),
        ]
        for mime_type, category, is_text in cases:
            dfc.return_value = _magic_result(mime_type)
            info = self.detector.detect_content_type(b"content")
            self.assertEqual(info.category, category, mime_type)
            self.assertEqual(info.is_text_like, is_text, mime_type)

    @patch("treepatch.treediff.filetypes.magic.detect_from_content")
    def test_magic_error_falls_back_to_text(self, dfc):
        dfc.side_effect = OSError("magic failure")
        info = self.detector.detect_content_type(b"content")
        self.assertEqual(info.category, FileTypeCategory.TEXT)

    @patch("treepatch.treediff.filetypes.magic.detect_from_content")
    def test_sample_size(self, dfc):
        dfc.return_value = _magic_result("text/plain")
        self.detector.detect_content_type(b"x" * (2**17))
        (data,), _kwargs = dfc.call_args
        self.assertEqual(len(data), 2**16)

    @patch("treepatch.treediff.filetypes.magic.detect_from_content")
    def test_short_utf8_is_text(self, dfc):
        dfc.return_value = _magic_result(
            "application/octet-stream", "very short file (no magic)", "binary"
        )
        self.assertTrue(self.detector.is_text(b"x"))
        self.assertFalse(self.detector.is_text(b"\xff"))
