# Copyright Red Hat
#
# tests/treediff/test_contentdiff.py - Content diff tests.
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import MagicMock

from treepatch.treediff.contentdiff import (
    DiffResult,
    DifflibTextDiffer,
    NO_NEWLINE_MARKER,
    decode_text,
    encode_text,
    normalize_line_endings,
    split_lines,
)
from treepatch.treediff.patcher import apply_hunks, parse_unified_diff


def _text_detector(is_text=True):
    detector = MagicMock()
    detector.is_text.return_value = is_text
    return detector


class TestTextHelpers(unittest.TestCase):
    def test_split_lines(self):
        self.assertEqual(split_lines(""), [])
        self.assertEqual(split_lines("a\nb\n"), ["a\n", "b\n"])
        self.assertEqual(split_lines("a\nb"), ["a\n", "b"])
        self.assertEqual(split_lines("\n\n"), ["\n", "\n"])

    def test_split_lines_keeps_carriage_returns(self):
        self.assertEqual(split_lines("a\r\nb\r"), ["a\r\n", "b\r"])

    def test_undecodable_bytes_survive(self):
        data = b"caf\xe9 \xff\n"
        self.assertEqual(encode_text(decode_text(data)), data)

    def test_normalize_line_endings(self):
        self.assertEqual(normalize_line_endings(b"a\r\nb\rc\n"), b"a\nb\nc\n")
        self.assertEqual(normalize_line_endings(b"\r\r\n"), b"\n\n")


class TestDiffResult(unittest.TestCase):
    def test_textual_requires_artifact(self):
        with self.assertRaises(ValueError):
            DiffResult(True)
        self.assertIsNone(DiffResult(False).artifact)


class TestDifflibTextDiffer(unittest.TestCase):
    def setUp(self):
        self.differ = DifflibTextDiffer(file_type_detector=_text_detector())

    def _roundtrip(self, old, new):
        result = self.differ.diff(old, new, "dir/file.txt")
        self.assertTrue(result.is_textual)
        hunks = parse_unified_diff(decode_text(result.artifact))
        lines = apply_hunks(split_lines(decode_text(old)), hunks)
        self.assertEqual(encode_text("".join(lines)), new)
        return result.artifact

    def test_headers(self):
        artifact = self._roundtrip(b"one\ntwo\n", b"one\n2\n")
        text = artifact.decode("utf8")
        self.assertTrue(text.startswith("--- a/dir/file.txt\n+++ b/dir/file.txt\n"))
        self.assertIn("-two\n+2\n", text)

    def test_missing_final_newline(self):
        artifact = self._roundtrip(b"one\ntwo", b"one\ntwo\n")
        self.assertIn(NO_NEWLINE_MARKER.encode("utf8"), artifact)

    def test_added_final_line_without_newline(self):
        artifact = self._roundtrip(b"one\n", b"one\ntwo")
        self.assertTrue(artifact.endswith(NO_NEWLINE_MARKER.encode("utf8")))

    def test_crlf_preserved(self):
        self._roundtrip(b"a\r\nb\r\n", b"a\r\nB\r\n")

    def test_from_empty(self):
        self._roundtrip(b"", b"new\ncontent\n")

    def test_to_empty(self):
        self._roundtrip(b"old\ncontent\n", b"")

    def test_many_hunks(self):
        old = b"".join(b"line %d\n" % i for i in range(100))
        new = old.replace(b"line 5\n", b"five\n").replace(b"line 90\n", b"")
        artifact = self._roundtrip(old, new)
        self.assertEqual(artifact.count(b"\n@@ "), 2)

    def test_context_lines(self):
        differ = DifflibTextDiffer(file_type_detector=_text_detector(), context_lines=0)
        result = differ.diff(b"a\nb\nc\n", b"a\nB\nc\n", "f")
        self.assertNotIn(b"\n a\n", result.artifact)
        with self.assertRaises(ValueError):
            DifflibTextDiffer(context_lines=-1)

    def test_binary_content_not_textual(self):
        differ = DifflibTextDiffer(file_type_detector=_text_detector(False))
        result = differ.diff(b"\0\1", b"\0\2", "bin")
        self.assertFalse(result.is_textual)
        self.assertIsNone(result.artifact)

    def test_default_detector_nul_bytes(self):
        result = DifflibTextDiffer().diff(b"abc\n", b"ab\0c\n", "f")
        self.assertFalse(result.is_textual)
