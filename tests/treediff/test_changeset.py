# Copyright Red Hat
#
# tests/treediff/test_changeset.py - Change-set tests.
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import json
import os

from treepatch import TreepatchSystemError
from treepatch.progress import TermControl
from treepatch.treediff.changeset import Artifact, ChangeSet, DiffArtifact, DiffKind
from treepatch.treediff.pathfilter import PathFilter


def _sample_changeset():
    changeset = ChangeSet()
    changeset.add_removed_file("old.txt")
    changeset.add_removed_dir("gone")
    changeset.add_removed_dir("build/tmp")
    changeset.add_added_dir("new")
    changeset.add_added_dir("build/obj")
    changeset.add_added_file("new/file.txt", Artifact(data=b"new\n"))
    changeset.add_added_file("build/obj/x.o", Artifact(data=b"\0"))
    changeset.add_changed_file("a.txt", DiffArtifact(DiffKind.TEXT, data=b"@@"))
    changeset.add_changed_file("b.bin", DiffArtifact(DiffKind.COPY, data=b"\0\1"))
    return changeset


class TestArtifact(unittest.TestCase):
    def test_requires_one_source(self):
        with self.assertRaises(ValueError):
            Artifact()
        with self.assertRaises(ValueError):
            Artifact(data=b"x", source="/x")

    def test_data(self):
        self.assertEqual(Artifact(data=b"abc").read_bytes(), b"abc")

    def test_source_and_write_to(self):
        with tempfile.TemporaryDirectory() as tmp:
            src = os.path.join(tmp, "src")
            with open(src, "wb") as fp:
                fp.write(b"content")
            os.chmod(src, 0o600)
            artifact = Artifact(source=src)
            self.assertEqual(artifact.read_bytes(), b"content")

            dest = os.path.join(tmp, "dest")
            artifact.write_to(dest, preserve_metadata=True)
            self.assertEqual(os.stat(dest).st_mode & 0o777, 0o600)
            with open(dest, "rb") as fp:
                self.assertEqual(fp.read(), b"content")

    def test_missing_source(self):
        with self.assertRaises(TreepatchSystemError):
            Artifact(source="/nonexistent/treepatch/file").read_bytes()

    def test_diff_artifact(self):
        self.assertTrue(DiffArtifact(DiffKind.TEXT, data=b"").is_textual)
        self.assertFalse(DiffArtifact(DiffKind.COPY, data=b"").is_textual)
        self.assertEqual(DiffKind.TEXT.value, "diff")
        self.assertEqual(DiffKind.COPY.value, "copy")


class TestChangeSet(unittest.TestCase):
    def test_empty(self):
        changeset = ChangeSet()
        self.assertTrue(changeset.is_empty)
        self.assertEqual(changeset.total_changes, 0)

    def test_add_methods(self):
        changeset = _sample_changeset()
        self.assertEqual(changeset.removed_files, ["old.txt"])
        self.assertEqual(changeset.removed_dirs, ["gone", "build/tmp"])
        self.assertEqual(changeset.added_dirs, ["new", "build/obj"])
        self.assertEqual(changeset.added_files, ["new/file.txt", "build/obj/x.o"])
        self.assertEqual(changeset.changed_files, ["a.txt", "b.bin"])
        self.assertEqual(changeset.total_changes, 9)
        self.assertEqual(changeset.text_diffs, 1)
        self.assertFalse(changeset.is_empty)

    def test_no_duplicates(self):
        changeset = ChangeSet(removed_files=["a", "a", "b"])
        changeset.add_removed_file("a")
        self.assertEqual(changeset.removed_files, ["a", "b"])

    def test_equality(self):
        self.assertEqual(_sample_changeset(), _sample_changeset())
        other = _sample_changeset()
        other.add_removed_file("extra")
        self.assertNotEqual(_sample_changeset(), other)

    def test_filtered(self):
        changeset = _sample_changeset()
        filtered = changeset.filtered(PathFilter(exclude_patterns=["build"]))
        self.assertEqual(filtered.removed_dirs, ["gone"])
        self.assertEqual(filtered.added_dirs, ["new"])
        self.assertEqual(filtered.added_files, ["new/file.txt"])
        self.assertEqual(set(filtered.added), {"new/file.txt"})
        self.assertEqual(filtered.changed_files, ["a.txt", "b.bin"])
        self.assertIs(filtered.diffs["a.txt"], changeset.diffs["a.txt"])
        # The original is unchanged.
        self.assertEqual(changeset.total_changes, 9)

    def test_filtered_include(self):
        filtered = _sample_changeset().filtered(PathFilter(include_patterns=["*.txt"]))
        self.assertEqual(filtered.removed_files, ["old.txt"])
        self.assertEqual(filtered.changed_files, ["a.txt"])
        self.assertEqual(filtered.added_files, ["new/file.txt"])
        self.assertEqual(filtered.removed_dirs, ["gone", "build/tmp"])

    def test_json(self):
        data = json.loads(_sample_changeset().json(pretty=True))
        self.assertEqual(data["removed_files"], ["old.txt"])
        self.assertEqual(data["diff_kinds"], {"a.txt": "diff", "b.bin": "copy"})

    def test_summary(self):
        summary = _sample_changeset().summary(term_control=TermControl(color="never"))
        self.assertIn("Total changes:     9", summary)
        self.assertIn("changed:   2 (1 with diff)", summary)
