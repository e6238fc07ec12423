# Copyright Red Hat
#
# tests/treediff/test_treewalk.py - Tree walk tests.
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import stat
import os
from unittest.mock import patch

from treepatch import EnumerationError
from treepatch.treediff.pathfilter import PathFilter
from treepatch.treediff.treewalk import EntryKind, TreeEntry, TreeWalker, walk

from ._util import DIR, make_tree


class TestEntryKind(unittest.TestCase):
    def test_from_mode(self):
        self.assertEqual(EntryKind.from_mode(stat.S_IFREG | 0o644), EntryKind.FILE)
        self.assertEqual(EntryKind.from_mode(stat.S_IFDIR | 0o755), EntryKind.DIRECTORY)
        self.assertEqual(EntryKind.from_mode(stat.S_IFLNK | 0o777), EntryKind.OTHER)
        self.assertEqual(EntryKind.from_mode(stat.S_IFIFO | 0o644), EntryKind.OTHER)


class TestTreeEntry(unittest.TestCase):
    def test_equality_and_hash(self):
        e1 = TreeEntry("/t/a", "a", EntryKind.FILE)
        e2 = TreeEntry("/t/a", "a", EntryKind.FILE)
        e3 = TreeEntry("/t/a", "a", EntryKind.DIRECTORY)
        self.assertEqual(e1, e2)
        self.assertNotEqual(e1, e3)
        self.assertEqual(len({e1, e2, e3}), 2)
        self.assertTrue(e1.is_file)
        self.assertTrue(e3.is_dir)
        self.assertEqual(str(e3), "a (directory)")


class TestTreeWalker(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory(prefix="treepatch-test-")
        self.root = make_tree(
            os.path.join(self._tmp.name, "tree"),
            {
                "b.txt": "b\n",
                "a/one.txt": "one\n",
                "a/two.o": b"\x7fELF",
                "a/sub/three.txt": "three\n",
                "build/out.bin": b"\0\1",
                "empty": DIR,
            },
        )

    def tearDown(self):
        self._tmp.cleanup()

    def _paths(self, path_filter=None):
        return [entry.path for entry in walk(self.root, path_filter)]

    def test_walk_all(self):
        paths = self._paths()
        self.assertEqual(
            sorted(paths),
            sorted(
                [
                    "a",
                    "a/one.txt",
                    "a/sub",
                    "a/sub/three.txt",
                    "a/two.o",
                    "b.txt",
                    "build",
                    "build/out.bin",
                    "empty",
                ]
            ),
        )

    def test_parents_before_children(self):
        paths = self._paths()
        for path in paths:
            if "/" in path:
                parent = path.rpartition("/")[0]
                self.assertLess(paths.index(parent), paths.index(path))

    def test_entry_kinds(self):
        kinds = {entry.path: entry.kind for entry in walk(self.root)}
        self.assertEqual(kinds["a"], EntryKind.DIRECTORY)
        self.assertEqual(kinds["empty"], EntryKind.DIRECTORY)
        self.assertEqual(kinds["b.txt"], EntryKind.FILE)
        entry = next(e for e in walk(self.root) if e.path == "a/sub/three.txt")
        self.assertEqual(entry.full_path, os.path.join(self.root, "a", "sub", "three.txt"))

    def test_exclude_prunes_subtree(self):
        paths = self._paths(PathFilter(exclude_patterns=["build"]))
        self.assertNotIn("build", paths)
        self.assertNotIn("build/out.bin", paths)
        self.assertIn("b.txt", paths)

    def test_include_keeps_directories(self):
        paths = self._paths(PathFilter(include_patterns=["*.txt"]))
        self.assertIn("a", paths)
        self.assertIn("a/sub", paths)
        self.assertIn("a/sub/three.txt", paths)
        self.assertNotIn("a/two.o", paths)
        self.assertNotIn("build/out.bin", paths)

    def test_symlinks_not_followed(self):
        os.symlink(os.path.join(self.root, "a"), os.path.join(self.root, "link"))
        kinds = {entry.path: entry.kind for entry in walk(self.root)}
        self.assertEqual(kinds["link"], EntryKind.OTHER)
        self.assertFalse(any(p.startswith("link/") for p in kinds))

    def test_missing_root(self):
        with self.assertRaises(EnumerationError):
            walk(os.path.join(self.root, "nonexistent"))

    def test_root_not_directory(self):
        with self.assertRaises(EnumerationError):
            walk(os.path.join(self.root, "b.txt"))

    def test_empty_tree(self):
        empty = os.path.join(self.root, "empty")
        self.assertEqual(list(walk(empty)), [])

    def test_walk_error_raises(self):
        def _broken_walk(root, topdown=True, onerror=None, followlinks=False):
            onerror(PermissionError(13, "Permission denied", root))
            yield from ()

        walker = TreeWalker()
        with patch("treepatch.treediff.treewalk.os.walk", _broken_walk):
            with self.assertRaises(EnumerationError):
                list(walker.walk(self.root))

    def test_vanished_entry_skipped(self):
        real_lstat = os.lstat

        def _lstat(path, *args, **kwargs):
            if path.endswith("b.txt"):
                raise FileNotFoundError(2, "No such file or directory", path)
            return real_lstat(path, *args, **kwargs)

        with patch("treepatch.treediff.treewalk.os.lstat", _lstat):
            paths = self._paths()
        self.assertNotIn("b.txt", paths)
        self.assertIn("a/one.txt", paths)
