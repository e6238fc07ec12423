# Copyright Red Hat
#
# tests/treediff/test_pathfilter.py - Path filter tests.
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest

from treepatch import EnumerationError
from treepatch.treediff.pathfilter import PathFilter


class TestPathFilter(unittest.TestCase):
    def test_empty_filter_accepts_all(self):
        pf = PathFilter()
        self.assertTrue(pf.is_empty)
        self.assertTrue(pf.accepts("a/b/c.txt"))
        self.assertTrue(pf.accepts("a", is_dir=True))

    def test_exclude_basename_glob(self):
        pf = PathFilter(exclude_patterns=["*.o"])
        self.assertFalse(pf.is_empty)
        self.assertFalse(pf.accepts("main.o"))
        self.assertFalse(pf.accepts("src/lib/util.o"))
        self.assertTrue(pf.accepts("src/lib/util.c"))

    def test_exclude_path_glob(self):
        pf = PathFilter(exclude_patterns=["build/*"])
        self.assertFalse(pf.accepts("build/out.bin"))
        self.assertTrue(pf.accepts("src/build/out.bin"))

    def test_exclude_directory(self):
        pf = PathFilter(exclude_patterns=[".git"])
        self.assertFalse(pf.accepts(".git", is_dir=True))
        self.assertFalse(pf.accepts("sub/.git", is_dir=True))

    def test_include_applies_to_files_only(self):
        pf = PathFilter(include_patterns=["*.txt"])
        self.assertTrue(pf.accepts("docs", is_dir=True))
        self.assertTrue(pf.accepts("docs/readme.txt"))
        self.assertFalse(pf.accepts("docs/readme.md"))

    def test_exclude_wins_over_include(self):
        pf = PathFilter(include_patterns=["*.txt"], exclude_patterns=["secret*"])
        self.assertFalse(pf.accepts("secret.txt"))
        self.assertTrue(pf.accepts("public.txt"))

    def test_regex_patterns(self):
        pf = PathFilter(exclude_patterns=[r"re:\.(pyc|pyo)$"])
        self.assertFalse(pf.accepts("pkg/mod.pyc"))
        self.assertFalse(pf.accepts("mod.pyo"))
        self.assertTrue(pf.accepts("pkg/mod.py"))

    def test_regex_search_is_unanchored(self):
        pf = PathFilter(include_patterns=["re:cache"])
        self.assertTrue(pf.accepts("var/cache/data"))
        self.assertFalse(pf.accepts("var/lib/data"))

    def test_invalid_patterns(self):
        with self.assertRaises(EnumerationError):
            PathFilter(exclude_patterns=["re:("])
        with self.assertRaises(EnumerationError):
            PathFilter(include_patterns=[""])
        with self.assertRaises(EnumerationError):
            PathFilter(include_patterns=["re:"])

    def test_accepts_tree_checks_ancestors(self):
        pf = PathFilter(exclude_patterns=["build"])
        self.assertTrue(pf.accepts("build/x.c"))
        self.assertFalse(pf.accepts_tree("build/x.c"))
        self.assertFalse(pf.accepts_tree("a/build/sub", is_dir=True))
        self.assertTrue(pf.accepts_tree("a/src/x.c"))

    def test_merged(self):
        pf = PathFilter(["*.c"], ["tmp"]).merged(PathFilter(["*.h"], ["*.bak"]))
        self.assertEqual(pf.include_patterns, ("*.c", "*.h"))
        self.assertEqual(pf.exclude_patterns, ("tmp", "*.bak"))
        self.assertTrue(pf.accepts("x.h"))
        self.assertFalse(pf.accepts("x.bak"))

    def test_from_expression(self):
        pf = PathFilter.from_expression("*.c, *.h, !test_*")
        self.assertEqual(pf.include_patterns, ("*.c", "*.h"))
        self.assertEqual(pf.exclude_patterns, ("test_*",))
        self.assertTrue(pf.accepts("src/main.c"))
        self.assertFalse(pf.accepts("src/test_main.c"))

    def test_from_expression_empty_term(self):
        with self.assertRaises(EnumerationError):
            PathFilter.from_expression("*.c,,*.h")
        with self.assertRaises(EnumerationError):
            PathFilter.from_expression("")

    def test_str(self):
        self.assertEqual(str(PathFilter()), "include: *; exclude: -")
        self.assertEqual(
            str(PathFilter(["*.c"], ["*.o", "tmp"])), "include: *.c; exclude: *.o, tmp"
        )
