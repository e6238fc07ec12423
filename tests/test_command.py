# Copyright Red Hat
#
# tests/test_command.py - CLI layer tests
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import patch
import tempfile
import shutil
import logging
import os

log = logging.getLogger()

from treepatch import AlreadyExistsError, get_debug_mask, set_debug_mask
from treepatch import TREEPATCH_DEBUG_ALL, TREEPATCH_DEBUG_APPLY, TREEPATCH_DEBUG_WALK
import treepatch.command as command
from treepatch.config import TREEPATCH_CFG_ENV
from treepatch.treediff import ApplyOptions, ChangeSetStore, DiffOptions, PathFilter

from tests import MockArgs

from .treediff._util import DIR, make_tree, tree_state

_TREE_A = {
    "etc/app.conf": "debug = no\nport = 80\n",
    "etc/old.conf": "obsolete\n",
    "lib/module.o": b"\x7fELF\0\0",
    "share/doc": DIR,
}

_TREE_B = {
    "etc/app.conf": "debug = yes\nport = 80\n",
    "etc/new.conf": "fresh\n",
    "lib/module.o": b"\x7fELF\0\1",
    "share/doc/README": "docs\n",
}


class CommandTestsBase(unittest.TestCase):
    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self._tmp = tempfile.TemporaryDirectory(prefix="treepatch-test-")
        self.tree_a = make_tree(self._path("a"), _TREE_A)
        self.tree_b = make_tree(self._path("b"), _TREE_B)
        self.target = self._path("target")
        shutil.copytree(self.tree_a, self.target)
        self.store = self._path("store")
        # Never pick up a host configuration file.
        self._env = patch.dict(
            os.environ, {TREEPATCH_CFG_ENV: self._path("treepatch.conf")}
        )
        self._env.start()

    def tearDown(self):
        self._env.stop()
        self._tmp.cleanup()
        set_debug_mask(0)

    def _path(self, name):
        return os.path.join(self._tmp.name, name)

    def get_main_args(self):
        return [os.path.join(os.getcwd(), "bin/treepatch")]

    def diff_args(self, *extra):
        return self.get_main_args() + ["diff", "-q", "-s", self.store] + list(extra)

    def apply_args(self, *extra):
        return self.get_main_args() + ["apply", "-q", "-s", self.store] + list(extra)


class TestProceduralInterface(CommandTestsBase):
    def test_diff_and_apply(self):
        changeset = command.diff_trees(
            self.tree_a, self.tree_b, self.store, DiffOptions(quiet=True)
        )
        self.assertEqual(changeset.removed_files, ["etc/old.conf"])
        command.apply_changeset(self.store, self.target, ApplyOptions(quiet=True))
        self.assertEqual(tree_state(self.target), tree_state(self.tree_b))

    def test_diff_existing_store(self):
        command.diff_trees(self.tree_a, self.tree_b, self.store, DiffOptions(quiet=True))
        with patch("treepatch.command.Classifier") as classifier:
            with self.assertRaises(AlreadyExistsError):
                command.diff_trees(
                    self.tree_a, self.tree_b, self.store, DiffOptions(quiet=True)
                )
            classifier.assert_not_called()

    def test_diff_overwrite(self):
        command.diff_trees(self.tree_a, self.tree_b, self.store, DiffOptions(quiet=True))
        changeset = command.diff_trees(
            self.tree_a, self.tree_a, self.store, DiffOptions(overwrite=True, quiet=True)
        )
        self.assertTrue(changeset.is_empty)
        self.assertTrue(ChangeSetStore(self.store).read().is_empty)

    def test_apply_with_filter(self):
        command.diff_trees(self.tree_a, self.tree_b, self.store, DiffOptions(quiet=True))
        command.apply_changeset(
            self.store,
            self.target,
            ApplyOptions(quiet=True),
            path_filter=PathFilter(exclude_patterns=["lib"]),
        )
        state = tree_state(self.target)
        self.assertEqual(state["etc/app.conf"], b"debug = yes\nport = 80\n")
        self.assertEqual(state["lib/module.o"], b"\x7fELF\0\0")

    @unittest.skipIf(shutil.which("patch") is None, "patch program not available")
    def test_apply_external_patch(self):
        command.diff_trees(self.tree_a, self.tree_b, self.store, DiffOptions(quiet=True))
        command.apply_changeset(
            self.store, self.target, ApplyOptions(quiet=True), patch_command="patch"
        )
        self.assertEqual(tree_state(self.target), tree_state(self.tree_b))


class TestCommand(CommandTestsBase):
    def test_main_no_command(self):
        self.assertEqual(command.main(self.get_main_args()), 1)

    def test_main_bad_debug(self):
        args = self.get_main_args() + ["--debug", "nosuch", "diff", "x", "y"]
        self.assertEqual(command.main(args), 1)

    def test_main_diff_apply(self):
        self.assertEqual(command.main(self.diff_args(self.tree_a, self.tree_b)), 0)
        self.assertTrue(ChangeSetStore(self.store).exists())
        self.assertEqual(command.main(self.apply_args(self.target)), 0)
        self.assertEqual(tree_state(self.target), tree_state(self.tree_b))

    def test_main_diff_existing_store(self):
        self.assertEqual(command.main(self.diff_args(self.tree_a, self.tree_b)), 0)
        self.assertEqual(command.main(self.diff_args(self.tree_a, self.tree_b)), 1)
        args = self.diff_args("--overwrite", self.tree_a, self.tree_b)
        self.assertEqual(command.main(args), 0)

    def test_main_diff_same_tree(self):
        self.assertEqual(command.main(self.diff_args(self.tree_a, self.tree_a)), 1)
        self.assertFalse(os.path.exists(self.store))

    def test_main_diff_missing_tree(self):
        args = self.diff_args(self.tree_a, self._path("missing"))
        self.assertEqual(command.main(args), 1)

    def test_main_diff_exclude(self):
        args = self.diff_args("-x", "*.o", "-x", "doc", self.tree_a, self.tree_b)
        self.assertEqual(command.main(args), 0)
        changeset = ChangeSetStore(self.store).read()
        self.assertEqual(changeset.changed_files, ["etc/app.conf"])
        self.assertEqual(changeset.added_files, ["etc/new.conf"])

    def test_main_diff_filter_expression(self):
        args = self.diff_args("-f", "*.conf,!old*", self.tree_a, self.tree_b)
        self.assertEqual(command.main(args), 0)
        changeset = ChangeSetStore(self.store).read()
        self.assertEqual(changeset.removed_files, [])
        self.assertEqual(changeset.changed_files, ["etc/app.conf"])

    def test_main_diff_config_excludes(self):
        with open(self._path("treepatch.conf"), "w", encoding="utf8") as fp:
            fp.write("[diff]\nexclude = *.o\n")
        self.assertEqual(command.main(self.diff_args(self.tree_a, self.tree_b)), 0)
        changeset = ChangeSetStore(self.store).read()
        self.assertNotIn("lib/module.o", changeset.changed_files)

    def test_main_apply_dry_run(self):
        command.main(self.diff_args(self.tree_a, self.tree_b))
        before = tree_state(self.target)
        self.assertEqual(command.main(self.apply_args("--dry-run", self.target)), 0)
        self.assertEqual(tree_state(self.target), before)

    def test_main_apply_copy_to(self):
        command.main(self.diff_args(self.tree_a, self.tree_b))
        dest = self._path("copy")
        self.assertEqual(command.main(self.apply_args("-c", dest, self.target)), 0)
        self.assertEqual(tree_state(dest), tree_state(self.tree_b))
        self.assertEqual(tree_state(self.target), tree_state(self.tree_a))
        # Second run conflicts with the existing copy.
        self.assertEqual(command.main(self.apply_args("-c", dest, self.target)), 1)

    def test_main_apply_conflict(self):
        command.main(self.diff_args(self.tree_a, self.tree_b))
        with open(os.path.join(self.target, "etc", "app.conf"), "w", encoding="utf8") as fp:
            fp.write("local edit\n")
        self.assertEqual(command.main(self.apply_args(self.target)), 1)

    def test_main_apply_missing_store(self):
        self.assertEqual(command.main(self.apply_args(self.target)), 1)

    def test_main_verbose_debug(self):
        args = self.get_main_args() + ["-vv", "--debug", "all"]
        args += ["diff", "-q", "-s", self.store, self.tree_a, self.tree_b]
        self.assertEqual(command.main(args), 0)
        self.assertEqual(get_debug_mask(), TREEPATCH_DEBUG_ALL)


class TestSetDebug(unittest.TestCase):
    def tearDown(self):
        set_debug_mask(0)

    def test_set_debug(self):
        command.set_debug("walk,apply")
        self.assertEqual(get_debug_mask(), TREEPATCH_DEBUG_WALK | TREEPATCH_DEBUG_APPLY)

    def test_set_debug_none(self):
        command.set_debug(None)
        self.assertEqual(get_debug_mask(), 0)

    def test_set_debug_unknown(self):
        with self.assertRaises(ValueError):
            command.set_debug("walk,bogus")


class TestOptionsFromArgs(unittest.TestCase):
    def test_diff_options(self):
        args = MockArgs()
        args.include_patterns = ["*.c"]
        args.normalize_line_endings = True
        options = DiffOptions.from_cmd_args(args)
        self.assertEqual(options.include_patterns, ("*.c",))
        self.assertEqual(options.exclude_patterns, ())
        self.assertTrue(options.normalize_line_endings)
        self.assertTrue(options.quiet)

    def test_apply_options(self):
        args = MockArgs()
        args.dry_run = True
        args.copy_to = "/tmp/copy"  # noqa: S108
        options = ApplyOptions.from_cmd_args(args)
        self.assertTrue(options.dry_run)
        self.assertEqual(options.copy_to, "/tmp/copy")  # noqa: S108
        self.assertFalse(options.verbose)
        self.assertIn("dry_run=True", str(options))
