# Copyright Red Hat
#
# treepatch/treediff/classifier.py - Tree patch tree classification
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree classification: compare an original tree (A) with an updated tree (B)
and build the ``ChangeSet`` that transforms one into the other.
"""
from typing import Dict, List, Optional, Set, Tuple
from datetime import datetime
import logging
import os

from treepatch import (
    TREEPATCH_SUBSYSTEM_DIFF,
    join_relative,
    parent_path,
)
from treepatch.progress import ProgressFactory, TermControl

from .changeset import Artifact, ChangeSet, DiffArtifact, DiffKind
from .contentdiff import DifflibTextDiffer, TextDiffer
from .contentdiff import normalize_line_endings as _normalize
from .options import DiffOptions
from .pathfilter import PathFilter
from .treewalk import EntryKind, TreeEntry, TreeWalker

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREEPATCH_SUBSYSTEM_DIFF}, **kwargs)


_Index = Dict[str, TreeEntry]


def _read_file(full_path: str) -> Optional[bytes]:
    """
    Read the content of ``full_path``, returning ``None`` with a warning if
    the file cannot be read.
    """
    try:
        with open(full_path, "rb") as fp:
            return fp.read()
    except OSError as err:
        _log_warn("Cannot read '%s', treating as absent: %s", full_path, err)
        return None


def _is_readable(full_path: str) -> bool:
    try:
        with open(full_path, "rb"):
            return True
    except OSError as err:
        _log_warn("Cannot read '%s', skipping: %s", full_path, err)
        return False


class Classifier:
    """
    Classify the differences between two trees.
    """

    def __init__(
        self,
        text_differ: Optional[TextDiffer] = None,
        options: Optional[DiffOptions] = None,
        term_control: Optional[TermControl] = None,
    ):
        """
        Initialise a new ``Classifier`` object.

        :param text_differ: The ``TextDiffer`` used to generate diffs for
                            changed files.
        :type text_differ: ``Optional[TextDiffer]``
        :param options: Options controlling classification.
        :type options: ``Optional[DiffOptions]``
        :param term_control: Optional pre-initialised terminal control object.
        :type term_control: ``Optional[TermControl]``
        """
        self.text_differ: TextDiffer = text_differ or DifflibTextDiffer()
        self.options: DiffOptions = options or DiffOptions()
        self.term_control = term_control

    def _index(self, root: str, path_filter: PathFilter) -> _Index:
        walker = TreeWalker(
            path_filter, quiet=self.options.quiet, term_control=self.term_control
        )
        return {entry.path: entry for entry in walker.walk(root)}

    @staticmethod
    def _kind_at(index: _Index, root: str, path: str) -> Optional[EntryKind]:
        """
        Return the kind of entry at ``path`` below ``root``, or ``None`` if
        there is nothing at that path. A path below an ancestor that is not
        a directory, such as a symbolic link, is absent.
        """
        if path in index:
            return index[path].kind
        parent = parent_path(path)
        if parent and Classifier._kind_at(index, root, parent) != EntryKind.DIRECTORY:
            return None
        try:
            return EntryKind.from_mode(os.lstat(join_relative(root, path)).st_mode)
        except (FileNotFoundError, NotADirectoryError):
            return None

    def _compare_files(
        self,
        entry_a: TreeEntry,
        entry_b: TreeEntry,
        normalize: bool,
    ) -> Tuple[bool, bool, Optional[DiffArtifact]]:
        """
        Compare a regular file present in both trees.

        :returns: A 3-tuple ``(readable_a, readable_b, diff)`` where ``diff``
                  is ``None`` if the content is identical or unreadable.
        """
        path = entry_a.path
        data_a = _read_file(entry_a.full_path)
        data_b = _read_file(entry_b.full_path)
        if data_a is None or data_b is None:
            return data_a is not None, data_b is not None, None

        if normalize:
            data_a = _normalize(data_a)
            data_b = _normalize(data_b)

        if data_a == data_b:
            return True, True, None

        result = self.text_differ.diff(data_a, data_b, path)
        if result.is_textual:
            diff = DiffArtifact(DiffKind.TEXT, data=result.artifact)
        else:
            diff = DiffArtifact(DiffKind.COPY, source=entry_b.full_path)
        _log_debug_diff("Changed file '%s' (%s)", path, diff.kind.value)
        return True, True, diff

    # pylint: disable=too-many-branches
    def _classify_a(
        self,
        changeset: ChangeSet,
        entry: TreeEntry,
        tree_b: str,
        index_b: _Index,
        normalize: bool,
        unreadable_a: Set[str],
    ):
        path = entry.path
        kind_b = self._kind_at(index_b, tree_b, path)

        if entry.kind == EntryKind.OTHER:
            _log_warn("Skipping unsupported entry '%s' in %s", path, entry.full_path)
            return

        if entry.kind == EntryKind.DIRECTORY:
            if kind_b in (None, EntryKind.OTHER):
                changeset.add_removed_dir(path)
            elif kind_b != EntryKind.DIRECTORY:
                _log_warn(
                    "Type mismatch at '%s': directory replaced by %s, skipping",
                    path,
                    kind_b.value,
                )
            return

        if kind_b is None:
            changeset.add_removed_file(path)
            return
        if kind_b != EntryKind.FILE:
            _log_warn(
                "Type mismatch at '%s': file replaced by %s, skipping",
                path,
                kind_b.value,
            )
            return

        entry_b = index_b.get(path) or TreeEntry(
            join_relative(tree_b, path), path, EntryKind.FILE
        )
        readable_a, readable_b, diff = self._compare_files(entry, entry_b, normalize)
        if not readable_a:
            unreadable_a.add(path)
        elif not readable_b:
            changeset.add_removed_file(path)
        elif diff is not None:
            changeset.add_changed_file(path, diff)

    @staticmethod
    def _classify_b(
        changeset: ChangeSet,
        entry: TreeEntry,
        kind_a: Optional[EntryKind],
        unreadable_a: Set[str],
    ):
        path = entry.path
        if entry.kind == EntryKind.OTHER:
            _log_warn("Skipping unsupported entry '%s' in %s", path, entry.full_path)
            return

        if kind_a == EntryKind.OTHER:
            _log_debug_diff("Replacing %s entry at '%s'", kind_a.value, path)
            kind_a = None

        if entry.kind == EntryKind.DIRECTORY:
            if kind_a is None:
                changeset.add_added_dir(path)
            return

        if kind_a is None or path in unreadable_a:
            if _is_readable(entry.full_path):
                changeset.add_added_file(path, Artifact(source=entry.full_path))

    def classify(
        self,
        tree_a: str,
        tree_b: str,
        path_filter: Optional[PathFilter] = None,
        normalize_line_endings: Optional[bool] = None,
    ) -> ChangeSet:
        """
        Compare ``tree_a`` with ``tree_b`` and return the resulting
        ``ChangeSet``.

        Both trees are enumerated before any comparison takes place so that
        an enumeration failure in either tree aborts the run. Neither tree is
        modified. Snapshots and full copies in the returned ``ChangeSet``
        refer to files in ``tree_b``.

        :param tree_a: The root of the original tree.
        :type tree_a: ``str``
        :param tree_b: The root of the updated tree.
        :type tree_b: ``str``
        :param path_filter: An optional filter selecting the paths to compare.
                            Defaults to a filter built from the configured
                            ``DiffOptions`` patterns.
        :type path_filter: ``Optional[PathFilter]``
        :param normalize_line_endings: Convert CRLF and CR line endings to LF
                                       before comparing files. Defaults to
                                       the configured ``DiffOptions`` value.
        :type normalize_line_endings: ``Optional[bool]``
        :returns: The classified differences.
        :rtype: ``ChangeSet``
        :raises EnumerationError: If either tree cannot be enumerated.
        """
        if path_filter is None:
            path_filter = PathFilter(
                self.options.include_patterns, self.options.exclude_patterns
            )
        if normalize_line_endings is None:
            normalize_line_endings = self.options.normalize_line_endings

        _log_info("Comparing %s with %s (%s)", tree_a, tree_b, path_filter)
        index_a = self._index(tree_a, path_filter)
        index_b = self._index(tree_b, path_filter)

        changeset = ChangeSet()
        unreadable_a: Set[str] = set()
        entries: List[Tuple[str, TreeEntry]] = [("a", e) for e in index_a.values()] + [
            ("b", e) for e in index_b.values()
        ]

        progress = ProgressFactory.get_progress(
            f"Comparing {tree_a} with {tree_b}",
            quiet=self.options.quiet,
            term_control=self.term_control,
        )

        start_time = datetime.now()
        if entries:
            progress.start(len(entries))

        try:
            for i, (side, entry) in enumerate(entries):
                progress.progress(i, f"Checking {entry.path}")
                if side == "a":
                    self._classify_a(
                        changeset,
                        entry,
                        tree_b,
                        index_b,
                        normalize_line_endings,
                        unreadable_a,
                    )
                else:
                    kind_a = self._kind_at(index_a, tree_a, entry.path)
                    self._classify_b(changeset, entry, kind_a, unreadable_a)
        except (KeyboardInterrupt, SystemExit):
            progress.cancel("Quit!")
            raise
        except Exception:
            progress.cancel("failed")
            raise

        end_time = datetime.now()
        if entries:
            progress.end(
                f"Compared {len(entries)} paths in {end_time - start_time}"
            )
        _log_info(
            "Found %d changes between %s and %s",
            changeset.total_changes,
            tree_a,
            tree_b,
        )
        return changeset


__all__ = [
    "Classifier",
]
