# Copyright Red Hat
#
# treepatch/treediff/treewalk.py - Tree patch tree walk
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree walking support for treediff.
"""
from typing import Iterator, List, Optional
from enum import Enum
import logging
import stat
import os

from treepatch import (
    EnumerationError,
    TREEPATCH_SUBSYSTEM_WALK,
    to_relative_path,
)
from treepatch.progress import ProgressFactory, TermControl

from .pathfilter import PathFilter

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_walk(msg, *args, **kwargs):
    """A wrapper for walk subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREEPATCH_SUBSYSTEM_WALK}, **kwargs)


class EntryKind(Enum):
    """
    Kinds of tree entry.
    """

    FILE = "file"
    DIRECTORY = "directory"
    #: Symbolic links, sockets, FIFOs and device nodes.
    OTHER = "other"

    @classmethod
    def from_mode(cls, mode: int) -> "EntryKind":
        """
        Map an ``lstat()`` mode value to an ``EntryKind``.

        :param mode: The ``st_mode`` value to map.
        :type mode: ``int``
        :returns: The corresponding entry kind.
        :rtype: ``EntryKind``
        """
        if stat.S_ISREG(mode):
            return cls.FILE
        if stat.S_ISDIR(mode):
            return cls.DIRECTORY
        return cls.OTHER


class TreeEntry:
    """
    A single entry found by a tree walk.
    """

    def __init__(self, full_path: str, path: str, kind: EntryKind):
        """
        Initialise a new ``TreeEntry`` object.

        :param full_path: The native path of the entry.
        :type full_path: ``str``
        :param path: The path of the entry relative to the tree root.
        :type path: ``str``
        :param kind: The kind of entry.
        :type kind: ``EntryKind``
        """
        self.full_path = full_path
        self.path = path
        self.kind = kind

    def __str__(self):
        return f"{self.path} ({self.kind.value})"

    def __repr__(self):
        return (
            f"TreeEntry(full_path={self.full_path!r}, path={self.path!r}, "
            f"kind={self.kind})"
        )

    def __eq__(self, other):
        if not isinstance(other, TreeEntry):
            return NotImplemented
        return (self.full_path, self.path, self.kind) == (
            other.full_path,
            other.path,
            other.kind,
        )

    def __hash__(self):
        return hash((self.full_path, self.path, self.kind))

    @property
    def is_file(self) -> bool:
        """``True`` if this entry is a regular file."""
        return self.kind == EntryKind.FILE

    @property
    def is_dir(self) -> bool:
        """``True`` if this entry is a directory."""
        return self.kind == EntryKind.DIRECTORY


class TreeWalker:
    """
    Lazy file system tree walker.

    Symbolic links are never followed: a link to a directory is reported as
    an ``EntryKind.OTHER`` entry and its target is not descended into.
    """

    def __init__(
        self,
        path_filter: Optional[PathFilter] = None,
        quiet: bool = True,
        term_control: Optional[TermControl] = None,
    ):
        """
        Initialise a new ``TreeWalker`` object.

        :param path_filter: An optional filter selecting the entries to
                            report.
        :type path_filter: ``Optional[PathFilter]``
        :param quiet: Suppress progress output.
        :type quiet: ``bool``
        :param term_control: Optional pre-initialised terminal control object.
        :type term_control: ``Optional[TermControl]``
        """
        self.path_filter: PathFilter = path_filter or PathFilter()
        self.quiet = quiet
        self.term_control = term_control

    @staticmethod
    def _check_root(root: str):
        try:
            root_stat = os.stat(root)
        except FileNotFoundError as err:
            raise EnumerationError(f"Tree root '{root}' does not exist") from err
        except OSError as err:
            raise EnumerationError(f"Cannot access tree root '{root}': {err}") from err
        if not stat.S_ISDIR(root_stat.st_mode):
            raise EnumerationError(f"Tree root '{root}' is not a directory")

    def _visit(self, root: str, dir_path: str, names: List[str]):
        """
        Classify the entries of one directory, returning a list of accepted
        ``TreeEntry`` objects and the names of subdirectories to descend
        into.
        """
        entries = []
        descend = []
        for name in sorted(names):
            full_path = os.path.join(dir_path, name)
            rel_path = to_relative_path(root, full_path)
            try:
                kind = EntryKind.from_mode(os.lstat(full_path).st_mode)
            except FileNotFoundError:
                _log_debug_walk("Path '%s' vanished during walk", full_path)
                continue
            except OSError as err:
                raise EnumerationError(
                    f"Cannot stat '{full_path}' while walking '{root}': {err}"
                ) from err

            is_dir = kind == EntryKind.DIRECTORY
            if not self.path_filter.accepts(rel_path, is_dir=is_dir):
                _log_debug_walk("Filtered out '%s'", rel_path)
                continue
            if is_dir:
                descend.append(name)
            entries.append(TreeEntry(full_path, rel_path, kind))
        return entries, descend

    def walk(self, root: str) -> Iterator[TreeEntry]:
        """
        Walk the tree at ``root`` and yield a ``TreeEntry`` for every
        accepted descendant of ``root``. Entries of each directory are
        reported in name order, parents before their children.

        :param root: The root directory of the tree to walk.
        :type root: ``str``
        :returns: An iterator over the accepted entries of the tree.
        :rtype: ``Iterator[TreeEntry]``
        :raises EnumerationError: If ``root`` is missing or not a directory,
                                  or if the traversal fails.
        """
        self._check_root(root)
        return self._walk(root)

    def _walk(self, root: str) -> Iterator[TreeEntry]:

        def _onerror(err: OSError):
            raise EnumerationError(f"Error walking tree '{root}': {err}") from err

        _log_info("Gathering paths from %s (%s)", root, self.path_filter)
        throbber = ProgressFactory.get_throbber(
            f"Gathering paths from {root}",
            quiet=self.quiet,
            term_control=self.term_control,
        )

        count = 0
        throbber.start()
        try:
            for dir_path, dir_names, file_names in os.walk(
                root, topdown=True, onerror=_onerror, followlinks=False
            ):
                entries, descend = self._visit(root, dir_path, dir_names + file_names)
                # Prune excluded directories and links from the walk.
                dir_names[:] = descend
                for entry in entries:
                    count += 1
                    throbber.throb()
                    _log_debug_walk("Found %s", entry)
                    yield entry
        except (KeyboardInterrupt, SystemExit):
            throbber.end("Quit!")
            raise
        except EnumerationError:
            throbber.end("failed")
            raise
        throbber.end(f"found {count} paths")


def walk(root: str, path_filter: Optional[PathFilter] = None) -> Iterator[TreeEntry]:
    """
    Walk the tree at ``root`` without progress output.

    :param root: The root directory of the tree to walk.
    :type root: ``str``
    :param path_filter: An optional filter selecting the entries to report.
    :type path_filter: ``Optional[PathFilter]``
    :returns: An iterator over the accepted entries of the tree.
    :rtype: ``Iterator[TreeEntry]``
    """
    return TreeWalker(path_filter).walk(root)


__all__ = [
    "EntryKind",
    "TreeEntry",
    "TreeWalker",
    "walk",
]
