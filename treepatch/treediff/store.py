# Copyright Red Hat
#
# treepatch/treediff/store.py - Tree patch change-set store
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
On-disk change-set storage.

A change-set store is a directory holding five list files, one relative
path per line, together with the ``diffs/`` and ``added/`` artifact
directories::

    removed-files.txt  removed-dirs.txt  added-files.txt
    added-dirs.txt     changed-files.txt
    diffs/<path>.diff  diffs/<path>.copy
    added/<path>

The list files may be edited by hand before a change-set is applied: the
lists are the sole record of the changes to make.
"""
from typing import Dict, List
import logging
import shutil
import os

from treepatch import (
    AlreadyExistsError,
    MissingStoreError,
    TreepatchPathError,
    TreepatchSystemError,
    TREEPATCH_SUBSYSTEM_STORE,
    check_relative_path,
    join_relative,
    parent_path,
)

from .changeset import Artifact, ChangeSet, DiffArtifact, DiffKind

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_store(msg, *args, **kwargs):
    """A wrapper for store subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREEPATCH_SUBSYSTEM_STORE}, **kwargs)


REMOVED_FILES = "removed-files.txt"
REMOVED_DIRS = "removed-dirs.txt"
ADDED_FILES = "added-files.txt"
ADDED_DIRS = "added-dirs.txt"
CHANGED_FILES = "changed-files.txt"

DIFFS_DIR = "diffs"
ADDED_DIR = "added"

#: Map of list file names to ``ChangeSet`` attributes.
LIST_FILES = {
    REMOVED_FILES: "removed_files",
    REMOVED_DIRS: "removed_dirs",
    ADDED_FILES: "added_files",
    ADDED_DIRS: "added_dirs",
    CHANGED_FILES: "changed_files",
}

#: Every member of the store layout.
STORE_MEMBERS = tuple(LIST_FILES) + (DIFFS_DIR, ADDED_DIR)

_ENCODING = "utf8"
_ERRORS = "surrogateescape"


def _check_artifact_names(member: str, names: Dict[str, str]):
    """
    Check that no artifact name in ``names`` is an ancestor of another. The
    map ``names`` maps artifact names below ``member`` to the paths that
    they store.
    """
    for name, path in names.items():
        head = parent_path(name)
        while head:
            if head in names:
                raise TreepatchPathError(
                    f"Cannot store '{path}': {member}/{head} is also the "
                    f"artifact for '{names[head]}'"
                )
            head = parent_path(head)


class ChangeSetStore:
    """
    Read and write ``ChangeSet`` objects in a directory.
    """

    def __init__(self, root: str):
        """
        Initialise a new ``ChangeSetStore`` object.

        :param root: The store directory. Created on ``write()`` if it does
                     not exist.
        :type root: ``str``
        """
        self.root = root

    def __repr__(self):
        return f"ChangeSetStore({self.root!r})"

    def _member(self, name: str) -> str:
        return os.path.join(self.root, name)

    def diff_path(self, path: str, kind: DiffKind) -> str:
        """
        Return the location of the diff artifact of ``kind`` for ``path``.
        """
        return join_relative(self._member(DIFFS_DIR), path) + f".{kind.value}"

    def added_path(self, path: str) -> str:
        """
        Return the location of the snapshot for the added file ``path``.
        """
        return join_relative(self._member(ADDED_DIR), path)

    def existing_members(self) -> List[str]:
        """
        Return the names of the store layout members present in the store
        directory.
        """
        return [
            name for name in STORE_MEMBERS if os.path.lexists(self._member(name))
        ]

    def exists(self) -> bool:
        """
        Return ``True`` if any member of the store layout is present.
        """
        return bool(self.existing_members())

    def remove(self):
        """
        Remove every member of the store layout. Other content of the store
        directory is left in place.
        """
        for name in self.existing_members():
            member = self._member(name)
            _log_debug_store("Removing store member '%s'", member)
            try:
                if os.path.isdir(member) and not os.path.islink(member):
                    shutil.rmtree(member)
                else:
                    os.unlink(member)
            except OSError as err:
                raise TreepatchSystemError(
                    f"Error removing store member '{member}': {err}"
                ) from err

    @staticmethod
    def _check_storable(changeset: ChangeSet):
        for attr in LIST_FILES.values():
            for path in getattr(changeset, attr):
                if "\n" in path:
                    raise TreepatchPathError(
                        f"Cannot store path containing a line break: {path!r}"
                    )
                check_relative_path(path)
        for path in changeset.changed_files:
            if path not in changeset.diffs:
                raise TreepatchPathError(f"Changed file '{path}' has no diff artifact")
        for path in changeset.added_files:
            if path not in changeset.added:
                raise TreepatchPathError(f"Added file '{path}' has no snapshot")

        diff_names = {
            f"{path}.{changeset.diffs[path].kind.value}": path
            for path in changeset.changed_files
        }
        _check_artifact_names(DIFFS_DIR, diff_names)
        _check_artifact_names(ADDED_DIR, {path: path for path in changeset.added_files})

    def _write_list(self, name: str, paths: List[str]):
        with open(
            self._member(name), "w", encoding=_ENCODING, errors=_ERRORS, newline="\n"
        ) as fp:
            for path in paths:
                fp.write(f"{path}\n")

    def write(self, changeset: ChangeSet, overwrite: bool = False):
        """
        Write ``changeset`` to this store.

        :param changeset: The change-set to write.
        :type changeset: ``ChangeSet``
        :param overwrite: Replace the members of an existing store.
        :type overwrite: ``bool``
        :raises AlreadyExistsError: If a store member exists and
                                    ``overwrite`` is ``False``.
        :raises TreepatchPathError: If a path cannot be stored.
        """
        existing = self.existing_members()
        if existing and not overwrite:
            raise AlreadyExistsError(
                f"Change-set store '{self.root}' already exists "
                f"({', '.join(existing)})"
            )
        self._check_storable(changeset)

        if existing:
            _log_info("Replacing change-set store %s", self.root)
            self.remove()

        _log_info("Writing change-set to %s", self.root)
        try:
            os.makedirs(self.root, exist_ok=True)
            for name, attr in LIST_FILES.items():
                self._write_list(name, getattr(changeset, attr))
            os.mkdir(self._member(DIFFS_DIR))
            os.mkdir(self._member(ADDED_DIR))

            for path in changeset.changed_files:
                diff = changeset.diffs[path]
                dest = self.diff_path(path, diff.kind)
                os.makedirs(os.path.dirname(dest), exist_ok=True)
                _log_debug_store("Writing %s artifact '%s'", diff.kind.value, dest)
                diff.write_to(dest)

            for path in changeset.added_files:
                dest = self.added_path(path)
                os.makedirs(os.path.dirname(dest), exist_ok=True)
                _log_debug_store("Writing snapshot '%s'", dest)
                changeset.added[path].write_to(dest, preserve_metadata=True)
        except OSError as err:
            raise TreepatchSystemError(
                f"Error writing change-set store '{self.root}': {err}"
            ) from err

    def _read_list(self, name: str) -> List[str]:
        member = self._member(name)
        try:
            with open(member, "r", encoding=_ENCODING, errors=_ERRORS, newline="\n") as fp:
                lines = fp.read().split("\n")
        except FileNotFoundError as err:
            raise MissingStoreError(
                f"Change-set store '{self.root}' has no {name}"
            ) from err
        except OSError as err:
            raise TreepatchSystemError(f"Error reading '{member}': {err}") from err

        paths = []
        for line in lines:
            if not line:
                continue
            try:
                paths.append(check_relative_path(line))
            except TreepatchPathError as err:
                raise MissingStoreError(f"Invalid entry in {name}: {err}") from err
        return paths

    def _require_dir(self, name: str, list_name: str):
        if not os.path.isdir(self._member(name)):
            raise MissingStoreError(
                f"Change-set store '{self.root}' lists entries in {list_name} "
                f"but has no {name}/ directory"
            )

    def read(self) -> ChangeSet:
        """
        Read a ``ChangeSet`` from this store. The artifacts of the returned
        change-set refer to files in the store.

        :returns: The stored change-set.
        :rtype: ``ChangeSet``
        :raises MissingStoreError: If the store is missing, incomplete or
                                   inconsistent.
        """
        if not os.path.isdir(self.root):
            raise MissingStoreError(f"Change-set store '{self.root}' does not exist")

        lists = {attr: self._read_list(name) for name, attr in LIST_FILES.items()}

        diffs: Dict[str, DiffArtifact] = {}
        if lists["changed_files"]:
            self._require_dir(DIFFS_DIR, CHANGED_FILES)
        for path in lists["changed_files"]:
            for kind in (DiffKind.TEXT, DiffKind.COPY):
                source = self.diff_path(path, kind)
                if os.path.isfile(source):
                    diffs[path] = DiffArtifact(kind, source=source)
                    break
            else:
                raise MissingStoreError(f"No diff artifact for changed file '{path}'")

        added: Dict[str, Artifact] = {}
        if lists["added_files"]:
            self._require_dir(ADDED_DIR, ADDED_FILES)
        for path in lists["added_files"]:
            source = self.added_path(path)
            if not os.path.isfile(source):
                raise MissingStoreError(f"No snapshot for added file '{path}'")
            added[path] = Artifact(source=source)

        changeset = ChangeSet(diffs=diffs, added=added, **lists)
        _log_debug_store("Read %r from %s", changeset, self.root)
        return changeset


__all__ = [
    "ADDED_DIR",
    "ADDED_DIRS",
    "ADDED_FILES",
    "CHANGED_FILES",
    "ChangeSetStore",
    "DIFFS_DIR",
    "REMOVED_DIRS",
    "REMOVED_FILES",
]
