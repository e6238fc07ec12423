# Copyright Red Hat
#
# treepatch/treediff/changeset.py - Tree patch change-sets
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Change-set representation.

A ``ChangeSet`` records the difference between two trees as five ordered
lists of relative paths together with the artifacts needed to replay the
changes: a unified diff or full copy for each changed file and a snapshot
for each added file.
"""
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING
from enum import Enum
import logging
import shutil
import json

from treepatch import TreepatchSystemError
from treepatch.progress import TermControl

if TYPE_CHECKING:
    from .pathfilter import PathFilter

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class Artifact:
    """
    A blob of content held either in memory or in a file on disk.
    """

    def __init__(self, data: Optional[bytes] = None, source: Optional[str] = None):
        """
        Initialise a new ``Artifact`` object. Exactly one of ``data`` or
        ``source`` must be given.

        :param data: The artifact content.
        :type data: ``Optional[bytes]``
        :param source: The path of a file holding the artifact content.
        :type source: ``Optional[str]``
        """
        if (data is None) == (source is None):
            raise ValueError("Artifact requires exactly one of data or source")
        self.data = data
        self.source = source

    def __repr__(self):
        if self.source is not None:
            return f"{self.__class__.__name__}(source={self.source!r})"
        return f"{self.__class__.__name__}(data=<{len(self.data)} bytes>)"

    def read_bytes(self) -> bytes:
        """
        Return the content of this artifact.

        :returns: The artifact content.
        :rtype: ``bytes``
        """
        if self.data is not None:
            return self.data
        try:
            with open(self.source, "rb") as fp:
                return fp.read()
        except OSError as err:
            raise TreepatchSystemError(
                f"Error reading artifact '{self.source}': {err}"
            ) from err

    def write_to(self, dest: str, preserve_metadata: bool = False):
        """
        Write the content of this artifact to the file at ``dest``.

        :param dest: The destination path. Any existing file is replaced.
        :type dest: ``str``
        :param preserve_metadata: Copy the permission bits and timestamps of
                                  the source file along with its content.
        :type preserve_metadata: ``bool``
        """
        try:
            if self.data is not None:
                with open(dest, "wb") as fp:
                    fp.write(self.data)
            elif preserve_metadata:
                shutil.copy2(self.source, dest)
            else:
                shutil.copyfile(self.source, dest)
        except OSError as err:
            raise TreepatchSystemError(
                f"Error writing artifact to '{dest}': {err}"
            ) from err


class DiffKind(Enum):
    """
    Kinds of changed file artifact.
    """

    #: A unified diff transforming the original content.
    TEXT = "diff"
    #: A full copy of the updated file.
    COPY = "copy"


class DiffArtifact(Artifact):
    """
    The artifact recorded for a changed file.
    """

    def __init__(
        self, kind: DiffKind, data: Optional[bytes] = None, source: Optional[str] = None
    ):
        super().__init__(data=data, source=source)
        self.kind = kind

    def __repr__(self):
        return f"{super().__repr__()[:-1]}, kind={self.kind})"

    @property
    def is_textual(self) -> bool:
        """``True`` if this artifact is a unified diff."""
        return self.kind == DiffKind.TEXT


def _unique(paths: Optional[Iterable[str]]) -> List[str]:
    return list(dict.fromkeys(paths or ()))


class ChangeSet:
    """
    The classified differences between two trees.
    """

    #: Names of the path list attributes in application order.
    LISTS = (
        "removed_files",
        "removed_dirs",
        "changed_files",
        "added_dirs",
        "added_files",
    )

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        removed_files: Optional[Iterable[str]] = None,
        removed_dirs: Optional[Iterable[str]] = None,
        added_files: Optional[Iterable[str]] = None,
        added_dirs: Optional[Iterable[str]] = None,
        changed_files: Optional[Iterable[str]] = None,
        diffs: Optional[Dict[str, DiffArtifact]] = None,
        added: Optional[Dict[str, Artifact]] = None,
    ):
        """
        Initialise a new ``ChangeSet`` object.

        :param removed_files: Files present only in the original tree.
        :param removed_dirs: Directories present only in the original tree.
        :param added_files: Files present only in the updated tree.
        :param added_dirs: Directories present only in the updated tree.
        :param changed_files: Files present in both trees with different
                              content.
        :param diffs: Map of changed file paths to ``DiffArtifact`` objects.
        :param added: Map of added file paths to snapshot ``Artifact``
                      objects.
        """
        self.removed_files: List[str] = _unique(removed_files)
        self.removed_dirs: List[str] = _unique(removed_dirs)
        self.added_files: List[str] = _unique(added_files)
        self.added_dirs: List[str] = _unique(added_dirs)
        self.changed_files: List[str] = _unique(changed_files)
        self.diffs: Dict[str, DiffArtifact] = dict(diffs or {})
        self.added: Dict[str, Artifact] = dict(added or {})

    def __repr__(self):
        counts = ", ".join(f"{name}=<{len(getattr(self, name))}>" for name in self.LISTS)
        return f"ChangeSet({counts})"

    def __eq__(self, other):
        if not isinstance(other, ChangeSet):
            return NotImplemented
        return all(getattr(self, name) == getattr(other, name) for name in self.LISTS)

    def add_removed_file(self, path: str):
        """Record a file present only in the original tree."""
        if path not in self.removed_files:
            self.removed_files.append(path)

    def add_removed_dir(self, path: str):
        """Record a directory present only in the original tree."""
        if path not in self.removed_dirs:
            self.removed_dirs.append(path)

    def add_added_dir(self, path: str):
        """Record a directory present only in the updated tree."""
        if path not in self.added_dirs:
            self.added_dirs.append(path)

    def add_added_file(self, path: str, snapshot: Artifact):
        """
        Record a file present only in the updated tree.

        :param path: The relative path of the added file.
        :type path: ``str``
        :param snapshot: A full copy of the added file.
        :type snapshot: ``Artifact``
        """
        if path not in self.added_files:
            self.added_files.append(path)
        self.added[path] = snapshot

    def add_changed_file(self, path: str, diff: DiffArtifact):
        """
        Record a file whose content differs between the two trees.

        :param path: The relative path of the changed file.
        :type path: ``str``
        :param diff: The artifact transforming the original content.
        :type diff: ``DiffArtifact``
        """
        if path not in self.changed_files:
            self.changed_files.append(path)
        self.diffs[path] = diff

    @property
    def total_changes(self) -> int:
        """
        Return the total number of paths recorded in this ``ChangeSet``.

        :returns: Count of changes.
        :rtype: ``int``
        """
        return sum(len(getattr(self, name)) for name in self.LISTS)

    @property
    def is_empty(self) -> bool:
        """``True`` if this ``ChangeSet`` records no changes."""
        return self.total_changes == 0

    @property
    def text_diffs(self) -> int:
        """Return the number of changed files recorded as unified diffs."""
        return len(
            [p for p in self.changed_files if p in self.diffs and self.diffs[p].is_textual]
        )

    def filtered(self, path_filter: "PathFilter") -> "ChangeSet":
        """
        Return a new ``ChangeSet`` restricted to the paths accepted by
        ``path_filter``. Artifacts are shared with this instance.

        :param path_filter: The filter to apply.
        :type path_filter: ``PathFilter``
        :returns: A new, filtered ``ChangeSet``.
        :rtype: ``ChangeSet``
        """

        def _select(paths: List[str], is_dir: bool = False) -> List[str]:
            return [p for p in paths if path_filter.accepts_tree(p, is_dir=is_dir)]

        changed_files = _select(self.changed_files)
        added_files = _select(self.added_files)
        return ChangeSet(
            removed_files=_select(self.removed_files),
            removed_dirs=_select(self.removed_dirs, is_dir=True),
            added_files=added_files,
            added_dirs=_select(self.added_dirs, is_dir=True),
            changed_files=changed_files,
            diffs={p: self.diffs[p] for p in changed_files if p in self.diffs},
            added={p: self.added[p] for p in added_files if p in self.added},
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``ChangeSet`` object into a dictionary representation
        suitable for encoding as JSON.

        :returns: A dictionary mapping this instance's keys to values.
        :rtype: ``Dict[str, Any]``
        """
        out: Dict[str, Any] = {name: list(getattr(self, name)) for name in self.LISTS}
        out["diff_kinds"] = {path: diff.kind.value for path, diff in self.diffs.items()}
        return out

    def json(self, pretty: bool = False) -> str:
        """
        Return a string representation of this ``ChangeSet`` in JSON
        notation.

        :param pretty: Indent JSON to be human readable.
        :type pretty: ``bool``
        :returns: A JSON representation of this instance.
        :rtype: ``str``
        """
        return json.dumps(self.to_dict(), indent=4 if pretty else None)

    def summary(
        self, color: str = "auto", term_control: Optional[TermControl] = None
    ) -> str:
        """
        Return a summary of this ``ChangeSet`` instance.

        :param color: A string to control color rendering: "auto", "always", or
                      "never".
        :type color: ``str``
        :param term_control: An optional ``TermControl`` instance to use for
                             formatting. The supplied instance overrides any
                             ``color`` argument if set.
        :type term_control: ``Optional[TermControl]``
        :returns: A string summarizing this instance.
        :rtype: ``str``
        """
        tc = term_control or TermControl(color=color)
        return (
            f"Total changes:     {self.total_changes}\n"
            f"  Files {tc.GREEN + 'added:    ' + tc.NORMAL} {len(self.added_files)}\n"
            f"  Files {tc.RED + 'removed:  ' + tc.NORMAL} {len(self.removed_files)}\n"
            f"  Files {tc.YELLOW + 'changed:  ' + tc.NORMAL} {len(self.changed_files)}"
            f" ({self.text_diffs} with diff)\n"
            f"  Dirs  {tc.GREEN + 'added:    ' + tc.NORMAL} {len(self.added_dirs)}\n"
            f"  Dirs  {tc.RED + 'removed:  ' + tc.NORMAL} {len(self.removed_dirs)}"
        )


__all__ = [
    "Artifact",
    "ChangeSet",
    "DiffArtifact",
    "DiffKind",
]
