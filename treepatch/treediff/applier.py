# Copyright Red Hat
#
# treepatch/treediff/applier.py - Tree patch change-set application
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Change-set application.

A ``ChangeSet`` is applied to a target tree in a fixed sequence of phases.
Each phase completes before the next begins and the first fatal error
stops the run: changes made by earlier phases are left in place. Removal
and directory creation are idempotent, so an interrupted run can be
repeated once the cause of the failure has been corrected.
"""
from typing import Callable, Dict, Iterator, List, Optional, Set
from enum import Enum
import logging
import shutil
import os

from treepatch import (
    MissingAncestorError,
    MissingStoreError,
    PatchApplyError,
    TreepatchSystemError,
    TREEPATCH_SUBSYSTEM_APPLY,
    PATH_SEP,
    join_relative,
    parent_path,
)
from treepatch.progress import ProgressBase, ProgressFactory, TermControl

from .changeset import ChangeSet, DiffKind
from .cloner import CopyTreeCloner, TreeCloner
from .options import ApplyOptions
from .patcher import Patcher, UnifiedPatcher
from .pathset import ReduceMode, reduce_paths
from .treewalk import EntryKind

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_apply(msg, *args, **kwargs):
    """A wrapper for apply subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREEPATCH_SUBSYSTEM_APPLY}, **kwargs)


class ApplyPhase(Enum):
    """
    Change-set application phases in execution order.
    """

    CLONE = "clone"
    REMOVE_FILES = "remove-files"
    REMOVE_DIRS = "remove-dirs"
    CHANGE_FILES = "change-files"
    ADD_DIRS = "add-dirs"
    ADD_FILES = "add-files"


class ApplyAction:
    """
    A single action taken, or planned, while applying a change-set.
    """

    def __init__(self, phase: ApplyPhase, verb: str, path: str):
        """
        Initialise a new ``ApplyAction`` object.

        :param phase: The phase the action belongs to.
        :type phase: ``ApplyPhase``
        :param verb: A short description of the action.
        :type verb: ``str``
        :param path: The relative path acted on, or the clone destination.
        :type path: ``str``
        """
        self.phase = phase
        self.verb = verb
        self.path = path

    def __str__(self):
        return f"{self.verb} {self.path}"

    def __repr__(self):
        return f"ApplyAction({self.phase}, {self.verb!r}, {self.path!r})"

    def __eq__(self, other):
        if not isinstance(other, ApplyAction):
            return NotImplemented
        return (self.phase, self.verb, self.path) == (
            other.phase,
            other.verb,
            other.path,
        )


class ApplyReport:
    """
    The ordered record of the actions of one change-set application.
    """

    def __init__(self, target: str, dry_run: bool = False):
        """
        Initialise a new ``ApplyReport`` object.

        :param target: The root of the tree the changes apply to.
        :type target: ``str``
        :param dry_run: ``True`` if the actions were planned but not taken.
        :type dry_run: ``bool``
        """
        self.target = target
        self.dry_run = dry_run
        self.actions: List[ApplyAction] = []

    def __iter__(self) -> Iterator[ApplyAction]:
        return iter(self.actions)

    def __len__(self):
        return len(self.actions)

    def __str__(self):
        return "\n".join(str(action) for action in self.actions)

    def record(self, phase: ApplyPhase, verb: str, path: str) -> ApplyAction:
        """
        Append a new ``ApplyAction`` to this report.
        """
        action = ApplyAction(phase, verb, path)
        self.actions.append(action)
        return action

    def phase_actions(self, phase: ApplyPhase) -> List[ApplyAction]:
        """
        Return the actions recorded for ``phase``.
        """
        return [action for action in self.actions if action.phase == phase]

    def counts(self) -> Dict[ApplyPhase, int]:
        """
        Return a map of each phase to the number of actions recorded for it.
        """
        return {phase: len(self.phase_actions(phase)) for phase in ApplyPhase}

    def summary(self) -> str:
        """
        Return a per-phase summary of this report.

        :returns: A string summarizing this instance.
        :rtype: ``str``
        """
        mode = " (dry run)" if self.dry_run else ""
        lines = [f"Target: {self.target}{mode}"]
        width = max(len(phase.value) for phase in ApplyPhase) + 1
        for phase, count in self.counts().items():
            lines.append(f"  {phase.value + ':':<{width}} {count}")
        return "\n".join(lines)


class _TreeView:
    """
    The state of the target tree as seen by the phases of one run. During
    a dry run the planned removals and creations are tracked here so that
    later phases are validated against the tree they would find.
    """

    def __init__(self, root: str, dry_run: bool):
        self.root = root
        self.dry_run = dry_run
        self.removed: Set[str] = set()
        self.created: Dict[str, EntryKind] = {}

    def full_path(self, path: str) -> str:
        return join_relative(self.root, path)

    def _planned_removed(self, path: str) -> bool:
        head = path
        while head:
            if head in self.removed:
                return True
            head = parent_path(head)
        return False

    def kind(self, path: str) -> Optional[EntryKind]:
        """
        Return the kind of the entry at ``path`` or ``None`` if absent. Paths
        below an ancestor that is not a directory are absent.
        """
        if self.dry_run:
            if path in self.created:
                return self.created[path]
            if self._planned_removed(path):
                return None
        parent = parent_path(path)
        if parent and self.kind(parent) != EntryKind.DIRECTORY:
            return None
        try:
            return EntryKind.from_mode(os.lstat(self.full_path(path)).st_mode)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as err:
            raise TreepatchSystemError(f"Cannot stat '{path}': {err}") from err

    def mark_removed(self, path: str):
        if not self.dry_run:
            return
        self.removed.add(path)
        prefix = path + PATH_SEP
        for created in [p for p in self.created if p == path or p.startswith(prefix)]:
            del self.created[created]

    def mark_created(self, path: str, kind: EntryKind):
        if not self.dry_run:
            return
        self.created[path] = kind
        if kind == EntryKind.DIRECTORY:
            head = parent_path(path)
            while head:
                self.created.setdefault(head, EntryKind.DIRECTORY)
                head = parent_path(head)


def _os_call(desc: str, func: Callable, *args, **kwargs):
    try:
        return func(*args, **kwargs)
    except OSError as err:
        raise TreepatchSystemError(f"Error {desc}: {err}") from err


class Applier:
    """
    Apply a ``ChangeSet`` to a target tree.
    """

    def __init__(
        self,
        patcher: Optional[Patcher] = None,
        cloner: Optional[TreeCloner] = None,
        term_control: Optional[TermControl] = None,
    ):
        """
        Initialise a new ``Applier`` object.

        :param patcher: The ``Patcher`` used to apply textual diffs.
        :type patcher: ``Optional[Patcher]``
        :param cloner: The ``TreeCloner`` used for ``copy_to`` runs.
        :type cloner: ``Optional[TreeCloner]``
        :param term_control: Optional pre-initialised terminal control object.
        :type term_control: ``Optional[TermControl]``
        """
        self.patcher: Patcher = patcher or UnifiedPatcher()
        self.cloner: TreeCloner = cloner or CopyTreeCloner()
        self.term_control = term_control

    # Per-run state
    _report: ApplyReport
    _view: _TreeView
    _options: ApplyOptions
    _progress: ProgressBase
    _done: int

    def _act(self, phase: ApplyPhase, verb: str, path: str):
        action = self._report.record(phase, verb, path)
        if self._options.verbose and not self._options.dry_run:
            _log_info("%s", action)
        else:
            _log_debug_apply("%s%s", "Planned " if self._options.dry_run else "", action)

    def _step(self, path: str):
        self._done += 1
        self._progress.progress(self._done, path)

    def _clone(self, target: str) -> str:
        copy_to = self._options.copy_to
        if not copy_to:
            return target
        if self._options.dry_run:
            self.cloner.check_destination(copy_to, overwrite=self._options.overwrite)
            self._act(ApplyPhase.CLONE, "clone", copy_to)
            return target
        self.cloner.clone(target, copy_to, overwrite=self._options.overwrite)
        self._act(ApplyPhase.CLONE, "clone", copy_to)
        return copy_to

    def _remove_files(self, paths: List[str]):
        view = self._view
        for path in paths:
            self._step(path)
            kind = view.kind(path)
            if kind is None:
                _log_debug_apply("File '%s' already absent", path)
                continue
            if kind == EntryKind.DIRECTORY:
                raise TreepatchSystemError(f"Cannot remove '{path}': is a directory")
            if not view.dry_run:
                _os_call(f"removing '{path}'", os.unlink, view.full_path(path))
            view.mark_removed(path)
            self._act(ApplyPhase.REMOVE_FILES, "remove", path)

    def _remove_dirs(self, paths: List[str]):
        view = self._view
        for path in paths:
            self._step(path)
            kind = view.kind(path)
            if kind is None:
                _log_debug_apply("Directory '%s' already absent", path)
                continue
            if kind != EntryKind.DIRECTORY:
                raise TreepatchSystemError(
                    f"Cannot remove directory '{path}': not a directory"
                )
            if not view.dry_run:
                _os_call(f"removing '{path}'", shutil.rmtree, view.full_path(path))
            view.mark_removed(path)
            self._act(ApplyPhase.REMOVE_DIRS, "rmtree", path)

    def _check_parent(self, path: str):
        parent = parent_path(path)
        if parent and self._view.kind(parent) != EntryKind.DIRECTORY:
            raise MissingAncestorError(
                f"Parent directory '{parent}' of '{path}' does not exist"
            )

    def _unlink_other(self, phase: ApplyPhase, path: str):
        """
        Remove a symbolic link or special file at ``path`` so that it is
        replaced rather than written through.
        """
        view = self._view
        if not view.dry_run:
            _os_call(f"removing '{path}'", os.unlink, view.full_path(path))
        view.mark_removed(path)
        self._act(phase, "unlink", path)

    def _change_files(self, changeset: ChangeSet):
        view = self._view
        for path in changeset.changed_files:
            self._step(path)
            if path not in changeset.diffs:
                raise MissingStoreError(f"No diff artifact for changed file '{path}'")
            diff = changeset.diffs[path]
            kind = view.kind(path)
            if kind == EntryKind.DIRECTORY:
                raise TreepatchSystemError(f"Cannot change '{path}': is a directory")

            if diff.kind == DiffKind.TEXT:
                if kind != EntryKind.FILE:
                    raise PatchApplyError(path, "target file does not exist")
                self.patcher.apply(
                    view.full_path(path),
                    diff.read_bytes(),
                    check=view.dry_run,
                    path=path,
                )
                self._act(ApplyPhase.CHANGE_FILES, "patch", path)
            else:
                self._check_parent(path)
                if kind == EntryKind.OTHER:
                    self._unlink_other(ApplyPhase.CHANGE_FILES, path)
                if not view.dry_run:
                    diff.write_to(view.full_path(path))
                view.mark_created(path, EntryKind.FILE)
                self._act(ApplyPhase.CHANGE_FILES, "replace", path)

    def _add_dirs(self, paths: List[str], replace: Set[str]):
        view = self._view
        for path in paths:
            self._step(path)
            heads = []
            head = path
            while head:
                heads.insert(0, head)
                head = parent_path(head)
            for head in heads:
                kind = view.kind(head)
                if kind == EntryKind.OTHER and head in replace:
                    self._unlink_other(ApplyPhase.ADD_DIRS, head)
                elif kind not in (None, EntryKind.DIRECTORY):
                    raise TreepatchSystemError(
                        f"Cannot create directory '{path}': '{head}' exists "
                        "and is not a directory"
                    )
            if view.kind(path) == EntryKind.DIRECTORY:
                _log_debug_apply("Directory '%s' already exists", path)
                continue
            if not view.dry_run:
                _os_call(
                    f"creating '{path}'",
                    os.makedirs,
                    view.full_path(path),
                    exist_ok=True,
                )
            view.mark_created(path, EntryKind.DIRECTORY)
            self._act(ApplyPhase.ADD_DIRS, "mkdir", path)

    def _add_files(self, changeset: ChangeSet):
        view = self._view
        for path in changeset.added_files:
            self._step(path)
            if path not in changeset.added:
                raise MissingStoreError(f"No snapshot for added file '{path}'")
            self._check_parent(path)
            kind = view.kind(path)
            if kind == EntryKind.DIRECTORY:
                raise TreepatchSystemError(f"Cannot add '{path}': is a directory")
            if kind == EntryKind.OTHER:
                self._unlink_other(ApplyPhase.ADD_FILES, path)
            if not view.dry_run:
                changeset.added[path].write_to(
                    view.full_path(path), preserve_metadata=True
                )
            view.mark_created(path, EntryKind.FILE)
            self._act(ApplyPhase.ADD_FILES, "add", path)

    def apply(
        self,
        changeset: ChangeSet,
        target: str,
        options: Optional[ApplyOptions] = None,
    ) -> ApplyReport:
        """
        Apply ``changeset`` to the tree at ``target``.

        :param changeset: The change-set to apply.
        :type changeset: ``ChangeSet``
        :param target: The root of the tree to modify, or to clone if
                       ``options.copy_to`` is set.
        :type target: ``str``
        :param options: Options controlling application.
        :type options: ``Optional[ApplyOptions]``
        :returns: A report of the actions taken, or planned in a dry run.
        :rtype: ``ApplyReport``
        :raises CopyConflictError: If the clone destination exists.
        :raises PatchApplyError: If a textual diff does not apply.
        :raises MissingAncestorError: If an added file has no parent
                                      directory.
        :raises TreepatchSystemError: If the target cannot be modified.
        """
        options = options or ApplyOptions()
        if not os.path.isdir(target):
            raise TreepatchSystemError(f"Target tree '{target}' is not a directory")

        self._options = options
        self._report = ApplyReport(target, dry_run=options.dry_run)
        _log_info(
            "%s change-set to %s", "Checking" if options.dry_run else "Applying", target
        )

        root = self._clone(target)
        self._report.target = root
        self._view = _TreeView(root, options.dry_run)

        removed_dirs = reduce_paths(changeset.removed_dirs, ReduceMode.TOPMOST)
        added_dirs = reduce_paths(changeset.added_dirs, ReduceMode.BOTTOMMOST)
        total = (
            len(changeset.removed_files)
            + len(removed_dirs)
            + len(changeset.changed_files)
            + len(added_dirs)
            + len(changeset.added_files)
        )

        self._done = 0
        self._progress = ProgressFactory.get_progress(
            f"{'Checking' if options.dry_run else 'Applying'} changes to {root}",
            quiet=options.quiet,
            term_control=self.term_control,
        )
        if not total:
            return self._report

        self._progress.start(total)
        try:
            self._remove_files(changeset.removed_files)
            self._remove_dirs(removed_dirs)
            self._change_files(changeset)
            self._add_dirs(added_dirs, set(changeset.added_dirs))
            self._add_files(changeset)
        except (KeyboardInterrupt, SystemExit):
            self._progress.cancel("Quit!")
            raise
        except Exception:
            self._progress.cancel("failed")
            raise
        self._progress.end(f"{len(self._report)} actions")
        return self._report


__all__ = [
    "ApplyAction",
    "ApplyPhase",
    "ApplyReport",
    "Applier",
]
