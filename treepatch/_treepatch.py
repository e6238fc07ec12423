# Copyright Red Hat
#
# treepatch/_treepatch.py - Tree patch global definitions
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level treepatch package.
"""
from typing import Optional, TextIO, Union, TYPE_CHECKING
import logging
import weakref
import sys
import os

if TYPE_CHECKING:
    from .progress import ProgressBase, ThrobberBase

_log = logging.getLogger("treepatch")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Treepatch debugging subsystem mask
TREEPATCH_DEBUG_WALK = 1
TREEPATCH_DEBUG_DIFF = 2
TREEPATCH_DEBUG_STORE = 4
TREEPATCH_DEBUG_APPLY = 8
TREEPATCH_DEBUG_COMMAND = 16
TREEPATCH_DEBUG_ALL = (
    TREEPATCH_DEBUG_WALK
    | TREEPATCH_DEBUG_DIFF
    | TREEPATCH_DEBUG_STORE
    | TREEPATCH_DEBUG_APPLY
    | TREEPATCH_DEBUG_COMMAND
)

# Treepatch debugging subsystem names
TREEPATCH_SUBSYSTEM_WALK = "treepatch.walk"
TREEPATCH_SUBSYSTEM_DIFF = "treepatch.diff"
TREEPATCH_SUBSYSTEM_STORE = "treepatch.store"
TREEPATCH_SUBSYSTEM_APPLY = "treepatch.apply"
TREEPATCH_SUBSYSTEM_COMMAND = "treepatch.command"

_DEBUG_MASK_TO_SUBSYSTEM = {
    TREEPATCH_DEBUG_WALK: TREEPATCH_SUBSYSTEM_WALK,
    TREEPATCH_DEBUG_DIFF: TREEPATCH_SUBSYSTEM_DIFF,
    TREEPATCH_DEBUG_STORE: TREEPATCH_SUBSYSTEM_STORE,
    TREEPATCH_DEBUG_APPLY: TREEPATCH_SUBSYSTEM_APPLY,
    TREEPATCH_DEBUG_COMMAND: TREEPATCH_SUBSYSTEM_COMMAND,
}

_debug_subsystems = set()

# Registry of active progress instances: uses a WeakSet so we don't prevent
# garbage collection.
_active_progress: weakref.WeakSet = weakref.WeakSet()

#: Separator used for all relative paths, regardless of ``os.sep``.
PATH_SEP = "/"


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``treepatch`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    treepatch_log = logging.getLogger("treepatch")

    for handler in treepatch_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``treepatch`` package.

    :param mask: the logical OR of the ``TREEPATCH_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > TREEPATCH_DEBUG_ALL:
        raise ValueError(f"Invalid treepatch debug mask: {mask}")

    enabled_subsystems = [
        name for flag, name in _DEBUG_MASK_TO_SUBSYSTEM.items() if mask & flag
    ]

    treepatch_log = logging.getLogger("treepatch")
    for handler in treepatch_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def register_progress(progress: Union["ProgressBase", "ThrobberBase"]):
    """Register a progress instance for log coordination."""
    _active_progress.add(progress)
    progress.registered = True


def unregister_progress(progress: Union["ProgressBase", "ThrobberBase"]):
    """Unregister a progress instance."""
    _active_progress.discard(progress)
    progress.registered = False


def notify_log_output(stream: TextIO):
    """
    Notify progress instances that log output occurred on stream.

    Called by ProgressAwareHandler after emitting a record.

    :param stream: The stream that received output.
    :type stream: ``TextIO``
    """
    if stream not in (sys.stdout, sys.stderr):
        return
    for progress in list(_active_progress):
        if hasattr(progress, "reset_position"):
            progress.reset_position()


class ProgressAwareHandler(logging.StreamHandler):
    """
    A logging handler that coordinates with active Progress instances.

    After emitting a log record, notifies any Progress instances writing
    to the same stream so they can avoid erasing the log message.
    """

    def __init__(self, stream: Optional[TextIO] = None, **kwargs):
        super().__init__(stream=stream or sys.stderr, **kwargs)

    def emit(self, record):
        try:
            msg = self.format(record)
            self.stream.write(msg + "\n")
            self.stream.flush()
            notify_log_output(self.stream)
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)


#
# Treepatch exception types
#


class TreepatchError(Exception):
    """
    Base class for tree patch errors.
    """


class TreepatchSystemError(TreepatchError):
    """
    An error when calling the operating system.
    """


class TreepatchCalloutError(TreepatchError):
    """
    An error calling out to an external program.
    """


class TreepatchPathError(TreepatchError):
    """
    An invalid relative path was supplied: for example an absolute path,
    a path escaping the tree root, or one that cannot be stored.
    """


class EnumerationError(TreepatchError):
    """
    A tree could not be enumerated: the filter predicate is invalid or
    the traversal itself failed.
    """


class AlreadyExistsError(TreepatchError):
    """
    A change-set store already exists at the requested location.
    """


class CopyConflictError(TreepatchError):
    """
    The destination for a tree copy already exists.
    """


class MissingStoreError(TreepatchError):
    """
    The change-set store is missing or internally inconsistent.
    """


class PatchApplyError(TreepatchError):
    """
    A stored textual diff does not apply cleanly to the target file.
    """

    def __init__(self, path: str, reason: str):
        """
        Initialise a new ``PatchApplyError`` exception.

        :param path: The relative path of the file being patched.
        :param reason: Description of the failure.
        """
        self.path, self.reason = path, reason
        super().__init__(f"Patch for '{path}' does not apply: {reason}")


class MissingAncestorError(TreepatchError):
    """
    The parent directory of an added file does not exist.
    """


#
# Relative path helpers
#


def to_relative_path(root: str, path: str) -> str:
    """
    Convert ``path`` below ``root`` into a slash-delimited relative path.

    :param root: The tree root.
    :type root: ``str``
    :param path: A path at or below ``root``.
    :type path: ``str``
    :returns: ``path`` relative to ``root`` using ``PATH_SEP``.
    :rtype: ``str``
    """
    rel = os.path.relpath(path, root)
    if os.sep != PATH_SEP:
        rel = rel.replace(os.sep, PATH_SEP)
    return rel


def check_relative_path(path: str) -> str:
    """
    Validate a relative path read from an untrusted source.

    :param path: The relative path to check.
    :type path: ``str``
    :returns: ``path`` unchanged.
    :rtype: ``str``
    :raises TreepatchPathError: If ``path`` is empty, absolute, or contains
                                an empty, ``.`` or ``..`` component.
    """
    if not path:
        raise TreepatchPathError("Empty relative path")
    if path.startswith(PATH_SEP) or os.path.isabs(path):
        raise TreepatchPathError(f"Absolute path not allowed: '{path}'")
    for part in path.split(PATH_SEP):
        if part in ("", ".", ".."):
            raise TreepatchPathError(f"Invalid path component in '{path}'")
    return path


def join_relative(root: str, path: str) -> str:
    """
    Join a relative path onto a native ``root`` path.

    :param root: The tree root.
    :type root: ``str``
    :param path: A slash-delimited relative path.
    :type path: ``str``
    :returns: The native path for ``path`` below ``root``.
    :rtype: ``str``
    """
    return os.path.join(root, *path.split(PATH_SEP))


def parent_path(path: str) -> str:
    """
    Return the relative parent of ``path``, or the empty string for
    top-level entries.
    """
    return path.rpartition(PATH_SEP)[0]


__all__ = [
    "TREEPATCH_DEBUG_WALK",
    "TREEPATCH_DEBUG_DIFF",
    "TREEPATCH_DEBUG_STORE",
    "TREEPATCH_DEBUG_APPLY",
    "TREEPATCH_DEBUG_COMMAND",
    "TREEPATCH_DEBUG_ALL",
    # Debug logging - subsystem name interface
    "SubsystemFilter",
    "TREEPATCH_SUBSYSTEM_WALK",
    "TREEPATCH_SUBSYSTEM_DIFF",
    "TREEPATCH_SUBSYSTEM_STORE",
    "TREEPATCH_SUBSYSTEM_APPLY",
    "TREEPATCH_SUBSYSTEM_COMMAND",
    "set_debug_mask",
    "get_debug_mask",
    # Progress log callbacks
    "register_progress",
    "unregister_progress",
    "notify_log_output",
    "ProgressAwareHandler",
    # Exceptions
    "TreepatchError",
    "TreepatchSystemError",
    "TreepatchCalloutError",
    "TreepatchPathError",
    "EnumerationError",
    "AlreadyExistsError",
    "CopyConflictError",
    "MissingStoreError",
    "PatchApplyError",
    "MissingAncestorError",
    # Relative paths
    "PATH_SEP",
    "to_relative_path",
    "check_relative_path",
    "join_relative",
    "parent_path",
]
