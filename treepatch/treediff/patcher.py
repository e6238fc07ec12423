# Copyright Red Hat
#
# treepatch/treediff/patcher.py - Tree patch unified diff application
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Unified diff application.

``UnifiedPatcher`` applies a unified diff in-process and only succeeds if
every hunk matches the target content exactly at the line numbers recorded
in the diff. ``ExternalPatcher`` hands the diff to the ``patch`` program.
"""
from subprocess import run, CalledProcessError, TimeoutExpired
from typing import List, Optional, Sequence, Tuple
from abc import ABC, abstractmethod
import logging
import shlex
import re
import os

from treepatch import (
    PatchApplyError,
    TreepatchCalloutError,
    TreepatchSystemError,
    TREEPATCH_SUBSYSTEM_APPLY,
)

from .contentdiff import decode_text, encode_text, split_lines

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_apply(msg, *args, **kwargs):
    """A wrapper for apply subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREEPATCH_SUBSYSTEM_APPLY}, **kwargs)


#: Default external patch command.
PATCH_CMD = "patch"

_PATCH_TIMEOUT = int(os.getenv("TREEPATCH_PATCH_TIMEOUT", "60"))

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


class Hunk:
    """
    A single hunk of a unified diff.
    """

    def __init__(self, old_start: int, old_count: int, new_start: int, new_count: int):
        self.old_start = old_start
        self.old_count = old_count
        self.new_start = new_start
        self.new_count = new_count
        #: List of ``(tag, line)`` tuples; tag is one of " ", "-" or "+".
        self.lines: List[Tuple[str, str]] = []

    def __repr__(self):
        return (
            f"Hunk(-{self.old_start},{self.old_count} "
            f"+{self.new_start},{self.new_count}, {len(self.lines)} lines)"
        )

    @property
    def old_lines(self) -> List[str]:
        """The lines this hunk expects to find in the original content."""
        return [line for tag, line in self.lines if tag != "+"]

    @property
    def new_lines(self) -> List[str]:
        """The lines this hunk produces in the updated content."""
        return [line for tag, line in self.lines if tag != "-"]

    @property
    def complete(self) -> bool:
        """``True`` once the line counts in the hunk header are satisfied."""
        return (
            len(self.old_lines) >= self.old_count
            and len(self.new_lines) >= self.new_count
        )


def parse_unified_diff(text: str) -> List[Hunk]:
    """
    Parse the hunks of a single-file unified diff.

    :param text: The unified diff text.
    :type text: ``str``
    :returns: The hunks of the diff in order.
    :rtype: ``List[Hunk]``
    :raises ValueError: If the diff is malformed.
    """
    hunks: List[Hunk] = []
    hunk: Optional[Hunk] = None
    for lineno, line in enumerate(split_lines(text), start=1):
        if line.startswith("\\"):
            if not hunk or not hunk.lines:
                raise ValueError(f"Unexpected '\\' marker at diff line {lineno}")
            tag, last = hunk.lines[-1]
            hunk.lines[-1] = (tag, last[:-1] if last.endswith("\n") else last)
            continue

        if hunk is not None and not hunk.complete:
            tag = line[:1]
            if tag not in (" ", "-", "+"):
                raise ValueError(f"Malformed hunk line {lineno}: {line.rstrip()}")
            hunk.lines.append((tag, line[1:]))
            continue

        match = _HUNK_HEADER_RE.match(line)
        if match:
            old_start, old_count, new_start, new_count = match.groups()
            hunk = Hunk(
                int(old_start),
                int(old_count) if old_count is not None else 1,
                int(new_start),
                int(new_count) if new_count is not None else 1,
            )
            hunks.append(hunk)
        elif hunks:
            # Only the file header may precede the first hunk.
            raise ValueError(f"Unexpected content at diff line {lineno}")

    if hunk is not None and not hunk.complete:
        raise ValueError("Truncated hunk at end of diff")
    return hunks


def apply_hunks(original: Sequence[str], hunks: Sequence[Hunk]) -> List[str]:
    """
    Apply ``hunks`` to the lines of ``original``.

    :param original: The original content as a sequence of lines.
    :type original: ``Sequence[str]``
    :param hunks: The hunks to apply, in order.
    :type hunks: ``Sequence[Hunk]``
    :returns: The updated content as a list of lines.
    :rtype: ``List[str]``
    :raises ValueError: If any hunk does not match exactly.
    """
    result: List[str] = []
    cursor = 0
    for number, hunk in enumerate(hunks, start=1):
        expected = hunk.old_lines
        # A hunk with no original lines inserts after line ``old_start``.
        position = hunk.old_start if hunk.old_count == 0 else hunk.old_start - 1
        if position < cursor:
            raise ValueError(f"hunk #{number} overlaps the previous hunk")
        if original[position : position + len(expected)] != expected:
            raise ValueError(f"hunk #{number} does not match at line {position + 1}")
        result.extend(original[cursor:position])
        result.extend(hunk.new_lines)
        cursor = position + len(expected)
    result.extend(original[cursor:])
    return result


class Patcher(ABC):
    """
    Base class for unified diff application.
    """

    @abstractmethod
    def apply(
        self, target: str, artifact: bytes, check: bool = False, path: Optional[str] = None
    ):
        """
        Apply the unified diff ``artifact`` to the file at ``target``.

        :param target: The native path of the file to patch.
        :type target: ``str``
        :param artifact: The unified diff to apply.
        :type artifact: ``bytes``
        :param check: Only verify that the diff applies; leave ``target``
                      unmodified.
        :type check: ``bool``
        :param path: The relative path used in error reports. Defaults to
                     ``target``.
        :type path: ``Optional[str]``
        :raises PatchApplyError: If the diff does not apply.
        """


class UnifiedPatcher(Patcher):
    """
    In-process strict unified diff application.
    """

    def apply(
        self, target: str, artifact: bytes, check: bool = False, path: Optional[str] = None
    ):
        path = path or target
        try:
            with open(target, "rb") as fp:
                original = fp.read()
        except FileNotFoundError as err:
            raise PatchApplyError(path, "target file does not exist") from err
        except OSError as err:
            raise TreepatchSystemError(f"Error reading '{target}': {err}") from err

        try:
            hunks = parse_unified_diff(decode_text(artifact))
            if not hunks:
                raise ValueError("diff contains no hunks")
            updated = apply_hunks(split_lines(decode_text(original)), hunks)
        except ValueError as err:
            raise PatchApplyError(path, str(err)) from err

        _log_debug_apply(
            "%s %d hunks to '%s'", "Checked" if check else "Applying", len(hunks), path
        )
        if check:
            return

        try:
            with open(target, "wb") as fp:
                fp.write(encode_text("".join(updated)))
        except OSError as err:
            raise TreepatchSystemError(f"Error writing '{target}': {err}") from err


class ExternalPatcher(Patcher):
    """
    Unified diff application using the ``patch`` program.
    """

    def __init__(self, patch_command: str = PATCH_CMD):
        """
        Initialise a new ``ExternalPatcher`` object.

        :param patch_command: The patch command to run. May include
                              additional arguments.
        :type patch_command: ``str``
        """
        self.patch_cmd: List[str] = shlex.split(patch_command)
        if not self.patch_cmd:
            raise ValueError("Empty patch command")

    def apply(
        self, target: str, artifact: bytes, check: bool = False, path: Optional[str] = None
    ):
        path = path or target
        if not os.path.isfile(target):
            raise PatchApplyError(path, "target file does not exist")

        patch_cmd = self.patch_cmd + [
            "--batch",
            "--forward",
            "--silent",
            "--fuzz=0",
            "--no-backup-if-mismatch",
            "--reject-file=-",
        ]
        if check:
            patch_cmd.append("--dry-run")
        patch_cmd.append(target)

        _log_debug_apply("Calling %s", " ".join(patch_cmd))
        try:
            run(
                patch_cmd,
                input=decode_text(artifact),
                check=True,
                capture_output=True,
                encoding="utf8",
                errors="surrogateescape",
                timeout=_PATCH_TIMEOUT,
            )
        except FileNotFoundError as err:
            raise TreepatchCalloutError(
                f"Patch command '{self.patch_cmd[0]}' not found"
            ) from err
        except TimeoutExpired as err:
            raise TreepatchCalloutError(
                f"Timed out calling {self.patch_cmd[0]} for '{path}': {err}"
            ) from err
        except CalledProcessError as err:
            reason = (err.stdout or err.stderr or "").strip() or f"exit {err.returncode}"
            raise PatchApplyError(path, reason) from err


__all__ = [
    "ExternalPatcher",
    "Hunk",
    "PATCH_CMD",
    "Patcher",
    "UnifiedPatcher",
    "apply_hunks",
    "parse_unified_diff",
]
