# Copyright Red Hat
#
# treepatch/treediff/options.py - Tree patch diff and apply options
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree diff and apply options.
"""
from dataclasses import dataclass, field, fields
from typing import Optional, Tuple, Union
from argparse import Namespace
import logging

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

_PATTERN_FIELDS = ("include_patterns", "exclude_patterns")


def _join_tuple(val: Tuple[str, ...]) -> str:
    """
    Convert string tuples into space separated strings.

    :param val: The value to join.
    :type val: ``Tuple[str, ...]``
    :returns: The string tuple value converted to a space separated
              string.
    :rtype: ``str``
    """
    return " ".join(val)


def _options_str(options) -> str:
    items = [
        (key, val) if not isinstance(val, tuple) else (key, _join_tuple(val))
        for key, val in options.__dict__.items()
    ]
    return "\n".join(f"{key}={val}" for key, val in items)


def _options_kwargs(cls, cmd_args: Namespace):
    def get_value(name: str) -> Union[bool, Optional[str], Tuple[str, ...]]:
        attr = getattr(cmd_args, name)
        if isinstance(attr, list):
            return tuple(attr)
        if attr is None and name in _PATTERN_FIELDS:
            return ()
        if attr is None and name in ("dry_run", "verbose", "overwrite", "quiet"):
            return False
        return attr

    field_names = {f.name for f in fields(cls)}
    return {name: get_value(name) for name in field_names if hasattr(cmd_args, name)}


@dataclass(frozen=True)
class DiffOptions:
    """
    Tree comparison options.
    """

    #: Path patterns to include (glob, or regex with a ``re:`` prefix)
    include_patterns: Tuple[str, ...] = field(default_factory=tuple)
    #: Path patterns to exclude (glob, or regex with a ``re:`` prefix)
    exclude_patterns: Tuple[str, ...] = field(default_factory=tuple)
    #: Convert CRLF and CR line endings to LF before comparing files
    normalize_line_endings: bool = False
    #: Replace an existing change-set store
    overwrite: bool = False
    #: Do not output progress or status updates
    quiet: bool = False

    def __str__(self):
        """
        Return a human readable string representation of this
        ``DiffOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        return _options_str(self)

    @classmethod
    def from_cmd_args(cls, cmd_args: Namespace) -> "DiffOptions":
        """
        Initialise DiffOptions from command line arguments.

        Construct a new ``DiffOptions`` object from the command line
        arguments in ``cmd_args``.

        :param cmd_args: The command line selection arguments.
        :type cmd_args: ``Namespace``
        :returns: A new ``DiffOptions`` instance
        :rtype: ``DiffOptions``
        """
        options = cls(**_options_kwargs(cls, cmd_args))
        _log_debug("Initialised DiffOptions from arguments: %s", repr(options))
        return options


@dataclass(frozen=True)
class ApplyOptions:
    """
    Change-set application options.
    """

    #: Validate and report every action without modifying any tree
    dry_run: bool = False
    #: Report every action taken
    verbose: bool = False
    #: Clone the target tree to this path and apply the changes there
    copy_to: Optional[str] = None
    #: Replace an existing ``copy_to`` destination
    overwrite: bool = False
    #: Do not output progress or status updates
    quiet: bool = False

    def __str__(self):
        """
        Return a human readable string representation of this
        ``ApplyOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        return _options_str(self)

    @classmethod
    def from_cmd_args(cls, cmd_args: Namespace) -> "ApplyOptions":
        """
        Initialise ApplyOptions from command line arguments.

        :param cmd_args: The command line selection arguments.
        :type cmd_args: ``Namespace``
        :returns: A new ``ApplyOptions`` instance
        :rtype: ``ApplyOptions``
        """
        options = cls(**_options_kwargs(cls, cmd_args))
        _log_debug("Initialised ApplyOptions from arguments: %s", repr(options))
        return options


__all__ = [
    "ApplyOptions",
    "DiffOptions",
]
