# Copyright Red Hat
#
# treepatch/treediff/pathfilter.py - Tree patch path filters
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Path filter predicates for tree walks and change-set selection.

Patterns are shell globs matched with ``fnmatch`` against the relative path
of an entry. A glob without a ``/`` also matches the final path component,
so ``*.o`` selects object files at any depth. Patterns prefixed with
``re:`` are regular expressions searched for in the relative path.
"""
from typing import Callable, Iterable, List, Optional, Tuple
from fnmatch import fnmatchcase
import logging
import re

from treepatch import EnumerationError, PATH_SEP

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Prefix marking a pattern as a regular expression.
REGEX_PREFIX = "re:"

#: Prefix marking an exclude pattern in a filter expression.
EXCLUDE_PREFIX = "!"

#: Separator for patterns in a filter expression.
EXPRESSION_SEP = ","

_Matcher = Callable[[str], bool]


def _compile_pattern(pattern: str) -> _Matcher:
    """
    Compile a single pattern into a matching function.

    :param pattern: A glob, or a regular expression prefixed with ``re:``.
    :type pattern: ``str``
    :returns: A function returning ``True`` if a relative path matches.
    :rtype: ``Callable[[str], bool]``
    :raises EnumerationError: If the pattern is empty or not a valid
                              regular expression.
    """
    if not pattern:
        raise EnumerationError("Empty path filter pattern")

    if pattern.startswith(REGEX_PREFIX):
        expr = pattern[len(REGEX_PREFIX) :]
        if not expr:
            raise EnumerationError(f"Empty regular expression in pattern '{pattern}'")
        try:
            regex = re.compile(expr)
        except re.error as err:
            raise EnumerationError(
                f"Invalid regular expression '{expr}': {err}"
            ) from err
        return lambda path: regex.search(path) is not None

    if PATH_SEP in pattern:
        return lambda path: fnmatchcase(path, pattern)

    def _match(path: str) -> bool:
        return fnmatchcase(path, pattern) or fnmatchcase(
            path.rpartition(PATH_SEP)[2], pattern
        )

    return _match


class PathFilter:
    """
    An include/exclude predicate over relative paths.

    Exclude patterns apply to every entry: an excluded directory is pruned
    together with its subtree. Include patterns apply to non-directory
    entries only, so that directories are always traversed in search of
    matching files. An empty include list accepts every entry.
    """

    def __init__(
        self,
        include_patterns: Optional[Iterable[str]] = None,
        exclude_patterns: Optional[Iterable[str]] = None,
    ):
        """
        Initialise a new ``PathFilter`` object.

        :param include_patterns: Patterns selecting non-directory entries.
        :type include_patterns: ``Optional[Iterable[str]]``
        :param exclude_patterns: Patterns rejecting entries and subtrees.
        :type exclude_patterns: ``Optional[Iterable[str]]``
        :raises EnumerationError: If any pattern is invalid.
        """
        self.include_patterns: Tuple[str, ...] = tuple(include_patterns or ())
        self.exclude_patterns: Tuple[str, ...] = tuple(exclude_patterns or ())
        self._includes: List[_Matcher] = [
            _compile_pattern(pat) for pat in self.include_patterns
        ]
        self._excludes: List[_Matcher] = [
            _compile_pattern(pat) for pat in self.exclude_patterns
        ]

    def __str__(self):
        includes = ", ".join(self.include_patterns) or "*"
        excludes = ", ".join(self.exclude_patterns) or "-"
        return f"include: {includes}; exclude: {excludes}"

    def __repr__(self):
        return (
            f"PathFilter(include_patterns={self.include_patterns!r}, "
            f"exclude_patterns={self.exclude_patterns!r})"
        )

    @property
    def is_empty(self) -> bool:
        """
        ``True`` if this filter accepts every path.
        """
        return not self._includes and not self._excludes

    def is_excluded(self, path: str) -> bool:
        """
        Test whether ``path`` matches any exclude pattern.

        :param path: The relative path to test.
        :type path: ``str``
        :returns: ``True`` if the path is excluded.
        :rtype: ``bool``
        """
        return any(match(path) for match in self._excludes)

    def accepts(self, path: str, is_dir: bool = False) -> bool:
        """
        Test whether this filter accepts ``path``.

        :param path: The relative path to test.
        :type path: ``str``
        :param is_dir: ``True`` if ``path`` names a directory.
        :type is_dir: ``bool``
        :returns: ``True`` if the path is accepted.
        :rtype: ``bool``
        """
        if self.is_excluded(path):
            return False
        if is_dir or not self._includes:
            return True
        return any(match(path) for match in self._includes)

    def accepts_tree(self, path: str, is_dir: bool = False) -> bool:
        """
        Test whether ``path`` and every one of its ancestors is accepted.

        Used when filtering a stored change-set, where excluded ancestors
        have not already been pruned by a tree walk.

        :param path: The relative path to test.
        :type path: ``str``
        :param is_dir: ``True`` if ``path`` names a directory.
        :type is_dir: ``bool``
        :returns: ``True`` if the path is accepted.
        :rtype: ``bool``
        """
        head = path.rpartition(PATH_SEP)[0]
        while head:
            if self.is_excluded(head):
                return False
            head = head.rpartition(PATH_SEP)[0]
        return self.accepts(path, is_dir=is_dir)

    def merged(self, other: "PathFilter") -> "PathFilter":
        """
        Return a new ``PathFilter`` combining the patterns of this filter
        and ``other``.
        """
        return PathFilter(
            self.include_patterns + other.include_patterns,
            self.exclude_patterns + other.exclude_patterns,
        )

    @classmethod
    def from_expression(cls, expression: str) -> "PathFilter":
        """
        Parse a filter expression into a new ``PathFilter``.

        An expression is a comma separated list of patterns. Patterns
        prefixed with ``!`` are exclude patterns; all others are include
        patterns. Whitespace around each pattern is ignored.

        :param expression: The filter expression to parse.
        :type expression: ``str``
        :returns: A new ``PathFilter`` instance.
        :rtype: ``PathFilter``
        :raises EnumerationError: If the expression is empty or contains an
                                  invalid pattern.
        """
        includes = []
        excludes = []
        for term in expression.split(EXPRESSION_SEP):
            term = term.strip()
            if not term:
                raise EnumerationError(
                    f"Empty pattern in filter expression '{expression}'"
                )
            if term.startswith(EXCLUDE_PREFIX):
                excludes.append(term[len(EXCLUDE_PREFIX) :].strip())
            else:
                includes.append(term)
        _log_debug(
            "Parsed filter expression '%s' (include=%s, exclude=%s)",
            expression,
            includes,
            excludes,
        )
        return cls(includes, excludes)


__all__ = [
    "EXCLUDE_PREFIX",
    "EXPRESSION_SEP",
    "PathFilter",
    "REGEX_PREFIX",
]
