# Copyright Red Hat
#
# treepatch/treediff/pathset.py - Tree patch path set reduction
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Path set reduction.

A set of relative directory paths frequently contains both a directory and
some of its descendants. Removing or creating every member is redundant:
removing the deepest members recursively, or creating the shallowest
members together with their missing ancestors, has the same effect.
"""
from typing import Iterable, List
from enum import Enum

from treepatch import PATH_SEP


class ReduceMode(Enum):
    """
    Path set reduction modes.
    """

    #: Keep paths that are not a strict ancestor of another member.
    BOTTOMMOST = "bottommost"
    #: Keep paths that are not a strict descendant of another member.
    TOPMOST = "topmost"


def _ancestors(path: str) -> Iterable[str]:
    """
    Yield every strict ancestor of ``path``, nearest first.
    """
    head = path.rpartition(PATH_SEP)[0]
    while head:
        yield head
        head = head.rpartition(PATH_SEP)[0]


def reduce_paths(
    paths: Iterable[str], mode: ReduceMode = ReduceMode.BOTTOMMOST
) -> List[str]:
    """
    Reduce a collection of relative paths according to ``mode``.

    Ancestry is determined by whole path components: ``foo`` is an ancestor
    of ``foo/bar`` but not of ``foobar``. Duplicate paths collapse to a
    single member and the result preserves the order in which members were
    first seen.

    :param paths: The relative paths to reduce.
    :type paths: ``Iterable[str]``
    :param mode: The reduction to apply.
    :type mode: ``ReduceMode``
    :returns: The reduced list of paths.
    :rtype: ``List[str]``
    """
    unique = list(dict.fromkeys(paths))
    members = set(unique)

    if mode == ReduceMode.TOPMOST:
        return [
            path
            for path in unique
            if not any(anc in members for anc in _ancestors(path))
        ]

    if mode == ReduceMode.BOTTOMMOST:
        ancestors = set()
        for path in unique:
            ancestors.update(_ancestors(path))
        return [path for path in unique if path not in ancestors]

    raise ValueError(f"Unknown reduction mode: {mode}")


__all__ = [
    "ReduceMode",
    "reduce_paths",
]
