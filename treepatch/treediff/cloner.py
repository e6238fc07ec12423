# Copyright Red Hat
#
# treepatch/treediff/cloner.py - Tree patch tree cloning
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree cloning support for applying a change-set to a copy of a tree.
"""
from abc import ABC, abstractmethod
import logging
import shutil
import os

from treepatch import (
    CopyConflictError,
    TreepatchSystemError,
    TREEPATCH_SUBSYSTEM_APPLY,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_apply(msg, *args, **kwargs):
    """A wrapper for apply subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREEPATCH_SUBSYSTEM_APPLY}, **kwargs)


class TreeCloner(ABC):
    """
    Base class for tree cloning implementations.
    """

    @staticmethod
    def check_destination(dst: str, overwrite: bool = False):
        """
        Check that ``dst`` may be used as a clone destination.

        :param dst: The clone destination.
        :type dst: ``str``
        :param overwrite: Allow an existing destination to be replaced.
        :type overwrite: ``bool``
        :raises CopyConflictError: If ``dst`` exists and ``overwrite`` is
                                   ``False``.
        """
        if os.path.lexists(dst) and not overwrite:
            raise CopyConflictError(f"Copy destination '{dst}' already exists")

    @abstractmethod
    def clone(self, src: str, dst: str, overwrite: bool = False):
        """
        Clone the tree at ``src`` to ``dst``.

        :param src: The root of the tree to clone.
        :type src: ``str``
        :param dst: The clone destination.
        :type dst: ``str``
        :param overwrite: Replace an existing destination.
        :type overwrite: ``bool``
        :raises CopyConflictError: If ``dst`` exists and ``overwrite`` is
                                   ``False``.
        """


class CopyTreeCloner(TreeCloner):
    """
    Clone trees with ``shutil.copytree``. Symbolic links are copied as links
    and file metadata is preserved.
    """

    def clone(self, src: str, dst: str, overwrite: bool = False):
        self.check_destination(dst, overwrite=overwrite)
        if not os.path.isdir(src):
            raise TreepatchSystemError(f"Clone source '{src}' is not a directory")

        try:
            if os.path.lexists(dst):
                _log_info("Removing existing copy destination %s", dst)
                if os.path.isdir(dst) and not os.path.islink(dst):
                    shutil.rmtree(dst)
                else:
                    os.unlink(dst)
            _log_debug_apply("Copying tree %s to %s", src, dst)
            shutil.copytree(src, dst, symlinks=True)
        except OSError as err:
            raise TreepatchSystemError(
                f"Error copying tree '{src}' to '{dst}': {err}"
            ) from err


__all__ = [
    "CopyTreeCloner",
    "TreeCloner",
]
