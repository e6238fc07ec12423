# Copyright Red Hat
#
# treepatch/config.py - Tree patch configuration file support
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Configuration file support.

Defaults for the ``diff`` and ``apply`` commands may be set in an INI-style
configuration file::

    [diff]
    exclude = *.o, re:/\\.git/
    include =
    normalize_line_endings = no

    [apply]
    patch_command = patch
"""
from configparser import ConfigParser, Error as ConfigParserError
from dataclasses import dataclass, field
from typing import List, Optional
from os.path import exists, join
import logging
import os

from treepatch import TreepatchError

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Treepatch configuration directory
_TREEPATCH_CFG_DIR = "/etc/treepatch"

#: Default configuration file path
TREEPATCH_CFG_PATH = join(_TREEPATCH_CFG_DIR, "treepatch.conf")

#: Environment variable overriding the configuration file path
TREEPATCH_CFG_ENV = "TREEPATCH_CONFIG"

_TREEPATCH_CFG_DIFF = "diff"
_TREEPATCH_CFG_APPLY = "apply"
_TREEPATCH_CFG_EXCLUDE = "exclude"
_TREEPATCH_CFG_INCLUDE = "include"
_TREEPATCH_CFG_NORMALIZE = "normalize_line_endings"
_TREEPATCH_CFG_PATCH_COMMAND = "patch_command"


def _split_patterns(value: str) -> List[str]:
    return [pat.strip() for pat in value.split(",") if pat.strip()]


def default_config_path() -> str:
    """
    Return the configuration file path, honouring ``$TREEPATCH_CONFIG``.

    :returns: The path of the configuration file to load.
    :rtype: ``str``
    """
    return os.environ.get(TREEPATCH_CFG_ENV) or TREEPATCH_CFG_PATH


@dataclass
class TreepatchConfig:
    """
    Tree patch configuration.
    """

    #: Patterns excluded from every tree comparison
    exclude_patterns: List[str] = field(default_factory=list)
    #: Patterns selecting the files to compare
    include_patterns: List[str] = field(default_factory=list)
    #: Normalise line endings before comparing files
    normalize_line_endings: bool = False
    #: External patch command; ``None`` selects the built-in patcher
    patch_command: Optional[str] = None

    @classmethod
    def from_file(cls, config_file: Optional[str] = None) -> "TreepatchConfig":
        """
        Load ``TreepatchConfig`` from an INI-style configuration file located
        at ``config_file``.

        :param config_file: path to treepatch.conf. Defaults to the value of
                            ``default_config_path()``.
        :type config_file: ``Optional[str]``.
        :returns: A ``TreepatchConfig`` instance initialised from
                  ``config_file``.
        :rtype: ``TreepatchConfig``
        :raises TreepatchError: If the file cannot be parsed.
        """
        config_file = config_file or default_config_path()
        if not exists(config_file):
            return TreepatchConfig()

        _log_debug("Loading configuration from '%s'", config_file)
        cfg = ConfigParser()
        try:
            cfg.read([config_file])
            config = TreepatchConfig()
            if cfg.has_section(_TREEPATCH_CFG_DIFF):
                diff = cfg[_TREEPATCH_CFG_DIFF]
                if cfg.has_option(_TREEPATCH_CFG_DIFF, _TREEPATCH_CFG_EXCLUDE):
                    config.exclude_patterns = _split_patterns(
                        diff[_TREEPATCH_CFG_EXCLUDE]
                    )
                if cfg.has_option(_TREEPATCH_CFG_DIFF, _TREEPATCH_CFG_INCLUDE):
                    config.include_patterns = _split_patterns(
                        diff[_TREEPATCH_CFG_INCLUDE]
                    )
                if cfg.has_option(_TREEPATCH_CFG_DIFF, _TREEPATCH_CFG_NORMALIZE):
                    config.normalize_line_endings = diff.getboolean(
                        _TREEPATCH_CFG_NORMALIZE
                    )
            if cfg.has_section(_TREEPATCH_CFG_APPLY):
                if cfg.has_option(_TREEPATCH_CFG_APPLY, _TREEPATCH_CFG_PATCH_COMMAND):
                    command = cfg[_TREEPATCH_CFG_APPLY][
                        _TREEPATCH_CFG_PATCH_COMMAND
                    ].strip()
                    config.patch_command = command or None
        except (ConfigParserError, ValueError) as err:
            raise TreepatchError(
                f"Error reading configuration file '{config_file}': {err}"
            ) from err

        return config


__all__ = [
    "TREEPATCH_CFG_ENV",
    "TREEPATCH_CFG_PATH",
    "TreepatchConfig",
    "default_config_path",
]
