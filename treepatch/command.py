# Copyright Red Hat
#
# treepatch/command.py - Tree patch command interface
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``treepatch.command`` module provides both the treepatch command line
interface infrastructure, and a simple procedural interface to the
``treepatch`` library modules.

The procedural interface is used by the ``treepatch`` command line tool,
and may be used by application programs, or interactively in the
Python shell by users who do not require all the features present
in the treediff object API.
"""
from argparse import ArgumentParser, Namespace
from dataclasses import replace
from typing import Optional
from os.path import basename
import logging
import sys
import os

from treepatch import (
    AlreadyExistsError,
    TreepatchError,
    TREEPATCH_DEBUG_WALK,
    TREEPATCH_DEBUG_DIFF,
    TREEPATCH_DEBUG_STORE,
    TREEPATCH_DEBUG_APPLY,
    TREEPATCH_DEBUG_COMMAND,
    TREEPATCH_DEBUG_ALL,
    TREEPATCH_SUBSYSTEM_COMMAND,
    SubsystemFilter,
    set_debug_mask,
    ProgressAwareHandler,
    __version__,
)
from treepatch.config import TreepatchConfig
from treepatch.treediff import (
    Applier,
    ApplyOptions,
    ApplyReport,
    ChangeSet,
    ChangeSetStore,
    Classifier,
    DiffOptions,
    ExternalPatcher,
    PathFilter,
    UnifiedPatcher,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREEPATCH_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None


def diff_trees(
    tree_a: str,
    tree_b: str,
    store_dir: str,
    options: Optional[DiffOptions] = None,
    path_filter: Optional[PathFilter] = None,
) -> ChangeSet:
    """
    Compare two trees and write the resulting change-set to a store.

    :param tree_a: The root of the original tree.
    :param tree_b: The root of the updated tree.
    :param store_dir: The change-set store directory.
    :param options: Options controlling the comparison.
    :param path_filter: Optional filter selecting the paths to compare.
    :returns: The change-set written to ``store_dir``.
    :rtype: ``ChangeSet``
    """
    options = options or DiffOptions()
    store = ChangeSetStore(store_dir)
    # Fail before the trees are walked if the store cannot be written.
    if store.exists() and not options.overwrite:
        raise AlreadyExistsError(f"Change-set store '{store_dir}' already exists")

    changeset = Classifier(options=options).classify(
        tree_a, tree_b, path_filter=path_filter
    )
    store.write(changeset, overwrite=options.overwrite)
    return changeset


def apply_changeset(
    store_dir: str,
    target: str,
    options: Optional[ApplyOptions] = None,
    path_filter: Optional[PathFilter] = None,
    patch_command: Optional[str] = None,
) -> ApplyReport:
    """
    Apply a stored change-set to a target tree.

    :param store_dir: The change-set store directory.
    :param target: The root of the tree to modify.
    :param options: Options controlling application.
    :param path_filter: Optional filter restricting the changes applied.
    :param patch_command: Optional external patch command. The built-in
                          patcher is used if unset.
    :returns: A report of the actions taken or planned.
    :rtype: ``ApplyReport``
    """
    changeset = ChangeSetStore(store_dir).read()
    if path_filter is not None and not path_filter.is_empty:
        changeset = changeset.filtered(path_filter)
    patcher = ExternalPatcher(patch_command) if patch_command else UnifiedPatcher()
    return Applier(patcher=patcher).apply(changeset, target, options)


def _path_filter_from_args(cmd_args: Namespace, config: TreepatchConfig) -> PathFilter:
    """
    Build a ``PathFilter`` merging configured and command line patterns.
    """
    path_filter = PathFilter(
        config.include_patterns + list(cmd_args.include_patterns or []),
        config.exclude_patterns + list(cmd_args.exclude_patterns or []),
    )
    if cmd_args.filter_expr:
        path_filter = path_filter.merged(PathFilter.from_expression(cmd_args.filter_expr))
    _log_debug_command("Using path filter: %s", path_filter)
    return path_filter


def _diff_cmd(cmd_args):
    """
    Diff trees command handler.

    Compare two trees and store the resulting change-set.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    config = TreepatchConfig.from_file()
    path_filter = _path_filter_from_args(cmd_args, config)
    options = DiffOptions.from_cmd_args(cmd_args)
    options = replace(
        options,
        include_patterns=path_filter.include_patterns,
        exclude_patterns=path_filter.exclude_patterns,
        normalize_line_endings=(
            options.normalize_line_endings or config.normalize_line_endings
        ),
    )
    _log_debug_command("Diff options:\n%s", options)

    if os.path.realpath(cmd_args.tree_a) == os.path.realpath(cmd_args.tree_b):
        _log_error("Cannot compare %s to itself.", cmd_args.tree_a)
        return 1

    changeset = diff_trees(
        cmd_args.tree_a,
        cmd_args.tree_b,
        cmd_args.store or os.getcwd(),
        options=options,
        path_filter=path_filter,
    )
    print(changeset.summary())
    return 0


def _apply_cmd(cmd_args):
    """
    Apply change-set command handler.

    Apply a stored change-set to a tree.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    config = TreepatchConfig.from_file()
    path_filter = _path_filter_from_args(cmd_args, config)
    options = replace(
        ApplyOptions.from_cmd_args(cmd_args), verbose=bool(cmd_args.verbose_apply)
    )
    _log_debug_command("Apply options:\n%s", options)

    report = apply_changeset(
        cmd_args.store or os.getcwd(),
        cmd_args.tree,
        options=options,
        path_filter=path_filter,
        patch_command=cmd_args.patch_command or config.patch_command,
    )
    if (options.dry_run or options.verbose) and len(report):
        print(report)
    print(report.summary())
    return 0


def setup_logging(cmd_args):
    """
    Set up treepatch logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO

    treepatch_log = logging.getLogger("treepatch")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    treepatch_log.setLevel(level)
    if treepatch_log.hasHandlers():
        treepatch_log.handlers.clear()

    # Subsystem log filtering
    _treepatch_subsystem_filter = SubsystemFilter("treepatch")

    # Main console handler
    _CONSOLE_HANDLER = ProgressAwareHandler()

    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(_treepatch_subsystem_filter)

    treepatch_log.addHandler(_CONSOLE_HANDLER)


def shutdown_logging():
    """
    Shut down treepatch logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "walk": TREEPATCH_DEBUG_WALK,
        "diff": TREEPATCH_DEBUG_DIFF,
        "store": TREEPATCH_DEBUG_STORE,
        "apply": TREEPATCH_DEBUG_APPLY,
        "command": TREEPATCH_DEBUG_COMMAND,
        "all": TREEPATCH_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _add_filter_args(parser):
    """
    Add path filter arguments to ``parser``.
    """
    parser.add_argument(
        "-i",
        "--include",
        dest="include_patterns",
        metavar="PATTERN",
        action="append",
        help="Only consider files matching PATTERN (glob, or regex with 're:' "
        "prefix). May be repeated.",
    )
    parser.add_argument(
        "-x",
        "--exclude",
        dest="exclude_patterns",
        metavar="PATTERN",
        action="append",
        help="Skip paths matching PATTERN and, for directories, their "
        "contents. May be repeated.",
    )
    parser.add_argument(
        "-f",
        "--filter",
        dest="filter_expr",
        metavar="EXPR",
        type=str,
        help="A comma separated list of patterns; patterns prefixed with '!' "
        "are excluded",
    )


def _add_common_args(parser):
    """
    Add arguments shared by all commands to ``parser``.
    """
    parser.add_argument(
        "-o",
        "--overwrite",
        action="store_true",
        help="Replace an existing change-set store or copy destination",
    )
    parser.add_argument(
        "-s",
        "--store",
        metavar="DIR",
        type=str,
        help="Change-set store directory (default: current directory)",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Do not output progress or status updates",
    )


def _add_diff_subparser(subparsers):
    """
    Add the ``diff`` command parser.
    """
    diff_parser = subparsers.add_parser(
        "diff", help="Compare two trees and store the change-set"
    )
    _add_filter_args(diff_parser)
    _add_common_args(diff_parser)
    diff_parser.add_argument(
        "-n",
        "--normalize-line-endings",
        dest="normalize_line_endings",
        action="store_true",
        help="Convert CRLF and CR line endings to LF before comparing files",
    )
    diff_parser.add_argument("tree_a", metavar="TREE_A", help="The original tree")
    diff_parser.add_argument("tree_b", metavar="TREE_B", help="The updated tree")
    diff_parser.set_defaults(func=_diff_cmd)


def _add_apply_subparser(subparsers):
    """
    Add the ``apply`` command parser.
    """
    apply_parser = subparsers.add_parser(
        "apply", help="Apply a stored change-set to a tree"
    )
    _add_filter_args(apply_parser)
    _add_common_args(apply_parser)
    apply_parser.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        help="Check and report the changes without modifying any tree",
    )
    apply_parser.add_argument(
        "-a",
        "--verbose-apply",
        dest="verbose_apply",
        action="store_true",
        help="Report every action taken",
    )
    apply_parser.add_argument(
        "-c",
        "--copy-to",
        dest="copy_to",
        metavar="DIR",
        type=str,
        help="Copy TREE to DIR and apply the changes to the copy",
    )
    apply_parser.add_argument(
        "-P",
        "--patch-command",
        dest="patch_command",
        metavar="CMD",
        type=str,
        help="Apply textual diffs with an external patch command",
    )
    apply_parser.add_argument("tree", metavar="TREE", help="The tree to modify")
    apply_parser.set_defaults(func=_apply_cmd)


def main(args):
    """
    Main entry point for treepatch.
    """
    parser = ArgumentParser(description="Tree Patch", prog=basename(args[0]))

    # Global arguments
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of treepatch",
        version=__version__,
    )
    # Subparser for command
    subparsers = parser.add_subparsers(dest="command", help="Command")

    _add_diff_subparser(subparsers)

    _add_apply_subparser(subparsers)

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    setup_logging(cmd_args)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    if "func" not in cmd_args:
        parser.print_help()
        return status

    try:
        status = cmd_args.func(cmd_args)
    except TreepatchError as err:
        _log_error("Command failed: %s", err)
    except KeyboardInterrupt:  # pragma: no cover
        _log_info("Exiting on user cancel")
    # pylint: disable=broad-except
    except Exception as err:
        if cmd_args.debug:
            raise
        _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


def run():
    """
    Console script entry point for treepatch.
    """
    sys.exit(main(sys.argv))


# vim: set et ts=4 sw=4 :
