# Copyright Red Hat
#
# treepatch/treediff/__init__.py - Tree patch tree diff package
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree diff package.

Provides tree comparison and change-set replay facilities: tree walking,
classification of added, removed and changed paths, change-set storage and
phased change-set application. The main entry points are ``Classifier``,
``ChangeSetStore`` and ``Applier``.
"""
from .applier import Applier, ApplyAction, ApplyPhase, ApplyReport
from .changeset import Artifact, ChangeSet, DiffArtifact, DiffKind
from .classifier import Classifier
from .cloner import CopyTreeCloner, TreeCloner
from .contentdiff import DiffResult, DifflibTextDiffer, TextDiffer
from .contentdiff import normalize_line_endings
from .options import ApplyOptions, DiffOptions
from .patcher import ExternalPatcher, Patcher, UnifiedPatcher
from .pathfilter import PathFilter
from .pathset import ReduceMode, reduce_paths
from .store import ChangeSetStore
from .treewalk import EntryKind, TreeEntry, TreeWalker, walk

__all__ = [
    "Applier",
    "ApplyAction",
    "ApplyOptions",
    "ApplyPhase",
    "ApplyReport",
    "Artifact",
    "ChangeSet",
    "ChangeSetStore",
    "Classifier",
    "CopyTreeCloner",
    "DiffArtifact",
    "DiffKind",
    "DiffOptions",
    "DiffResult",
    "DifflibTextDiffer",
    "EntryKind",
    "ExternalPatcher",
    "PathFilter",
    "Patcher",
    "ReduceMode",
    "TextDiffer",
    "TreeCloner",
    "TreeEntry",
    "TreeWalker",
    "UnifiedPatcher",
    "normalize_line_endings",
    "reduce_paths",
    "walk",
]
