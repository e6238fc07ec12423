# Copyright Red Hat
#
# treepatch/__init__.py - Tree patch package initialisation
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Treepatch top-level package.
"""
from ._treepatch import *  # noqa: F401, F403
from ._treepatch import __all__  # noqa: F401

__version__ = "0.1.0"
