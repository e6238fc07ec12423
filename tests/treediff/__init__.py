# Copyright Red Hat
#
# tests/treediff/__init__.py - Tree diff test package
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
