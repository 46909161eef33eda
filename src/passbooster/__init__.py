# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Stateless site password derivation from a master secret"""  # noqa: D415

__author__ = 'Marco Ricci <software@the13thletter.info>'
__distribution_name__ = 'passbooster'

# Automatically generated.  DO NOT EDIT! Use importlib.metadata instead
# to query the correct values.
__version__ = '0.1.0'
# END automatically generated.
