# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""passbooster internals.

Warning:
    Non-public package (implementation detail), provided for didactical
    and educational purposes only. Subject to change without notice,
    including removal.

"""

import passbooster

__all__ = ()

PROG_NAME = passbooster.__distribution_name__
VERSION = passbooster.__version__
AUTHOR = passbooster.__author__
