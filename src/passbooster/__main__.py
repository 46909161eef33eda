# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib
"""Run [`passbooster.cli.passbooster`][] on import."""

import sys

if __name__ == '__main__':
    from passbooster.cli import passbooster

    sys.exit(passbooster())
