# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Helper functions for the passbooster command-line.

Warning:
    Non-public module (implementation detail), provided for didactical and
    educational purposes only. Subject to change without notice, including
    removal.

"""

from __future__ import annotations

import copy
import json
import logging
import os
import pathlib
import sys
from typing import TYPE_CHECKING, cast

import click
from typing_extensions import Any

import passbooster as pb
from passbooster import _types, domain

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

if TYPE_CHECKING:
    from collections.abc import Sequence

__author__ = pb.__author__
__version__ = pb.__version__

PROG_NAME = pb.__distribution_name__

# Error messages
INVALID_SETTINGS = 'Invalid passbooster settings'

config_filename_table = {
    None: '.',
    'settings': 'settings.json',
    'user configuration': 'config.toml',
}


def config_filename(
    subsystem: str | None = 'settings',
) -> pathlib.Path:
    """Return the filename of the configuration file for the subsystem.

    The files are located within the configuration directory as
    determined by the `PASSBOOSTER_PATH` environment variable, or by
    [`click.get_app_dir`][] in POSIX mode.

    Args:
        subsystem:
            Name of the configuration subsystem whose configuration
            filename to return.  If `None`, return the configuration
            directory instead.

    Raises:
        AssertionError:
            An unknown subsystem was passed.

    """
    path = pathlib.Path(
        os.getenv(PROG_NAME.upper() + '_PATH')
        or click.get_app_dir(PROG_NAME, force_posix=True)
    )
    try:
        filename = config_filename_table[subsystem]
    except (KeyError, TypeError):  # pragma: no cover
        msg = f'Unknown configuration subsystem: {subsystem!r}'
        raise AssertionError(msg) from None
    return path / filename


def load_settings() -> _types.Settings:
    """Load the settings from the application directory.

    The filename is obtained via [`config_filename`][].  This must be
    an unencrypted JSON file.  A missing file yields empty settings,
    i.e. all defaults.

    Returns:
        The settings.  See [`_types.Settings`][] for details.

    Raises:
        OSError:
            There was an OS error accessing the file.
        ValueError:
            The data loaded from the file are not valid settings.

    """
    filename = config_filename(subsystem='settings')
    try:
        fileobj = filename.open('rb')
    except FileNotFoundError:
        return {}
    with fileobj:
        data = json.load(fileobj)
    _types.validate_settings(data)
    return data


def save_settings(settings: _types.Settings, /) -> None:
    """Save the settings to the application directory.

    The filename is obtained via [`config_filename`][].  The settings
    will be stored as an unencrypted JSON file.  The settings contain
    no secrets.

    Args:
        settings:
            The settings to save.

    Raises:
        OSError:
            There was an OS error accessing or writing the file.
        ValueError:
            The data are not valid settings.

    """
    if not _types.is_settings(settings):
        raise ValueError(INVALID_SETTINGS)
    filename = config_filename(subsystem='settings')
    filedir = filename.resolve().parent
    filedir.mkdir(parents=True, exist_ok=True)
    with filename.open('w', encoding='UTF-8') as fileobj:
        json.dump(
            settings, fileobj, ensure_ascii=False, indent=2, sort_keys=True
        )


def load_user_config() -> dict[str, Any]:
    """Load the user config from the application directory.

    The filename is obtained via [`config_filename`][].  A missing file
    yields an empty configuration.

    Returns:
        The user configuration, as a nested `dict`.

    Raises:
        OSError:
            There was an OS error accessing the file.
        ValueError:
            The data loaded from the file is not a valid configuration
            file.

    """
    filename = config_filename(subsystem='user configuration')
    try:
        fileobj = filename.open('rb')
    except FileNotFoundError:
        return {}
    with fileobj:
        return tomllib.load(fileobj)


def get_resolver(
    user_config: dict[str, Any],
    /,
    *,
    override: bool | None = None,
) -> domain.DomainResolver | None:
    """Return the domain resolver to use, if any.

    Public suffix lookup is enabled by the `public-suffix` key in the
    `[passbooster]` table of the user configuration, unless `override`
    is given.

    Raises:
        AssertionError:
            The `[passbooster]` section of the user configuration is
            not a table, or its value is not a boolean.

    """
    if override is None:
        section = user_config.get(PROG_NAME, {})
        if not isinstance(section, dict):
            msg = f'Invalid value {section!r} for config key {PROG_NAME}'
            raise AssertionError(msg)
        value = section.get('public-suffix', False)
        if not isinstance(value, bool):
            msg = (
                f'Invalid value {value!r} for config key '
                f'{PROG_NAME}.public-suffix'
            )
            raise AssertionError(msg)
        override = value
    return domain.PublicSuffixResolver() if override else None


def set_setting(
    settings: _types.Settings,
    path: Sequence[str],
    value: Any,  # noqa: ANN401
    /,
) -> _types.Settings:
    """Return a copy of the settings with one entry changed.

    Args:
        settings:
            The current settings.
        path:
            The section and key of the entry, e.g. `('kdf', 'time_cost')`.
        value:
            The new value.

    Returns:
        The updated settings.

    Raises:
        ValueError:
            The path does not have exactly two components, or the
            updated settings are invalid.
        TypeError:
            The new value has the wrong type.

    """
    if len(path) != 2:  # noqa: PLR2004
        msg = f'setting name must be SECTION.KEY, not {".".join(path)!r}'
        raise ValueError(msg)
    section, key = path
    new_settings = cast('dict[str, Any]', copy.deepcopy(settings))
    new_settings.setdefault(section, {})[key] = value
    _types.validate_settings(new_settings)
    return cast('_types.Settings', new_settings)


def parse_setting_value(text: str, /) -> Any:  # noqa: ANN401
    """Parse a command-line setting value as JSON, else as a string.

    Examples:
        >>> parse_setting_value('12')
        12
        >>> parse_setting_value('true')
        True
        >>> parse_setting_value('@#%')
        '@#%'

    """
    try:
        return json.loads(text)
    except ValueError:
        return text


def prompt_for_master() -> str:
    """Interactively prompt for the master secret.

    Calls [`click.prompt`][] internally.  Moved into a separate function
    mainly for testing/mocking purposes.

    Returns:
        The user input.

    """
    return cast(
        'str',
        click.prompt(
            'Master secret',
            default='',
            hide_input=True,
            show_default=False,
            err=True,
        ),
    )


def warn_if_deprecated_kdf(
    params: _types.KdfParams, /, *, ctx: click.Context | None = None
) -> None:
    """Log a deprecation warning if the deprecated PBKDF2 KDF is in use."""
    if params.algorithm == _types.KdfAlgorithm.PBKDF2_SHA256:
        logging.getLogger(f'{PROG_NAME}.deprecation').warning(
            'The %s key derivation function is deprecated.  Its passwords '
            'differ from %s passwords; do not switch without changing '
            'the passwords at every site.',
            params.algorithm.value,
            _types.KdfAlgorithm.ARGON2ID.value,
            extra={'color': ctx.color if ctx is not None else None},
        )
