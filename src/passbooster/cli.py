# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

# ruff: noqa: TRY400

"""Command-line interface for passbooster."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, NoReturn

import click

from passbooster import (
    _internals,
    _types,
    derive,
    domain,
    formatter,
    normalize,
)
from passbooster._internals import cli_helpers, cli_machinery

if TYPE_CHECKING:
    from typing_extensions import Any

__all__ = ('passbooster',)

PROG_NAME = _internals.PROG_NAME
VERSION = _internals.VERSION

_CONTEXT_SETTINGS = {'help_option_names': ['-h', '--help']}


def _fail(ctx: click.Context, msg: str, /, *args: object) -> NoReturn:
    logging.getLogger(PROG_NAME).error(
        msg, *args, extra={'color': ctx.color}
    )
    ctx.exit(1)


def _load_settings(ctx: click.Context, /) -> _types.Settings:
    try:
        return cli_helpers.load_settings()
    except OSError as exc:
        _fail(
            ctx,
            'Cannot load settings: %s: %r',
            exc.strerror,
            exc.filename,
        )
    except (TypeError, ValueError) as exc:
        _fail(ctx, 'Cannot load settings: %s', exc)


def _load_user_config(ctx: click.Context, /) -> dict[str, Any]:
    try:
        return cli_helpers.load_user_config()
    except OSError as exc:
        _fail(
            ctx,
            'Cannot load user config: %s: %r',
            exc.strerror,
            exc.filename,
        )
    except ValueError as exc:
        _fail(ctx, 'Cannot load user config: %s', exc)


def _yes_no(flag: bool, /) -> str:  # noqa: FBT001
    return 'yes' if flag else 'NO'


@click.group(
    context_settings=_CONTEXT_SETTINGS,
    cls=cli_machinery.TopLevelCLIEntryPoint,
    help=(
        'Derive strong site passwords, deterministically, from a master '
        'secret and the site domain, label and version.  Nothing is '
        'stored except the settings needed to recompute the passwords.'
    ),
    epilog=(
        'Configuration is stored in the directory named by the '
        'PASSBOOSTER_PATH environment variable, or in an '
        'operating-system-specific default location.'
    ),
)
@cli_machinery.version_option
@cli_machinery.standard_logging_options
def passbooster() -> None:
    """Derive strong site passwords from a master secret.

    This is a [`click`][CLICK]-powered command-line interface function,
    and not intended for programmatic use.  (See also
    [`click.testing.CliRunner`][] for controlled, programmatic
    invocation.)

    [CLICK]: https://pypi.org/package/click/

    """


@passbooster.command(
    'derive',
    context_settings=_CONTEXT_SETTINGS,
    cls=cli_machinery.CommandWithHelpGroups,
    help=(
        'Derive the password for DOMAIN.  The master secret is read '
        'interactively, or from standard input.  The password is '
        'written to standard output.'
    ),
)
@click.argument('site_domain', metavar='DOMAIN')
@click.option(
    '-l',
    '--label',
    default='',
    help='The account label, e.g. "work" or a user name.',
    cls=cli_machinery.SiteContextOption,
)
@click.option(
    '-V',
    '--site-version',
    'site_version',
    default='',
    metavar='VERSION',
    help='The password version; bump it to rotate the password.',
    cls=cli_machinery.SiteContextOption,
)
@click.option(
    '--public-suffix/--no-public-suffix',
    default=None,
    help='Reduce DOMAIN to its registrable domain via the public '
    'suffix list.',
    cls=cli_machinery.SiteContextOption,
)
@click.option(
    '--length',
    metavar='NUMBER',
    callback=cli_machinery.validate_length,
    help='Set the password length.',
    cls=cli_machinery.PasswordGenerationOption,
)
@click.option(
    '--symbols',
    metavar='CHARACTERS',
    callback=cli_machinery.validate_symbols,
    help='Set the symbol set, one of which is required.',
    cls=cli_machinery.PasswordGenerationOption,
)
@click.option(
    '--check',
    'show_report',
    is_flag=True,
    help='Also report the policy check on standard error.',
    cls=cli_machinery.PasswordGenerationOption,
)
@click.option(
    '--kdf',
    type=click.Choice([a.value for a in _types.KdfAlgorithm]),
    help='Select the key derivation function.',
    cls=cli_machinery.KeyDerivationOption,
)
@click.option(
    '--time-cost',
    metavar='NUMBER',
    callback=cli_machinery.validate_minimum(1),
    help='Set the number of key derivation passes.',
    cls=cli_machinery.KeyDerivationOption,
)
@click.option(
    '--memory-mib',
    metavar='NUMBER',
    callback=cli_machinery.validate_minimum(_types.MIN_MEMORY_MIB),
    help='Set the key derivation memory cost, in MiB.',
    cls=cli_machinery.KeyDerivationOption,
)
@click.option(
    '--parallelism',
    metavar='NUMBER',
    callback=cli_machinery.validate_minimum(1),
    help='Set the key derivation parallelism.',
    cls=cli_machinery.KeyDerivationOption,
)
@click.option(
    '--output-bytes',
    metavar='NUMBER',
    callback=cli_machinery.validate_minimum(_types.MIN_OUTPUT_BYTES),
    help='Set the derived key length, in bytes.',
    cls=cli_machinery.KeyDerivationOption,
)
@cli_machinery.standard_logging_options
@click.pass_context
def passbooster_derive(  # noqa: PLR0913
    ctx: click.Context,
    /,
    *,
    site_domain: str,
    label: str,
    site_version: str,
    public_suffix: bool | None,
    length: int | None,
    symbols: str | None,
    show_report: bool,
    kdf: str | None,
    time_cost: int | None,
    memory_mib: int | None,
    parallelism: int | None,
    output_bytes: int | None,
) -> None:
    """Derive the password for a site.

    This is a [`click`][CLICK]-powered command-line interface function,
    and not intended for programmatic use.

    [CLICK]: https://pypi.org/package/click/

    """
    logger = logging.getLogger(PROG_NAME)
    settings = _load_settings(ctx)
    user_config = _load_user_config(ctx)
    kdf_params, policy, normalization = _types.params_from_settings(settings)
    kdf_overrides = {
        'algorithm': _types.KdfAlgorithm(kdf) if kdf is not None else None,
        'time_cost': time_cost,
        'memory_mib': memory_mib,
        'parallelism': parallelism,
        'output_bytes': output_bytes,
    }
    kdf_params = kdf_params._replace(**{
        k: v for k, v in kdf_overrides.items() if v is not None
    })
    format_overrides = {'length': length, 'symbols': symbols}
    policy = policy._replace(**{
        k: v for k, v in format_overrides.items() if v is not None
    })
    try:
        resolver = cli_helpers.get_resolver(
            user_config, override=public_suffix
        )
    except AssertionError as exc:
        _fail(ctx, '%s', exc)
    if not domain.normalize_domain(site_domain):
        _fail(ctx, 'The domain %r is empty after normalization', site_domain)
    context = _types.SiteContext(site_domain, label, site_version)
    logger.info(
        'Deriving password for %s',
        ' / '.join(
            derive.build_site_salt(
                context, normalization, resolver=resolver
            ).split(derive.SALT_DELIMITER)
        ),
        extra={'color': ctx.color},
    )
    cli_helpers.warn_if_deprecated_kdf(kdf_params, ctx=ctx)
    master = cli_helpers.prompt_for_master()
    if not master:
        _fail(ctx, 'No master secret given')
    try:
        password = asyncio.run(
            derive.derive_password(
                master,
                context,
                kdf_params=kdf_params,
                policy=policy,
                normalization=normalization,
                resolver=resolver,
            )
        )
    except derive.DerivationError as exc:
        _fail(ctx, 'Cannot derive password: %s', exc)
    click.echo(password, color=ctx.color)
    if show_report:
        report = formatter.check_policy(password, policy)
        for name, value in report._asdict().items():
            click.echo(f'{name}: {_yes_no(value)}', err=True, color=ctx.color)


@passbooster.command(
    'normalize',
    context_settings=_CONTEXT_SETTINGS,
    cls=cli_machinery.CommandWithHelpGroups,
    help=(
        'Show how the site context is normalized into the salt, '
        'without deriving anything.'
    ),
)
@click.option(
    '-d',
    '--domain',
    'site_domain',
    default='',
    help='The site domain or URL.',
    cls=cli_machinery.SiteContextOption,
)
@click.option(
    '-l',
    '--label',
    default='',
    help='The account label.',
    cls=cli_machinery.SiteContextOption,
)
@click.option(
    '-V',
    '--site-version',
    'site_version',
    default='',
    metavar='VERSION',
    help='The password version.',
    cls=cli_machinery.SiteContextOption,
)
@click.option(
    '--public-suffix/--no-public-suffix',
    default=None,
    help='Reduce the domain to its registrable domain via the public '
    'suffix list.',
    cls=cli_machinery.SiteContextOption,
)
@click.option(
    '--explain',
    is_flag=True,
    help='List every label normalization step that changed the label.',
    cls=cli_machinery.StandardOption,
)
@cli_machinery.standard_logging_options
@click.pass_context
def passbooster_normalize(  # noqa: PLR0913
    ctx: click.Context,
    /,
    *,
    site_domain: str,
    label: str,
    site_version: str,
    public_suffix: bool | None,
    explain: bool,
) -> None:
    """Show the normalized site context.

    This is a [`click`][CLICK]-powered command-line interface function,
    and not intended for programmatic use.

    [CLICK]: https://pypi.org/package/click/

    """
    settings = _load_settings(ctx)
    user_config = _load_user_config(ctx)
    _kdf_params, _policy, normalization = _types.params_from_settings(
        settings
    )
    try:
        resolver = cli_helpers.get_resolver(
            user_config, override=public_suffix
        )
    except AssertionError as exc:
        _fail(ctx, '%s', exc)
    norm_domain = domain.normalize_domain(site_domain, resolver)
    norm_label, changes = normalize.normalize_label_explained(
        label, normalization
    )
    norm_version = normalize.normalize_version(site_version)
    salt = derive.build_salt([norm_domain, norm_label, norm_version])
    click.echo(f'domain: {norm_domain}', color=ctx.color)
    click.echo(f'label: {norm_label}', color=ctx.color)
    click.echo(f'version: {norm_version}', color=ctx.color)
    click.echo(f'salt: {json.dumps(salt)}', color=ctx.color)
    if explain:
        if not changes:
            click.echo('The label was not changed.', color=ctx.color)
        for change in changes:
            click.echo(
                f'{change.title}: {change.detail}\n'
                f'  before: {change.before!r}\n'
                f'  after:  {change.after!r}',
                color=ctx.color,
            )


@passbooster.command(
    'check',
    context_settings=_CONTEXT_SETTINGS,
    cls=cli_machinery.CommandWithHelpGroups,
    help=(
        'Check PASSWORD against the password format policy.  Exits '
        'with status 1 if the check fails.'
    ),
)
@click.argument('password')
@click.option(
    '--length',
    metavar='NUMBER',
    callback=cli_machinery.validate_length,
    help='Override the required length.',
    cls=cli_machinery.PasswordGenerationOption,
)
@click.option(
    '--symbols',
    metavar='CHARACTERS',
    callback=cli_machinery.validate_symbols,
    help='Override the symbol set.',
    cls=cli_machinery.PasswordGenerationOption,
)
@cli_machinery.standard_logging_options
@click.pass_context
def passbooster_check(
    ctx: click.Context,
    /,
    *,
    password: str,
    length: int | None,
    symbols: str | None,
) -> None:
    """Check a password against the format policy.

    This is a [`click`][CLICK]-powered command-line interface function,
    and not intended for programmatic use.

    [CLICK]: https://pypi.org/package/click/

    """
    settings = _load_settings(ctx)
    _kdf_params, policy, _normalization = _types.params_from_settings(
        settings
    )
    if length is not None:
        policy = policy._replace(length=length)
    if symbols is not None:
        policy = policy._replace(symbols=symbols)
    report = formatter.check_policy(password, policy)
    for name, value in report._asdict().items():
        click.echo(f'{name}: {_yes_no(value)}', color=ctx.color)
    ctx.exit(0 if report.ok else 1)


@passbooster.group(
    'config',
    context_settings=_CONTEXT_SETTINGS,
    cls=cli_machinery.GroupWithHelpGroups,
    help='Show or change the stored settings.',
)
def passbooster_config() -> None:
    """Show or change the stored settings.

    This is a [`click`][CLICK]-powered command-line interface function,
    and not intended for programmatic use.

    [CLICK]: https://pypi.org/package/click/

    """


@passbooster_config.command(
    'show',
    context_settings=_CONTEXT_SETTINGS,
    cls=cli_machinery.CommandWithHelpGroups,
    help='Show the effective settings, with defaults filled in, as JSON.',
)
@cli_machinery.standard_logging_options
@click.pass_context
def passbooster_config_show(ctx: click.Context, /) -> None:
    """Show the effective settings."""
    settings = _load_settings(ctx)
    effective = _types.settings_from_params(
        *_types.params_from_settings(settings)
    )
    click.echo(
        json.dumps(effective, ensure_ascii=False, indent=2, sort_keys=True),
        color=ctx.color,
    )


@passbooster_config.command(
    'set',
    context_settings=_CONTEXT_SETTINGS,
    cls=cli_machinery.CommandWithHelpGroups,
    help=(
        'Set the setting NAME (given as SECTION.KEY, e.g. kdf.time_cost) '
        'to VALUE.  VALUE is parsed as JSON if possible, else used as '
        'a string.'
    ),
)
@click.argument('name')
@click.argument('value')
@cli_machinery.standard_logging_options
@click.pass_context
def passbooster_config_set(
    ctx: click.Context,
    /,
    *,
    name: str,
    value: str,
) -> None:
    """Change one stored setting."""
    logger = logging.getLogger(PROG_NAME)
    settings = _load_settings(ctx)
    path = name.split('.')
    try:
        new_settings = cli_helpers.set_setting(
            settings, path, cli_helpers.parse_setting_value(value)
        )
    except (TypeError, ValueError) as exc:
        _fail(ctx, 'Cannot set %s: %s', name, exc)
    if path[0] in {'format', 'kdf', 'normalization'}:
        logger.warning(
            'Changing %s changes every derived password.',
            name,
            extra={'color': ctx.color},
        )
    try:
        cli_helpers.save_settings(new_settings)
    except OSError as exc:
        _fail(
            ctx,
            'Cannot store settings: %s: %r',
            exc.strerror,
            exc.filename,
        )


@passbooster_config.command(
    'reset',
    context_settings=_CONTEXT_SETTINGS,
    cls=cli_machinery.CommandWithHelpGroups,
    help='Delete all stored settings, reverting to the defaults.',
)
@click.option(
    '-y',
    '--yes',
    is_flag=True,
    help='Do not ask for confirmation.',
    cls=cli_machinery.StandardOption,
)
@cli_machinery.standard_logging_options
@click.pass_context
def passbooster_config_reset(ctx: click.Context, /, *, yes: bool) -> None:
    """Delete all stored settings."""
    logger = logging.getLogger(PROG_NAME)
    if not yes:
        click.confirm(
            'Reset all settings?  This may change every derived password.',
            abort=True,
            err=True,
        )
    filename = cli_helpers.config_filename(subsystem='settings')
    try:
        filename.unlink()
    except FileNotFoundError:
        logger.info(
            'No stored settings to reset', extra={'color': ctx.color}
        )
    except OSError as exc:
        _fail(
            ctx,
            'Cannot delete settings: %s: %r',
            exc.strerror,
            exc.filename,
        )


if __name__ == '__main__':
    passbooster()
