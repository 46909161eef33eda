# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

from __future__ import annotations

import contextlib
import inspect
import json
import os
import string
from typing import TYPE_CHECKING

import click.testing
from hypothesis import strategies
from typing_extensions import NamedTuple, Self

from passbooster import _types
from passbooster._internals import cli_helpers, cli_machinery

__all__ = ()

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    import pytest
    from typing_extensions import Any

DUMMY_MASTER = 'correct horse battery staple'
DUMMY_DOMAIN = 'example.com'
DUMMY_CONTEXT = _types.SiteContext(DUMMY_DOMAIN, 'work', 'v1')

CHEAP_KDF_PARAMS = _types.KdfParams(
    time_cost=1, memory_mib=_types.MIN_MEMORY_MIB, parallelism=1
)
"""Argon2id parameters that run in milliseconds.  Tests only."""

CHEAP_SETTINGS: _types.Settings = {
    'kdf': {'time_cost': 1, 'memory_mib': _types.MIN_MEMORY_MIB},
}


def auto_prompt(*args: Any, **kwargs: Any) -> str:
    del args, kwargs  # Unused.
    return DUMMY_MASTER


# Hypothesis strategies
# =====================

derived_keys = strategies.binary(min_size=1, max_size=64)
"""Arbitrary non-empty key material."""

symbol_sets = strategies.lists(
    strategies.sampled_from(sorted(string.punctuation)),
    unique=True,
    max_size=8,
).map(''.join)
"""Valid symbol sets: distinct ASCII punctuation, possibly empty."""

format_policies = strategies.builds(
    _types.FormatPolicy,
    length=strategies.integers(min_value=-5, max_value=200),
    symbols=symbol_sets,
)

normalization_configs = strategies.builds(
    _types.NormalizationConfig,
    *([strategies.booleans()] * len(_types.NormalizationConfig._fields)),
)


# CLI testing machinery
# =====================


class ReadableResult(NamedTuple):
    """Helper class for formatting and testing click.testing.Result objects."""

    exception: BaseException | None
    exit_code: int
    output: str
    stderr: str

    @classmethod
    def parse(cls, r: click.testing.Result, /) -> Self:
        try:
            stderr = r.stderr
        except ValueError:
            stderr = r.output
        return cls(r.exception, r.exit_code, r.stdout or '', stderr or '')

    def clean_exit(
        self, *, output: str = '', empty_stderr: bool = False
    ) -> bool:
        """Return whether the invocation exited cleanly.

        Args:
            output:
                An expected output string.
            empty_stderr:
                Whether standard error must be empty.

        """
        return (
            (
                not self.exception
                or (
                    isinstance(self.exception, SystemExit)
                    and self.exit_code == 0
                )
            )
            and (not output or output in self.output)
            and (not empty_stderr or not self.stderr)
        )

    def error_exit(
        self, *, error: str | type[BaseException] = BaseException
    ) -> bool:
        """Return whether the invocation exited uncleanly.

        Args:
            error:
                An expected error message, or an expected exception
                type.

        """
        if isinstance(error, str):
            return (
                isinstance(self.exception, SystemExit)
                and self.exit_code > 0
                and (not error or error in self.stderr)
            )
        else:  # noqa: RET505
            return isinstance(self.exception, error)


class CliRunner:
    """A [`click.testing.CliRunner`][] with separate standard error.

    Older `click` versions mix standard error into standard output
    unless told otherwise; newer ones always keep them separate and no
    longer accept the `mix_stderr` argument.  Invocations run with the
    standard CLI logging set up, and return a [`ReadableResult`][].

    """

    def __init__(self) -> None:
        params = inspect.signature(click.testing.CliRunner).parameters
        kwargs: dict[str, Any] = {}
        if 'mix_stderr' in params:  # pragma: no cover [external-api]
            kwargs['mix_stderr'] = False
        self.click_testing_clirunner = click.testing.CliRunner(**kwargs)

    def invoke(
        self,
        cli: click.Command,
        args: Sequence[str] | str | None = None,
        input: str | bytes | None = None,  # noqa: A002
        *,
        catch_exceptions: bool = True,
        color: bool = False,
    ) -> ReadableResult:
        logging_setup = cli_machinery.StandardCLILogging
        with logging_setup.ensure_standard_logging(), (
            logging_setup.ensure_standard_warnings_logging()
        ):
            return ReadableResult.parse(
                self.click_testing_clirunner.invoke(
                    cli,
                    args=args,
                    input=input,
                    catch_exceptions=catch_exceptions,
                    color=color,
                )
            )

    def isolated_filesystem(self) -> contextlib.AbstractContextManager[str]:
        return self.click_testing_clirunner.isolated_filesystem()


@contextlib.contextmanager
def isolated_config(
    monkeypatch: pytest.MonkeyPatch,
    runner: CliRunner,
    settings: Mapping[str, Any] | None = None,
    user_config: str | None = None,
) -> Iterator[None]:
    """Run within a fresh, empty configuration directory.

    Optionally seed the directory with settings (as JSON) and a user
    configuration (as TOML text).

    """
    env_name = cli_helpers.PROG_NAME.upper() + '_PATH'
    with runner.isolated_filesystem():
        monkeypatch.setenv('HOME', os.getcwd())
        monkeypatch.setenv('USERPROFILE', os.getcwd())
        monkeypatch.setenv(env_name, os.path.join(os.getcwd(), 'config'))
        config_dir = cli_helpers.config_filename(subsystem=None)
        os.makedirs(config_dir, exist_ok=True)
        if settings is not None:
            with cli_helpers.config_filename(subsystem='settings').open(
                'w', encoding='UTF-8'
            ) as outfile:
                json.dump(settings, outfile)
        if user_config is not None:
            cli_helpers.config_filename(
                subsystem='user configuration'
            ).write_text(user_config, encoding='UTF-8')
        yield
