# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Canonicalize labels and versions into stable salt tokens.

Minor differences in how a user types a label (extra spaces, mixed
case, compatibility characters such as full-width letters) must not
change the salt, because a changed salt silently changes every derived
password.  The normalization is a fixed sequence of independently
toggleable steps; see [`NormalizationConfig`][passbooster._types.NormalizationConfig]
for the step order.

The label normalizer never emits the salt delimiter: with the
character set restriction enabled, every control character is
replaced.

"""

from __future__ import annotations

import re
import unicodedata
from typing import TYPE_CHECKING

from typing_extensions import NamedTuple

from passbooster import _types

if TYPE_CHECKING:
    from collections.abc import Callable

    from typing_extensions import TypeAlias

__all__ = (
    'DEFAULT_NORMALIZATION',
    'normalize_label',
    'normalize_label_explained',
    'normalize_version',
)

DEFAULT_NORMALIZATION = _types.NormalizationConfig()

_WHITESPACE_RUN = re.compile(r'\s+')
_DISALLOWED_CHAR = re.compile(r'[^A-Za-z0-9._@-]')
_DASH_RUN = re.compile(r'-{2,}')
_DIGIT_RUN = re.compile(r'[0-9]+')

StepFunc: TypeAlias = 'Callable[[str], str]'
DetailFunc: TypeAlias = 'Callable[[str, str], str]'


def _plural(count: int, noun: str, /) -> str:
    return f'{count} {noun}' if count == 1 else f'{count} {noun}s'


def _trim_detail(before: str, after: str, *, what: str) -> str:
    start = before.find(after) if after else len(before)
    leading = start
    trailing = len(before) - start - len(after)
    return (
        f'Removed {leading} leading and {trailing} trailing '
        f'{what} characters'
    )


def _nfkc_detail(before: str, after: str) -> str:
    del after
    changed = sum(
        1 for c in before if unicodedata.normalize('NFKC', c) != c
    )
    return (
        f'Replaced {_plural(changed, "compatibility character")} '
        f'with canonical equivalents'
    )


def _lowercase_detail(before: str, after: str) -> str:
    del after
    count = sum(1 for c in before if c.lower() != c)
    return f'Lowercased {_plural(count, "character")}'


def _whitespace_detail(before: str, after: str) -> str:
    del after
    count = len(_WHITESPACE_RUN.findall(before))
    return f"Replaced {_plural(count, 'whitespace run')} with '-'"


def _charset_detail(before: str, after: str) -> str:
    del after
    bad = _DISALLOWED_CHAR.findall(before)
    distinct = ' '.join(sorted({repr(c) for c in bad}))
    return (
        f"Replaced {_plural(len(bad), 'disallowed character')} "
        f"with '-': {distinct}"
    )


def _dash_run_detail(before: str, after: str) -> str:
    del after
    count = len(_DASH_RUN.findall(before))
    return f"Collapsed {_plural(count, 'run')} of dashes into a single '-'"


class _Step(NamedTuple):
    key: str
    title: str
    apply: StepFunc
    detail: DetailFunc


_STEPS: tuple[_Step, ...] = (
    _Step(
        'unicode_nfkc',
        'Unicode normalization (NFKC)',
        lambda s: unicodedata.normalize('NFKC', s),
        _nfkc_detail,
    ),
    _Step(
        'trim',
        'Trim whitespace',
        str.strip,
        lambda b, a: _trim_detail(b, a, what='whitespace'),
    ),
    _Step(
        'collapse_whitespace',
        'Collapse whitespace',
        lambda s: _WHITESPACE_RUN.sub('-', s),
        _whitespace_detail,
    ),
    _Step('lowercase', 'Lowercase', str.lower, _lowercase_detail),
    _Step(
        'restrict_charset',
        'Restrict character set',
        lambda s: _DISALLOWED_CHAR.sub('-', s),
        _charset_detail,
    ),
    _Step(
        'collapse_dashes',
        'Collapse dashes',
        lambda s: _DASH_RUN.sub('-', s),
        _dash_run_detail,
    ),
    _Step(
        'trim_dashes',
        'Trim dashes',
        lambda s: s.strip('-'),
        lambda b, a: _trim_detail(b, a, what='dash'),
    ),
)
assert tuple(s.key for s in _STEPS) == _types.NormalizationConfig._fields


def normalize_label_steps(
    label: str | None,
    config: _types.NormalizationConfig = DEFAULT_NORMALIZATION,
    /,
    *,
    explain: bool = False,
) -> _types.NormalizedLabel:
    """Run the label normalization pipeline.

    This is the single implementation behind [`normalize_label`][] and
    [`normalize_label_explained`][].

    Args:
        label:
            The raw label.  `None` is treated as the empty string.
        config:
            The steps to apply.
        explain:
            If true, also collect a change record for each step that
            altered the text.

    Returns:
        The normalized label, and the change records if requested.

    """
    text = label or ''
    changes: list[_types.ChangeRecord] | None = [] if explain else None
    for step in _STEPS:
        if not getattr(config, step.key):
            continue
        before, text = text, step.apply(text)
        if changes is not None and text != before:
            changes.append(
                _types.ChangeRecord(
                    step_key=step.key,
                    title=step.title,
                    detail=step.detail(before, text),
                    before=before,
                    after=text,
                )
            )
    return _types.NormalizedLabel(text, changes)


def normalize_label(
    label: str | None,
    config: _types.NormalizationConfig = DEFAULT_NORMALIZATION,
    /,
) -> str:
    """Canonicalize a label.

    Args:
        label:
            The raw label.  `None` is treated as the empty string.
        config:
            The steps to apply.

    Returns:
        The normalized label.  Possibly empty.

    Examples:
        >>> normalize_label('  My Label: Admin!! ')
        'my-label-admin'
        >>> normalize_label('Ｗｏｒｋ')
        'work'
        >>> normalize_label(None)
        ''

    """
    return normalize_label_steps(label, config).text


def normalize_label_explained(
    label: str | None,
    config: _types.NormalizationConfig = DEFAULT_NORMALIZATION,
    /,
) -> tuple[str, list[_types.ChangeRecord]]:
    """Canonicalize a label, and report every change made.

    Args:
        label:
            The raw label.  `None` is treated as the empty string.
        config:
            The steps to apply.

    Returns:
        The normalized label, and an ordered list of change records,
        one per step that actually changed the text.

    Examples:
        >>> text, changes = normalize_label_explained(' Work ')
        >>> text
        'work'
        >>> [c.step_key for c in changes]
        ['trim', 'lowercase']

    """
    text, changes = normalize_label_steps(label, config, explain=True)
    assert changes is not None
    return text, changes


def normalize_version(version: str | None, /) -> str:
    """Canonicalize a version designator into `v<positive integer>`.

    The first run of ASCII digits determines the version number.  If
    there is none, or if it is zero, the version number is 1.

    Examples:
        >>> normalize_version('release 7b')
        'v7'
        >>> normalize_version('v007')
        'v7'
        >>> normalize_version('')
        'v1'
        >>> normalize_version('0')
        'v1'

    """
    match = _DIGIT_RUN.search(version or '')
    digits = match.group(0).lstrip('0') if match else ''
    return f'v{digits or 1}'
