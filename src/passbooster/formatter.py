# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Deterministic password formatting and policy checking.

[`format_password`][] maps derived key material onto a password of
fixed length containing at least one uppercase letter, one digit and
(if the policy has any) one symbol, and never three digits in a row.
No randomness is involved: identical keys and policies always yield
identical passwords.  The formatting algorithm is identified by
[`FORMATTER_ID`][passbooster._types.FORMATTER_ID]; any change to its
output is a breaking change.

[`check_policy`][] independently inspects any finished password.

"""

from __future__ import annotations

import base64
import logging
import re
import string
from typing import TYPE_CHECKING

from passbooster import _types

if TYPE_CHECKING:
    from collections.abc import Callable, MutableSequence

    from typing_extensions import Buffer

__all__ = ('base64url', 'check_policy', 'format_password')

logger = logging.getLogger(__name__)

UPPERCASE_SEED = 0
DIGIT_SEED = 2
SYMBOL_SEED = 4
MAX_DIGIT_RUN = 2

_LONG_DIGIT_RUN = re.compile(f'[0-9]{{{MAX_DIGIT_RUN + 1}}}')
_ALPHANUMERIC = frozenset(string.ascii_letters + string.digits)


def _is_upper(c: str, /) -> bool:
    return c in string.ascii_uppercase


def _is_digit(c: str, /) -> bool:
    return c in string.digits


def base64url(data: Buffer, /) -> str:
    """Encode bytes as unpadded base64url.

    Examples:
        >>> base64url(b'\\xfb\\xff')
        '-_8'

    """
    return base64.urlsafe_b64encode(bytes(data)).rstrip(b'=').decode('ASCII')


class _IndexPicker:
    """Claim buffer positions for the character class forcing steps.

    A position is free unless an earlier forcing step claimed it, or it
    holds the only representative of a required character class.

    """

    def __init__(
        self,
        key: bytes,
        buffer: MutableSequence[str],
        predicates: list[Callable[[str], bool]],
    ) -> None:
        self.key = key
        self.buffer = buffer
        self.predicates = predicates
        self.claimed: set[int] = set()

    def _sole_representatives(self) -> set[int]:
        reserved: set[int] = set()
        for predicate in self.predicates:
            indices = [i for i, c in enumerate(self.buffer) if predicate(c)]
            if len(indices) == 1:
                reserved.update(indices)
        return reserved

    def pick(self, seed: int, /) -> int:
        length = len(self.buffer)
        n = len(self.key)
        taken = self.claimed | self._sole_representatives()
        candidates = [
            (self.key[(seed + t) % n] + t) % length
            for t in range(length + n)
        ]
        # Trial positions first, then a linear probe; only a full
        # buffer falls through to the seed position.
        candidates.extend(
            (seed + offset) % length for offset in range(length)
        )
        index = next((i for i in candidates if i not in taken), seed % length)
        self.claimed.add(index)
        return index


def format_password(
    key: Buffer,
    policy: _types.FormatPolicy = _types.FormatPolicy(),  # noqa: B008
    /,
) -> str:
    """Format derived key material as a policy-compliant password.

    1.  Encode the key as unpadded base64url, and repeat this string
        cyclically to the (clamped) policy length.
    2.  If there is no uppercase letter, pick a position and uppercase
        the letter there, or overwrite it with an uppercase letter.
    3.  If there is no digit, pick a position and overwrite it with
        a digit.
    4.  If the policy has symbols and there is none, pick a position and
        overwrite it with a symbol.
    5.  Replace every third consecutive digit with a letter.

    Positions and replacement characters are chosen by key bytes.

    Args:
        key:
            The derived key.  Must not be empty.
        policy:
            The format policy.  Its length is clamped to
            [[`MIN_PASSWORD_LENGTH`][passbooster._types.MIN_PASSWORD_LENGTH],
            [`MAX_PASSWORD_LENGTH`][passbooster._types.MAX_PASSWORD_LENGTH]].
            Its symbols must not contain ASCII letters or digits.

    Returns:
        The password, exactly `policy.clamped_length` characters long.

    Raises:
        ValueError:
            The key is empty, or the symbols contain ASCII letters or
            digits.

    Examples:
        >>> format_password(bytes(32), _types.FormatPolicy(12, '@#'))
        '0@AAAAAAAAAA'

    """
    key = bytes(key)
    if not key:
        msg = 'cannot format an empty key'
        raise ValueError(msg)
    if any(c in _ALPHANUMERIC for c in policy.symbols):
        msg = (
            f'symbols must not contain letters or digits: {policy.symbols!r}'
        )
        raise ValueError(msg)
    n = len(key)
    length = policy.clamped_length
    symbols = policy.symbols
    candidate = base64url(key)
    repeats = -(-length // len(candidate))
    buffer = list((candidate * repeats)[:length])
    picker = _IndexPicker(
        key, buffer, [_is_upper, _is_digit, lambda c: c in symbols]
    )

    if not any(_is_upper(c) for c in buffer):
        i = picker.pick(UPPERCASE_SEED)
        if buffer[i] in string.ascii_lowercase:
            buffer[i] = buffer[i].upper()
        else:
            buffer[i] = string.ascii_uppercase[
                key[(UPPERCASE_SEED + 1) % n] % 26
            ]
    if not any(_is_digit(c) for c in buffer):
        i = picker.pick(DIGIT_SEED)
        buffer[i] = string.digits[key[(DIGIT_SEED + 1) % n] % 10]
    if symbols and not any(c in symbols for c in buffer):
        i = picker.pick(SYMBOL_SEED)
        buffer[i] = symbols[key[(SYMBOL_SEED + 1) % n] % len(symbols)]

    run = 0
    for i, c in enumerate(buffer):
        if not _is_digit(c):
            run = 0
            continue
        run += 1
        if run > MAX_DIGIT_RUN:
            letter = string.ascii_lowercase[key[i % n] % 26]
            buffer[i] = letter.upper() if key[(i + 1) % n] & 1 else letter
            run = 0

    logger.debug(
        'Formatted %d-byte key into %d-character password', n, length
    )
    return ''.join(buffer)


def check_policy(
    password: str | None,
    policy: _types.FormatPolicy = _types.FormatPolicy(),  # noqa: B008
    /,
) -> _types.PolicyReport:
    """Check a password against a format policy.

    The length requirement is the clamped policy length.  An empty
    symbol set makes the symbol requirement vacuously true.

    Args:
        password:
            The password to check.  `None`, the empty string, or
            a non-string yield an all-false report.
        policy:
            The format policy.

    Returns:
        The policy report.

    Examples:
        >>> check_policy('0@AAAAAAAAAA', _types.FormatPolicy(12, '@#')).ok
        True
        >>> report = check_policy('0@AAAAAAAAA', _types.FormatPolicy(12, '@#'))
        >>> report.ok, report.length_ok, report.has_symbol
        (False, False, True)

    """
    if not password or not isinstance(password, str):
        return _types.PolicyReport()
    length_ok = len(password) >= policy.clamped_length
    has_digit = any(_is_digit(c) for c in password)
    has_upper = any(_is_upper(c) for c in password)
    has_symbol = not policy.symbols or any(
        c in policy.symbols for c in password
    )
    no_long_digit_run = _LONG_DIGIT_RUN.search(password) is None
    ok = all([length_ok, has_digit, has_upper, has_symbol, no_long_digit_run])
    return _types.PolicyReport(
        ok=ok,
        length_ok=length_ok,
        has_digit=has_digit,
        has_upper=has_upper,
        has_symbol=has_symbol,
        no_long_digit_run=no_long_digit_run,
    )
