# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Test password formatting and policy checking."""

from __future__ import annotations

import base64
import re
import string

import hypothesis
import pytest

import tests
from passbooster import _types, formatter

ZERO_KEY = bytes(32)


class TestFormatPassword:
    """Test [`formatter.format_password`][]."""

    @hypothesis.given(key=tests.derived_keys, policy=tests.format_policies)
    def test_100_policy_satisfaction(
        self, key: bytes, policy: _types.FormatPolicy
    ) -> None:
        """Every formatted password passes the policy check."""
        password = formatter.format_password(key, policy)
        report = formatter.check_policy(password, policy)
        assert report.ok, report

    @hypothesis.given(key=tests.derived_keys, policy=tests.format_policies)
    def test_101_length_exactness(
        self, key: bytes, policy: _types.FormatPolicy
    ) -> None:
        """The password length is the clamped policy length."""
        password = formatter.format_password(key, policy)
        assert len(password) == max(12, min(128, policy.length))

    @hypothesis.given(key=tests.derived_keys, policy=tests.format_policies)
    def test_102_no_long_digit_runs(
        self, key: bytes, policy: _types.FormatPolicy
    ) -> None:
        """The password never contains three digits in a row."""
        password = formatter.format_password(key, policy)
        assert re.search('[0-9]{3}', password) is None

    @hypothesis.given(key=tests.derived_keys, policy=tests.format_policies)
    def test_103_determinism(
        self, key: bytes, policy: _types.FormatPolicy
    ) -> None:
        """Identical inputs yield identical passwords."""
        assert formatter.format_password(
            key, policy
        ) == formatter.format_password(bytearray(key), policy)

    @hypothesis.given(key=tests.derived_keys, policy=tests.format_policies)
    def test_104_alphabet(
        self, key: bytes, policy: _types.FormatPolicy
    ) -> None:
        """Passwords only use base64url characters and the symbols."""
        allowed = set(string.ascii_letters + string.digits + '-_')
        allowed.update(policy.symbols)
        assert set(formatter.format_password(key, policy)) <= allowed

    def test_200_all_zero_key(self) -> None:
        """The all-zero key yields exactly the forced characters."""
        policy = _types.FormatPolicy(12, '@#')
        password = formatter.format_password(ZERO_KEY, policy)
        assert password == '0@AAAAAAAAAA'
        assert len(password) == 12
        assert sum(c in string.digits for c in password) == 1
        assert sum(c in '@#' for c in password) == 1
        assert formatter.check_policy(password, policy).ok

    def test_201_all_zero_key_without_symbols(self) -> None:
        """An empty symbol set disables symbol forcing."""
        password = formatter.format_password(
            ZERO_KEY, _types.FormatPolicy(12, '')
        )
        assert password == '0AAAAAAAAAAA'

    @pytest.mark.parametrize(
        ['length', 'expected'],
        [(1, 12), (11, 12), (12, 12), (20, 20), (128, 128), (1000, 128)],
    )
    def test_202_length_clamping(self, length: int, expected: int) -> None:
        """Out-of-range lengths are clamped, not rejected."""
        password = formatter.format_password(
            ZERO_KEY, _types.FormatPolicy(length)
        )
        assert len(password) == expected

    def test_203_candidate_prefix(self) -> None:
        """A compliant base64url encoding is used verbatim."""
        key = base64.urlsafe_b64decode('Ab1cDe@fGh2i'.replace('@', '_'))
        password = formatter.format_password(
            key, _types.FormatPolicy(12, '_')
        )
        assert password == 'Ab1cDe_fGh2i'

    def test_204_digit_run_is_broken(self) -> None:
        """Runs of three or more digits are broken up with letters."""
        key = base64.urlsafe_b64decode('A_123456789B')
        password = formatter.format_password(
            key, _types.FormatPolicy(12, '_')
        )
        assert password[:3] == 'A_1'
        assert re.search('[0-9]{3}', password) is None
        assert formatter.check_policy(
            password, _types.FormatPolicy(12, '_')
        ).ok

    def test_205_empty_key(self) -> None:
        """An empty key cannot be formatted."""
        with pytest.raises(ValueError, match='empty key'):
            formatter.format_password(b'')

    @pytest.mark.parametrize('symbols', ['0', '@1', 'a', 'Z#'])
    def test_206_alphanumeric_symbols(self, symbols: str) -> None:
        """Letters and digits cannot serve as symbols."""
        with pytest.raises(ValueError, match='letters or digits'):
            formatter.format_password(
                b"']@\x00", _types.FormatPolicy(12, symbols)
            )

    def test_207_single_byte_key(self) -> None:
        """Even a single key byte suffices."""
        password = formatter.format_password(b'\xff')
        assert formatter.check_policy(password).ok


class TestCheckPolicy:
    """Test [`formatter.check_policy`][]."""

    @pytest.mark.parametrize(
        ['password', 'policy', 'expected'],
        [
            (
                'Abcdefghij1@',
                _types.FormatPolicy(12, '@'),
                _types.PolicyReport(True, True, True, True, True, True),
            ),
            (
                'abcdefghij1@',
                _types.FormatPolicy(12, '@'),
                _types.PolicyReport(False, True, True, False, True, True),
            ),
            (
                'Abcdefghijk@',
                _types.FormatPolicy(12, '@'),
                _types.PolicyReport(False, True, False, True, True, True),
            ),
            (
                'Abcdefghij1#',
                _types.FormatPolicy(12, '@'),
                _types.PolicyReport(False, True, True, True, False, True),
            ),
            (
                'Abcdefghi123@',
                _types.FormatPolicy(12, '@'),
                _types.PolicyReport(False, True, True, True, True, False),
            ),
            (
                'Abcdefghijk1',
                _types.FormatPolicy(12, ''),
                _types.PolicyReport(True, True, True, True, True, True),
            ),
            (
                'Abc1@',
                _types.FormatPolicy(5, '@'),
                _types.PolicyReport(False, False, True, True, True, True),
            ),
            (
                'Abcdefghij1@' * 2,
                _types.FormatPolicy(20, '@'),
                _types.PolicyReport(True, True, True, True, True, True),
            ),
        ],
    )
    def test_200_reports(
        self,
        password: str,
        policy: _types.FormatPolicy,
        expected: _types.PolicyReport,
    ) -> None:
        """Each check is reported independently."""
        assert formatter.check_policy(password, policy) == expected

    @pytest.mark.parametrize('password', [None, '', b'Abcdefghij1@', 42])
    def test_201_malformed(self, password: object) -> None:
        """Malformed passwords yield an all-false report."""
        assert formatter.check_policy(password) == _types.PolicyReport()  # type: ignore[arg-type]


def test_base64url() -> None:
    """base64url is unpadded and URL-safe."""
    assert formatter.base64url(b'\xfb\xff\xbf') == '-_-_'
    assert formatter.base64url(b'a') == 'YQ'
    assert formatter.base64url(b'') == ''
