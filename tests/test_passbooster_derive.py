# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Test salt construction, key derivation and the full pipeline."""

from __future__ import annotations

import asyncio
import hashlib
import sys

import pytest
from argon2 import low_level

import tests
from passbooster import _types, derive, formatter

CHEAP = tests.CHEAP_KDF_PARAMS
MASTER = tests.DUMMY_MASTER
SALT = derive.build_salt(['example.com', 'work', 'v1'])


class TestSalt:
    """Test [`derive.build_salt`][] and [`derive.build_site_salt`][]."""

    def test_200_stability(self) -> None:
        """Salts are stable, and differ for different versions."""
        salt1 = derive.build_salt(['example.com', 'work', 'v1'])
        assert salt1 == derive.build_salt(['example.com', 'work', 'v1'])
        assert salt1 == 'example.com\x1fwork\x1fv1'
        assert salt1 != derive.build_salt(['example.com', 'work', 'v2'])

    def test_201_site_salt(self) -> None:
        """Site contexts are normalized before joining."""
        context = _types.SiteContext(
            'https://WWW.Example.com/login', '  Work ', 'release 01'
        )
        assert derive.build_site_salt(context) == SALT

    def test_202_site_salt_defaults(self) -> None:
        """Missing labels and versions take their defaults."""
        assert (
            derive.build_site_salt(_types.SiteContext('example.com'))
            == 'example.com\x1f\x1fv1'
        )

    def test_203_no_delimiter_injection(self) -> None:
        """A label containing the delimiter cannot shift the fields."""
        injected = _types.SiteContext('example.com', 'work\x1fv2')
        plain = _types.SiteContext('example.com', 'work', 'v2')
        assert derive.build_site_salt(injected) != derive.build_site_salt(
            plain
        )
        assert derive.build_site_salt(injected).count('\x1f') == 2
        injected_domain = _types.SiteContext('example.com\x1fwork')
        assert derive.build_site_salt(injected_domain).count('\x1f') == 2

    def test_204_resolver(self) -> None:
        """The domain resolver is consulted for the domain token."""

        class Resolver:
            def registrable_domain(self, host: str, /) -> str | None:
                return 'example.co.uk' if host.endswith('.co.uk') else None

        context = _types.SiteContext('shop.example.co.uk', 'work')
        assert derive.build_site_salt(
            context, resolver=Resolver()
        ).startswith('example.co.uk\x1f')


class TestDeriveKey:
    """Test [`derive.derive_key_sync`][] and [`derive.derive`][]."""

    def test_200_argon2id(self) -> None:
        """Argon2id keys match the reference implementation."""
        key = derive.derive_key_sync(MASTER, SALT, CHEAP)
        assert len(key) == CHEAP.output_bytes
        assert key == low_level.hash_secret_raw(
            secret=MASTER.encode('UTF-8'),
            salt=SALT.encode('UTF-8'),
            time_cost=1,
            memory_cost=8 * 1024,
            parallelism=1,
            hash_len=32,
            type=low_level.Type.ID,
            version=0x13,
        )

    def test_201_determinism(self) -> None:
        """Identical inputs yield identical keys; bytes equal strings."""
        key = derive.derive_key_sync(MASTER, SALT, CHEAP)
        assert key == derive.derive_key_sync(MASTER, SALT, CHEAP)
        assert key == derive.derive_key_sync(
            MASTER.encode('UTF-8'), bytearray(SALT.encode('UTF-8')), CHEAP
        )

    @pytest.mark.parametrize(
        'other',
        [
            ('other master', 'example.com', 'work', 'v1'),
            (MASTER, 'example.org', 'work', 'v1'),
            (MASTER, 'example.com', 'home', 'v1'),
            (MASTER, 'example.com', 'work', 'v2'),
        ],
        ids=['master', 'domain', 'label', 'version'],
    )
    def test_202_sensitivity(self, other: tuple[str, str, str, str]) -> None:
        """Changing any single input changes the key."""
        master, *pieces = other
        assert derive.derive_key_sync(
            master, derive.build_salt(pieces), CHEAP
        ) != derive.derive_key_sync(MASTER, SALT, CHEAP)

    def test_203_output_length(self) -> None:
        """The output length is configurable."""
        params = CHEAP._replace(output_bytes=64)
        assert len(derive.derive_key_sync(MASTER, SALT, params)) == 64

    @pytest.mark.parametrize(
        ['changes', 'message'],
        [
            ({'time_cost': 0}, 'time cost 0 is below 1'),
            ({'memory_mib': 4}, 'memory cost 4 MiB is below 8 MiB'),
            ({'parallelism': 0}, 'parallelism 0 is below 1'),
            ({'output_bytes': 8}, 'output length 8 is below 16 bytes'),
        ],
    )
    def test_210_invalid_params(
        self, changes: dict[str, int], message: str
    ) -> None:
        """Out-of-range parameters are rejected, not clamped."""
        with pytest.raises(derive.DerivationError, match=message):
            derive.derive_key_sync(MASTER, SALT, CHEAP._replace(**changes))

    def test_211_all_problems_reported(self) -> None:
        """Every out-of-range parameter is named."""
        params = CHEAP._replace(time_cost=0, parallelism=0)
        with pytest.raises(derive.DerivationError) as excinfo:
            derive.derive_key_sync(MASTER, SALT, params)
        assert 'time cost' in str(excinfo.value)
        assert 'parallelism' in str(excinfo.value)

    def test_212_unknown_algorithm(self) -> None:
        """Unknown algorithm names are rejected."""
        params = CHEAP._replace(algorithm='scrypt')
        with pytest.raises(derive.DerivationError, match='unknown'):
            derive.derive_key_sync(MASTER, SALT, params)

    def test_213_short_salt(self) -> None:
        """Argon2 failures surface as derivation errors."""
        with pytest.raises(derive.DerivationError) as excinfo:
            derive.derive_key_sync(MASTER, 'short', CHEAP)
        assert excinfo.value.__cause__ is not None

    def test_214_argon2_unavailable(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A missing Argon2 library is a derivation error."""
        monkeypatch.setitem(sys.modules, 'argon2', None)
        with pytest.raises(derive.DerivationError, match='unavailable'):
            derive.derive_key_sync(MASTER, SALT, CHEAP)

    def test_215_derivation_error_is_value_error(self) -> None:
        """Callers may catch derivation errors as value errors."""
        assert issubclass(derive.DerivationError, ValueError)

    def test_220_pbkdf2_deprecated(self) -> None:
        """The PBKDF2 fallback works, but is deprecated and different."""
        params = CHEAP._replace(algorithm=_types.KdfAlgorithm.PBKDF2_SHA256)
        with pytest.warns(DeprecationWarning, match='deprecated'):
            key = derive.derive_key_sync(MASTER, SALT, params)
        assert key == hashlib.pbkdf2_hmac(
            'sha256',
            MASTER.encode('UTF-8'),
            SALT.encode('UTF-8'),
            derive.PBKDF2_ITERATIONS,
            32,
        )
        assert key != derive.derive_key_sync(MASTER, SALT, CHEAP)

    def test_230_async(self) -> None:
        """The coroutine yields the same key as the blocking call."""
        key = asyncio.run(derive.derive(MASTER, SALT, CHEAP))
        assert key == derive.derive_key_sync(MASTER, SALT, CHEAP)

    def test_231_concurrent(self) -> None:
        """Independent derivations may run concurrently."""
        salts = [
            derive.build_salt([f'site{i}.example', '', 'v1'])
            for i in range(4)
        ]

        async def main() -> list[bytes]:
            return await asyncio.gather(*(
                derive.derive(MASTER, salt, CHEAP) for salt in salts
            ))

        keys = asyncio.run(main())
        assert keys == [
            derive.derive_key_sync(MASTER, salt, CHEAP) for salt in salts
        ]
        assert len(set(keys)) == len(keys)

    def test_232_async_error(self) -> None:
        """Errors propagate out of the worker thread."""
        with pytest.raises(derive.DerivationError):
            asyncio.run(
                derive.derive(MASTER, SALT, CHEAP._replace(time_cost=0))
            )


class TestDerivePassword:
    """Test [`derive.derive_password`][]."""

    def test_200_pipeline(self) -> None:
        """The pipeline formats the key derived from the site salt."""
        policy = _types.FormatPolicy(16, '@#')
        password = asyncio.run(
            derive.derive_password(
                MASTER, tests.DUMMY_CONTEXT, kdf_params=CHEAP, policy=policy
            )
        )
        key = derive.derive_key_sync(MASTER, SALT, CHEAP)
        assert password == formatter.format_password(key, policy)
        assert len(password) == 16
        assert formatter.check_policy(password, policy).ok

    def test_201_equivalent_contexts(self) -> None:
        """Contexts that normalize identically share a password."""
        contexts = [
            _types.SiteContext('example.com', 'work', 'v1'),
            _types.SiteContext('https://www.Example.com/', ' Work ', ''),
            _types.SiteContext('EXAMPLE.COM.', 'WORK', '1'),
        ]

        async def main() -> list[str]:
            return await asyncio.gather(*(
                derive.derive_password(MASTER, c, kdf_params=CHEAP)
                for c in contexts
            ))

        passwords = asyncio.run(main())
        assert len(set(passwords)) == 1

    def test_202_normalization_config(self) -> None:
        """The normalization config is honored."""
        context = _types.SiteContext('example.com', 'Work')
        case_sensitive = _types.NormalizationConfig(lowercase=False)
        pw1 = asyncio.run(
            derive.derive_password(MASTER, context, kdf_params=CHEAP)
        )
        pw2 = asyncio.run(
            derive.derive_password(
                MASTER,
                context,
                kdf_params=CHEAP,
                normalization=case_sensitive,
            )
        )
        assert pw1 != pw2
