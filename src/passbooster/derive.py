# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Salt construction and key derivation.

A site password is derived in three stages: the normalized site context
is joined into a salt ([`build_salt`][]), the master secret and the salt
are run through a memory-hard key-derivation function ([`derive`][]),
and the resulting key is formatted into a password
([`passbooster.formatter.format_password`][]).  [`derive_password`][]
runs all three stages.

The canonical key-derivation function is Argon2id.  PBKDF2-HMAC-SHA256
is supported as a deprecated fallback for environments lacking Argon2;
it yields *different* keys for identical inputs, so switching between
the two changes every derived password.

"""

from __future__ import annotations

import asyncio
import logging
import warnings
from typing import TYPE_CHECKING

from passbooster import _types, domain, formatter, normalize

if TYPE_CHECKING:
    from collections.abc import Sequence

    from typing_extensions import Buffer

__all__ = (
    'SALT_DELIMITER',
    'DerivationError',
    'build_salt',
    'build_site_salt',
    'derive',
    'derive_key_sync',
    'derive_password',
)

logger = logging.getLogger(__name__)

SALT_DELIMITER = '\x1f'
"""
The salt delimiter: U+001F INFORMATION SEPARATOR ONE ("unit
separator").  Part of the public contract; any tool reconstructing
salts must use this exact character.  Label normalization with the
character set restriction never emits it, so distinct site contexts
cannot serialize to the same salt.
"""
ARGON2_VERSION = 0x13
PBKDF2_ITERATIONS = 600_000
"""The fixed iteration count for the deprecated PBKDF2 fallback."""


class DerivationError(ValueError):
    """The key could not be derived.

    Raised if the key-derivation primitive is unavailable, or if the
    parameters are out of range.  No partial key is ever returned.

    """


def build_salt(pieces: Sequence[str], /) -> str:
    """Join salt pieces with the reserved [`SALT_DELIMITER`][].

    Examples:
        >>> build_salt(['example.com', 'work', 'v1'])
        'example.com\\x1fwork\\x1fv1'

    """
    return SALT_DELIMITER.join(pieces)


def build_site_salt(
    context: _types.SiteContext,
    config: _types.NormalizationConfig = normalize.DEFAULT_NORMALIZATION,
    /,
    *,
    resolver: domain.DomainResolver | None = None,
) -> str:
    """Normalize a site context and join it into a salt.

    Args:
        context:
            The raw site context.
        config:
            The label normalization steps.
        resolver:
            An optional public suffix resolver for the domain.

    Returns:
        The salt, as the normalized domain, label and version, in this
        order, joined by [`SALT_DELIMITER`][].

    """
    return build_salt([
        domain.normalize_domain(context.domain, resolver),
        normalize.normalize_label(context.label, config),
        normalize.normalize_version(context.version),
    ])


def _to_bytes(s: Buffer | str, /) -> bytes:
    if isinstance(s, str):
        return s.encode('UTF-8')
    return bytes(s)


def _check_params(params: _types.KdfParams, /) -> None:
    problems: list[str] = []
    if params.time_cost < 1:
        problems.append(f'time cost {params.time_cost} is below 1')
    if params.memory_mib < _types.MIN_MEMORY_MIB:
        problems.append(
            f'memory cost {params.memory_mib} MiB is below '
            f'{_types.MIN_MEMORY_MIB} MiB'
        )
    if params.parallelism < 1:
        problems.append(f'parallelism {params.parallelism} is below 1')
    if params.output_bytes < _types.MIN_OUTPUT_BYTES:
        problems.append(
            f'output length {params.output_bytes} is below '
            f'{_types.MIN_OUTPUT_BYTES} bytes'
        )
    if problems:
        msg = 'invalid key derivation parameters: ' + '; '.join(problems)
        raise DerivationError(msg)


def _argon2id(
    master: bytes, salt: bytes, params: _types.KdfParams, /
) -> bytes:
    try:
        from argon2 import exceptions, low_level  # noqa: PLC0415
    except ModuleNotFoundError as exc:
        msg = 'Argon2id is unavailable: argon2-cffi is not installed'
        raise DerivationError(msg) from exc
    try:
        return low_level.hash_secret_raw(
            secret=master,
            salt=salt,
            time_cost=params.time_cost,
            memory_cost=params.memory_kib,
            parallelism=params.parallelism,
            hash_len=params.output_bytes,
            type=low_level.Type.ID,
            version=ARGON2_VERSION,
        )
    except exceptions.HashingError as exc:
        msg = f'Argon2id failed: {exc}'
        raise DerivationError(msg) from exc


def _pbkdf2_sha256(
    master: bytes, salt: bytes, params: _types.KdfParams, /
) -> bytes:
    warnings.warn(
        'PBKDF2-HMAC-SHA256 key derivation is deprecated; its keys differ '
        'from Argon2id keys for the same inputs',
        DeprecationWarning,
        stacklevel=3,
    )
    try:
        from cryptography import exceptions  # noqa: PLC0415
        from cryptography.hazmat.primitives import hashes  # noqa: PLC0415
        from cryptography.hazmat.primitives.kdf import pbkdf2  # noqa: PLC0415
    except ModuleNotFoundError as exc:
        msg = 'PBKDF2 is unavailable: cryptography is not installed'
        raise DerivationError(msg) from exc
    try:
        return pbkdf2.PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=params.output_bytes,
            salt=salt,
            iterations=PBKDF2_ITERATIONS,
        ).derive(master)
    except exceptions.UnsupportedAlgorithm as exc:
        msg = f'PBKDF2-HMAC-SHA256 is unavailable: {exc}'
        raise DerivationError(msg) from exc


def derive_key_sync(
    master: Buffer | str,
    salt: Buffer | str,
    params: _types.KdfParams = _types.KdfParams(),  # noqa: B008
    /,
) -> bytes:
    """Derive a key from the master secret and salt, blocking.

    This is the CPU- and memory-expensive computation behind
    [`derive`][].  Prefer the latter from event loops and UI threads.

    Args:
        master:
            The master secret.  If a string, its UTF-8 encoding is used.
        salt:
            The salt.  If a string, its UTF-8 encoding is used.
        params:
            The key-derivation parameters.

    Returns:
        The derived key, exactly `params.output_bytes` bytes long.

    Raises:
        DerivationError:
            The parameters are out of range, or the primitive is
            unavailable or failed.

    """
    _check_params(params)
    try:
        algorithm = _types.KdfAlgorithm(params.algorithm)
    except ValueError as exc:
        msg = f'unknown key derivation algorithm: {params.algorithm!r}'
        raise DerivationError(msg) from exc
    master_bytes = _to_bytes(master)
    salt_bytes = _to_bytes(salt)
    logger.debug(
        'Deriving %d-byte key via %s (time cost %d, memory %d MiB, '
        'parallelism %d, salt length %d)',
        params.output_bytes,
        algorithm.value,
        params.time_cost,
        params.memory_mib,
        params.parallelism,
        len(salt_bytes),
    )
    if algorithm == _types.KdfAlgorithm.PBKDF2_SHA256:
        key = _pbkdf2_sha256(master_bytes, salt_bytes, params)
    else:
        key = _argon2id(master_bytes, salt_bytes, params)
    assert len(key) == params.output_bytes
    return key


async def derive(
    master: Buffer | str,
    salt: Buffer | str,
    params: _types.KdfParams = _types.KdfParams(),  # noqa: B008
    /,
) -> bytes:
    """Derive a key from the master secret and salt.

    Runs [`derive_key_sync`][] in a worker thread, so the event loop
    stays responsive during the (intentionally slow) computation.
    Independent derivations may be awaited concurrently.  Cancelling
    the awaiting task abandons the result; there is nothing to roll
    back.

    Args:
        master:
            The master secret.  If a string, its UTF-8 encoding is used.
        salt:
            The salt.  If a string, its UTF-8 encoding is used.
        params:
            The key-derivation parameters.

    Returns:
        The derived key, exactly `params.output_bytes` bytes long.

    Raises:
        DerivationError:
            The parameters are out of range, or the primitive is
            unavailable or failed.

    """
    return await asyncio.to_thread(derive_key_sync, master, salt, params)


async def derive_password(  # noqa: PLR0913
    master: Buffer | str,
    context: _types.SiteContext,
    /,
    *,
    kdf_params: _types.KdfParams = _types.KdfParams(),  # noqa: B008
    policy: _types.FormatPolicy = _types.FormatPolicy(),  # noqa: B008
    normalization: _types.NormalizationConfig = (
        normalize.DEFAULT_NORMALIZATION
    ),
    resolver: domain.DomainResolver | None = None,
) -> str:
    """Derive the password for a site.

    Normalize the site context into a salt, derive a key from the master
    secret and the salt, and format the key according to the policy.

    Args:
        master:
            The master secret.  If a string, its UTF-8 encoding is used.
        context:
            The raw site context.
        kdf_params:
            The key-derivation parameters.
        policy:
            The password format policy.
        normalization:
            The label normalization steps.
        resolver:
            An optional public suffix resolver for the domain.

    Returns:
        The site password.

    Raises:
        DerivationError:
            The key could not be derived.

    """
    salt = build_site_salt(context, normalization, resolver=resolver)
    key = await derive(master, salt, kdf_params)
    return formatter.format_password(key, policy)
