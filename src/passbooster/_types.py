# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Types used by passbooster."""

from __future__ import annotations

import enum
import json
import string
from typing import TYPE_CHECKING

from typing_extensions import (
    NamedTuple,
    NotRequired,
    TypedDict,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from typing_extensions import Any, Self, TypeIs

__all__ = (
    'ChangeRecord',
    'FormatPolicy',
    'KdfAlgorithm',
    'KdfParams',
    'NormalizationConfig',
    'PolicyReport',
    'Settings',
    'SiteContext',
    'is_settings',
)

MIN_PASSWORD_LENGTH = 12
"""The shortest password the formatter will produce."""
MAX_PASSWORD_LENGTH = 128
"""The longest password the formatter will produce."""
DEFAULT_PASSWORD_LENGTH = 20
DEFAULT_SYMBOLS = '@#%+=?^'
MIN_MEMORY_MIB = 8
"""The memory cost floor for the key-derivation function, in MiB."""
MIN_OUTPUT_BYTES = 16
"""The least amount of key material handed to the formatter."""
FORMATTER_ID = 'b64url-force-runlimit-v1'
"""
Identifier of the (only) password formatting algorithm.  Persisted with
the settings, so that a future incompatible formatter cannot be
switched to silently.
"""


class KdfAlgorithm(str, enum.Enum):
    """Key-derivation functions understood by [`derive`][passbooster.derive].

    The two algorithms yield different keys for identical inputs.  Pick
    one per deployment and never switch silently.

    Attributes:
        ARGON2ID:
            Argon2id, memory-hard.  The canonical algorithm.
        PBKDF2_SHA256:
            PBKDF2 with HMAC-SHA256 and a fixed iteration count.
            Deprecated; only for environments without Argon2.

    """

    ARGON2ID = 'argon2id'
    """"""
    PBKDF2_SHA256 = 'pbkdf2-sha256'
    """"""


class NormalizationConfig(NamedTuple):
    """Which label normalization steps to apply.

    The field order is the order in which the steps are applied.  Each
    step is skipped entirely if its flag is false.

    Attributes:
        unicode_nfkc:
            Apply Unicode NFKC normalization.
        trim:
            Strip leading and trailing whitespace.
        collapse_whitespace:
            Replace each internal whitespace run with a single dash.
        lowercase:
            Convert to lowercase.
        restrict_charset:
            Replace every character outside `[A-Za-z0-9._@-]` with
            a dash.
        collapse_dashes:
            Replace runs of dashes with a single dash.
        trim_dashes:
            Strip leading and trailing dashes.

    """

    unicode_nfkc: bool = True
    """"""
    trim: bool = True
    """"""
    collapse_whitespace: bool = True
    """"""
    lowercase: bool = True
    """"""
    restrict_charset: bool = True
    """"""
    collapse_dashes: bool = True
    """"""
    trim_dashes: bool = True
    """"""

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], /) -> Self:
        """Build a config from a (partial) mapping of step names to flags.

        Missing steps take their default value.

        Raises:
            ValueError:
                The mapping names an unknown step, or a flag is not
                a boolean.

        """
        unknown = sorted(set(mapping) - set(cls._fields))
        if unknown:
            msg = f'unknown normalization steps: {", ".join(unknown)}'
            raise ValueError(msg)
        for key, value in mapping.items():
            if not isinstance(value, bool):
                msg = f'normalization step {key!r} is not a boolean'
                raise ValueError(msg)
        return cls(**mapping)


class ChangeRecord(NamedTuple):
    """A single normalization step that actually changed the text.

    Attributes:
        step_key:
            The [`NormalizationConfig`][] field name of the step.
        title:
            A short human-readable name of the step.
        detail:
            A human-readable description of what changed.  Purely
            descriptive.
        before:
            The text before this step.
        after:
            The text after this step.

    """

    step_key: str
    """"""
    title: str
    """"""
    detail: str
    """"""
    before: str
    """"""
    after: str
    """"""


class NormalizedLabel(NamedTuple):
    """The result of a label normalization pass.

    Attributes:
        text:
            The normalized label.
        changes:
            The change report, if requested, else `None`.

    """

    text: str
    """"""
    changes: list[ChangeRecord] | None = None
    """"""


class SiteContext(NamedTuple):
    """The public, non-secret context a password is derived for.

    Attributes:
        domain:
            The site's domain, or a URL containing it.
        label:
            A free-form label, e.g. the account name.
        version:
            A version designator, bumped to rotate the password.

    """

    domain: str
    """"""
    label: str = ''
    """"""
    version: str = ''
    """"""


class KdfParams(NamedTuple):
    """Cost parameters for the key-derivation function.

    Attributes:
        time_cost:
            Number of passes (Argon2id "iterations").  At least 1.
        memory_mib:
            Memory cost in MiB.  At least [`MIN_MEMORY_MIB`][].
        parallelism:
            Degree of parallelism (lanes).  At least 1.
        output_bytes:
            Length of the derived key.  At least [`MIN_OUTPUT_BYTES`][].
        algorithm:
            The key-derivation function to use.

    """

    time_cost: int = 3
    """"""
    memory_mib: int = 128
    """"""
    parallelism: int = 1
    """"""
    output_bytes: int = 32
    """"""
    algorithm: KdfAlgorithm = KdfAlgorithm.ARGON2ID
    """"""

    @property
    def memory_kib(self) -> int:
        """The memory cost in KiB, the native unit of Argon2."""
        return self.memory_mib * 1024


class FormatPolicy(NamedTuple):
    """Length and character class requirements for a password.

    Attributes:
        length:
            Desired password length.  Values outside of
            [[`MIN_PASSWORD_LENGTH`][], [`MAX_PASSWORD_LENGTH`][]] are
            clamped, not rejected.
        symbols:
            The symbol characters, one of which must appear in the
            password.  If empty, no symbol is required.

    """

    length: int = DEFAULT_PASSWORD_LENGTH
    """"""
    symbols: str = DEFAULT_SYMBOLS
    """"""

    @property
    def clamped_length(self) -> int:
        """The effective password length."""
        return max(MIN_PASSWORD_LENGTH, min(MAX_PASSWORD_LENGTH, self.length))


class PolicyReport(NamedTuple):
    """The result of checking a password against a [`FormatPolicy`][].

    Attributes:
        ok:
            True if and only if all other checks passed.
        length_ok:
            The password is at least as long as the policy demands.
        has_digit:
            The password contains an ASCII digit.
        has_upper:
            The password contains an ASCII uppercase letter.
        has_symbol:
            The password contains a symbol from the policy's symbol
            set.  Vacuously true for an empty symbol set.
        no_long_digit_run:
            The password contains no run of three or more digits.

    """

    ok: bool = False
    """"""
    length_ok: bool = False
    """"""
    has_digit: bool = False
    """"""
    has_upper: bool = False
    """"""
    has_symbol: bool = False
    """"""
    no_long_digit_run: bool = False
    """"""


class FormatSettings(TypedDict, total=False):
    r"""Settings for passbooster: password format.

    Attributes:
        length:
            Desired password length.
        symbols:
            The symbol set.
        algorithm:
            The formatter identifier.  Must be [`FORMATTER_ID`][].

    """

    length: NotRequired[int]
    """"""
    symbols: NotRequired[str]
    """"""
    algorithm: NotRequired[str]
    """"""


class KdfSettings(TypedDict, total=False):
    r"""Settings for passbooster: key derivation.

    Attributes:
        algorithm:
            A [`KdfAlgorithm`][] value.
        time_cost:
            As per [`KdfParams`][].
        memory_mib:
            As per [`KdfParams`][].
        parallelism:
            As per [`KdfParams`][].
        output_bytes:
            As per [`KdfParams`][].

    """

    algorithm: NotRequired[str]
    """"""
    time_cost: NotRequired[int]
    """"""
    memory_mib: NotRequired[int]
    """"""
    parallelism: NotRequired[int]
    """"""
    output_bytes: NotRequired[int]
    """"""


class Settings(TypedDict, total=False):
    r"""Persisted settings for passbooster.  For typing purposes.

    Usually stored as JSON.  Every section and every key is optional;
    missing values take their defaults.

    Attributes:
        format (NotRequired[FormatSettings]):
            Password format settings.
        kdf (NotRequired[KdfSettings]):
            Key-derivation settings.
        normalization (NotRequired[dict[str, bool]]):
            Label normalization steps, keyed by
            [`NormalizationConfig`][] field name.

    """

    format: NotRequired[FormatSettings]
    kdf: NotRequired[KdfSettings]
    normalization: NotRequired[dict[str, bool]]


def json_path(path: Sequence[str | int], /) -> str:
    r"""Transform a series of keys and indices into a JSONPath selector.

    The resulting JSONPath selector conforms to RFC 9535, is always
    rooted at the JSON root node (i.e., starts with `$`), and only
    contains name and index selectors (in shorthand dot notation, where
    possible).

    Examples:
        >>> json_path(['kdf', 'time_cost'])
        '$.kdf.time_cost'
        >>> json_path(['normalization', 'no such step'])
        '$.normalization["no such step"]'

    """

    def needs_longhand(x: str | int) -> bool:
        initial = frozenset(string.ascii_letters) | frozenset('_')
        chars = initial | frozenset(string.digits)
        return not (
            isinstance(x, str)
            and x
            and set(x).issubset(chars)
            and x[:1] in initial
        )

    chunks = ['$']
    chunks.extend(
        f'[{json.dumps(x)}]' if needs_longhand(x) else f'.{x}' for x in path
    )
    return ''.join(chunks)


def _is_valid_symbol_set(symbols: str, /) -> bool:
    allowed = frozenset(string.punctuation)
    return set(symbols) <= allowed and len(set(symbols)) == len(symbols)


def validate_settings(  # noqa: C901,PLR0912
    obj: Any,  # noqa: ANN401
    /,
) -> None:
    """Check that `obj` is a valid settings document.

    Args:
        obj:
            The object to test.

    Raises:
        TypeError:
            An entry in the settings, or the settings themselves, have
            the wrong type.
        ValueError:
            An entry in the settings is unknown, or has a disallowed
            value.

    """
    int_minimums = {
        ('format', 'length'): 1,
        ('kdf', 'time_cost'): 1,
        ('kdf', 'memory_mib'): MIN_MEMORY_MIB,
        ('kdf', 'parallelism'): 1,
        ('kdf', 'output_bytes'): MIN_OUTPUT_BYTES,
    }

    def err(path: Sequence[str], problem: str, /) -> str:
        return f'settings entry {json_path(path)} {problem}'

    if not isinstance(obj, dict):
        msg = 'settings are not a dict'
        raise TypeError(msg)
    for section, entries in obj.items():
        if section not in {'format', 'kdf', 'normalization'}:
            raise ValueError(err([section], 'is an unknown section'))
        if not isinstance(entries, dict):
            raise TypeError(err([section], 'is not a dict'))
        for key, value in entries.items():
            path = [section, key]
            if section == 'normalization':
                if key not in NormalizationConfig._fields:
                    raise ValueError(err(path, 'is an unknown setting'))
                if not isinstance(value, bool):
                    raise TypeError(err(path, 'is not a boolean'))
            elif (section, key) in int_minimums:
                # bool is an int subclass, but never a sensible count.
                if not isinstance(value, int) or isinstance(value, bool):
                    raise TypeError(err(path, 'is not an integer'))
                if value < int_minimums[section, key]:
                    raise ValueError(
                        err(path, f'is below {int_minimums[section, key]}')
                    )
            elif (section, key) == ('format', 'symbols'):
                if not isinstance(value, str):
                    raise TypeError(err(path, 'is not a string'))
                if not _is_valid_symbol_set(value):
                    raise ValueError(
                        err(
                            path,
                            'must consist of distinct ASCII punctuation '
                            'characters',
                        )
                    )
            elif (section, key) == ('format', 'algorithm'):
                if value != FORMATTER_ID:
                    raise ValueError(err(path, 'names an unknown formatter'))
            elif (section, key) == ('kdf', 'algorithm'):
                if value not in {a.value for a in KdfAlgorithm}:
                    raise ValueError(err(path, 'names an unknown algorithm'))
            else:
                raise ValueError(err(path, 'is an unknown setting'))


def is_settings(obj: Any) -> TypeIs[Settings]:  # noqa: ANN401
    """Check if `obj` is a valid settings document, according to typing.

    Args:
        obj: The object to test.

    Returns:
        True if these are valid settings, false otherwise.

    """
    try:
        validate_settings(obj)
    except (TypeError, ValueError) as exc:
        if 'settings ' not in str(exc):  # pragma: no cover
            raise  # noqa: DOC501
        return False
    return True


def params_from_settings(
    settings: Settings, /
) -> tuple[KdfParams, FormatPolicy, NormalizationConfig]:
    """Turn a (valid) settings document into immutable parameter structs.

    Missing entries take their defaults.

    Args:
        settings: The settings document.

    Returns:
        A 3-tuple of key-derivation parameters, format policy and
        normalization config.

    """
    kdf = dict(settings.get('kdf', {}))
    if 'algorithm' in kdf:
        kdf['algorithm'] = KdfAlgorithm(kdf['algorithm'])
    fmt = {
        k: v for k, v in settings.get('format', {}).items() if k != 'algorithm'
    }
    return (
        KdfParams(**kdf),
        FormatPolicy(**fmt),
        NormalizationConfig.from_mapping(settings.get('normalization', {})),
    )


def settings_from_params(
    kdf_params: KdfParams,
    policy: FormatPolicy,
    normalization: NormalizationConfig,
    /,
) -> Settings:
    """Turn parameter structs into a complete settings document.

    The inverse of [`params_from_settings`][], with every entry filled
    in and the formatter algorithm recorded.

    """
    kdf: KdfSettings = {
        'algorithm': KdfAlgorithm(kdf_params.algorithm).value,
        'time_cost': kdf_params.time_cost,
        'memory_mib': kdf_params.memory_mib,
        'parallelism': kdf_params.parallelism,
        'output_bytes': kdf_params.output_bytes,
    }
    fmt: FormatSettings = {
        'length': policy.length,
        'symbols': policy.symbols,
        'algorithm': FORMATTER_ID,
    }
    return {
        'format': fmt,
        'kdf': kdf,
        'normalization': dict(normalization._asdict()),
    }
