# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Best-effort canonicalization of site domains.

The domain is part of the salt, so `https://www.example.com/login` and
`example.com` should ideally map to the same token.  Host extraction and
lowercasing are always done; reducing a host to its registrable domain
(eTLD+1, e.g. `example.co.uk` for `shop.example.co.uk`) requires public
suffix data, which is provided by an optional, pluggable
[`DomainResolver`][].

"""

from __future__ import annotations

import importlib
import logging
import re
import urllib.parse
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from typing_extensions import Any

__all__ = ('DomainResolver', 'PublicSuffixResolver', 'normalize_domain')

logger = logging.getLogger(__name__)

# Whitespace and control characters, the salt delimiter among them.
_UNSAFE_HOST_CHARS = re.compile(r'[\s\x00-\x1f\x7f]+')


class DomainResolver(Protocol):
    """A capability to reduce a host name to its registrable domain."""

    def registrable_domain(self, host: str, /) -> str | None:
        """Return the registrable domain of `host`.

        Args:
            host:
                A lowercase host name without trailing dot.

        Returns:
            The registrable domain, or `None` if the resolver has no
            opinion on this host.

        """


class PublicSuffixResolver:
    """A [`DomainResolver`][] backed by the public suffix list.

    Uses [`tldextract`][TLDEXTRACT] with its bundled public suffix list
    snapshot; no network access takes place.  If `tldextract` is not
    installed (it is an optional dependency, available via the `psl`
    extra), this resolver never has an opinion.

    [TLDEXTRACT]: https://pypi.org/project/tldextract/

    """

    def __init__(self) -> None:
        self._extractor: Any = None
        self._unavailable = False

    def _get_extractor(self) -> Any:  # noqa: ANN401
        if self._extractor is None and not self._unavailable:
            try:
                tldextract = importlib.import_module('tldextract')
            except ModuleNotFoundError:
                logger.debug(
                    'tldextract is not installed; '
                    'public suffix lookup is unavailable'
                )
                self._unavailable = True
            else:
                self._extractor = tldextract.TLDExtract(suffix_list_urls=())
        return self._extractor

    def registrable_domain(self, host: str, /) -> str | None:
        extractor = self._get_extractor()
        if extractor is None:
            return None
        result = extractor(host)
        domain = getattr(result, 'top_domain_under_public_suffix', None)
        if domain is None:  # pragma: no cover [external-api]
            domain = result.registered_domain
        return domain or None


def _extract_host(text: str, /) -> str:
    url = text if '://' in text else f'http://{text}'
    try:
        host = urllib.parse.urlsplit(url).hostname
    except ValueError:
        host = None
    return host if host else text


def _clean_host(host: str, /) -> str:
    return _UNSAFE_HOST_CHARS.sub('', host).removesuffix('.').lower()


def normalize_domain(
    text: str | None,
    /,
    resolver: DomainResolver | None = None,
) -> str:
    """Canonicalize a domain or URL into a stable salt token.

    Extract the host (if `text` looks like a URL, or after prefixing
    a default scheme), remove whitespace and control characters, strip
    a trailing dot, and lowercase.  Then, if a resolver is given and it
    has an opinion, return the registrable domain; otherwise strip
    a leading `www.`.

    This function never raises.  Resolver failures are logged at debug
    level and ignored.

    Args:
        text:
            A domain name or URL.  `None` is treated as the empty
            string.
        resolver:
            An optional public suffix resolver.

    Returns:
        The canonical domain.  Possibly empty.

    Examples:
        >>> normalize_domain('https://WWW.Example.com./login')
        'example.com'
        >>> normalize_domain('mail.example.co.uk')
        'mail.example.co.uk'
        >>> normalize_domain('my site.com')
        'mysite.com'

    """
    text = (text or '').strip()
    if not text:
        return ''
    host = _clean_host(_extract_host(text))
    if resolver is not None:
        try:
            domain = resolver.registrable_domain(host)
        except Exception as exc:  # noqa: BLE001
            logger.debug(
                'Domain resolver failed on %r: %s; using fallback', host, exc
            )
        else:
            domain = _clean_host(domain or '')
            if domain:
                return domain
    return host.removeprefix('www.')
