"""Signing-key set cache for token signature verification.

Fetches the current public keys for an issuer and keeps them until the
origin's ``Cache-Control: max-age`` window expires:
- JWKS documents (``{"keys": [...]}``) parsed with PyJWT's PyJWKSet
- X.509 certificate maps (``{kid: PEM}``) parsed with cryptography
- Single-flight refresh: concurrent misses share one in-flight fetch
- One forced refresh when a token names an unknown ``kid`` (key rotation),
  at most once per ``min_refresh_interval``

Lifecycle: Created once per issuer, shared by every request. The cached
key set is the only mutable state shared across requests.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import httpx
from cryptography.x509 import load_pem_x509_certificate
from jwt import PyJWKSet
from jwt.exceptions import PyJWKError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)

_MAX_AGE_RE = re.compile(r"max-age\s*=\s*(\d+)", re.IGNORECASE)


class KeySetFormat(StrEnum):
    """Wire formats for published signing keys."""

    JWKS = "jwks"
    X509 = "x509"


class KeySetFetchError(Exception):
    """Raised when the key set cannot be fetched or parsed."""


@dataclass(frozen=True, slots=True)
class _KeySet:
    keys: Mapping[str, Any]
    fetched_at: float
    expires_at: float


def parse_max_age(cache_control: str | None) -> int | None:
    """Extract ``max-age`` seconds from a Cache-Control header value."""
    if not cache_control:
        return None
    match = _MAX_AGE_RE.search(cache_control)
    return int(match.group(1)) if match else None


def _parse_jwks(document: Any) -> dict[str, Any]:
    try:
        jwk_set = PyJWKSet.from_dict(document)
    except PyJWKError as exc:
        raise KeySetFetchError(f"Invalid JWKS document: {exc}") from exc
    return {jwk.key_id: jwk.key for jwk in jwk_set.keys if jwk.key_id}


def _parse_x509(document: Any) -> dict[str, Any]:
    if not isinstance(document, dict):
        raise KeySetFetchError("Certificate map must be a JSON object")
    keys: dict[str, Any] = {}
    for kid, pem in document.items():
        try:
            cert = load_pem_x509_certificate(str(pem).encode("ascii"))
        except ValueError as exc:
            raise KeySetFetchError(f"Invalid certificate for kid {kid!r}") from exc
        keys[kid] = cert.public_key()
    return keys


class KeySetCache:
    """Cached, lazily refreshed public-key set for one issuer.

    Args:
        url: Where the key set is published.
        key_format: :class:`KeySetFormat` of the published document.
        default_ttl: Cache lifetime in seconds when the origin sends no max-age.
        timeout: HTTP timeout in seconds.
        http_client: Optional pre-built client (injected in tests). When
            omitted, the cache owns a client and closes it in :meth:`aclose`.
        min_refresh_interval: Seconds that must pass after a fetch before an
            unknown ``kid`` may force another one.
        clock: Monotonic time source.

    Example:
        >>> cache = KeySetCache("https://issuer.example.com/jwks", KeySetFormat.JWKS)
        >>> key = await cache.get_key("kid-1")
    """

    def __init__(
        self,
        url: str,
        key_format: KeySetFormat = KeySetFormat.JWKS,
        *,
        default_ttl: int = 300,
        timeout: float = 5.0,
        min_refresh_interval: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not url:
            raise ValueError("Key set URL is required")
        self._url = url
        self._format = KeySetFormat(key_format)
        self._default_ttl = default_ttl
        self._timeout = timeout
        self._min_refresh_interval = min_refresh_interval
        self._client = http_client
        self._owns_client = http_client is None
        self._clock = clock
        self._current: _KeySet | None = None
        self._inflight: asyncio.Future[_KeySet] | None = None

    @property
    def url(self) -> str:
        return self._url

    def is_fresh(self) -> bool:
        current = self._current
        return current is not None and self._clock() < current.expires_at

    async def get_keys(self) -> Mapping[str, Any]:
        """Return the current key set, fetching it if missing or expired.

        Raises:
            KeySetFetchError: If the key set cannot be fetched.
        """
        current = self._current
        if current is not None and self._clock() < current.expires_at:
            return current.keys
        return (await self.refresh()).keys

    async def get_key(self, kid: str) -> Any:
        """Return the public key for ``kid``.

        An unknown ``kid`` triggers one refresh, unless the set was fetched
        by this very call or less than ``min_refresh_interval`` seconds ago.

        Raises:
            KeySetFetchError: If the key set cannot be fetched.
            KeyError: If no key with this ``kid`` is published.
        """
        refreshed = not self.is_fresh()
        keys = await self.get_keys()
        if kid not in keys and not refreshed and self._may_force_refresh():
            logger.info("key_set_unknown_kid_refresh", extra={"url": self._url, "kid": kid})
            keys = (await self.refresh()).keys
        return keys[kid]

    def _may_force_refresh(self) -> bool:
        current = self._current
        if current is None:
            return True
        return self._clock() - current.fetched_at >= self._min_refresh_interval

    async def refresh(self) -> _KeySet:
        """Fetch the key set, sharing any fetch that is already running."""
        inflight = self._inflight
        if inflight is None or inflight.done():
            inflight = asyncio.ensure_future(self._fetch())
            self._inflight = inflight
        # Shield so that one cancelled waiter does not cancel the shared fetch.
        return await asyncio.shield(inflight)

    async def _fetch(self) -> _KeySet:
        client = self._get_client()
        try:
            response = await client.get(self._url)
            response.raise_for_status()
            document = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("key_set_fetch_failed", extra={"url": self._url, "error": str(exc)})
            raise KeySetFetchError(f"Failed to fetch key set from {self._url}") from exc

        keys = _parse_x509(document) if self._format is KeySetFormat.X509 else _parse_jwks(document)
        max_age = parse_max_age(response.headers.get("cache-control"))
        ttl = max_age if max_age is not None else self._default_ttl
        now = self._clock()
        key_set = _KeySet(keys=keys, fetched_at=now, expires_at=now + ttl)
        self._current = key_set

        logger.info(
            "key_set_refreshed",
            extra={"url": self._url, "key_count": len(keys), "ttl": ttl},
        )
        return key_set

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the owned HTTP client, if any."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
