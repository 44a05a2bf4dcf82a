"""Identity-token and app-attestation token verification.

Two independent pipelines share one shape: extract the token from a header,
resolve the signing key through a :class:`KeySetCache`, then verify the
signature and the standard claims with PyJWT. Verification never raises to
the caller: every failure is reported as :attr:`TokenStatus.INVALID` so that
both outcomes can be combined into a single accept/reject decision.

Token states:
- ``MISSING``: header absent or empty
- ``INVALID``: token presented but not verifiable (bad signature, wrong
  issuer or audience, expired, malformed, key set unavailable)
- ``VALID``: verified; the matching principal is populated
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
import jwt as pyjwt
from starlette.datastructures import Headers

from ianua.foundation.domain.principal import (
    AppPrincipal,
    AuthPrincipal,
    TokenStatus,
    TokenVerifications,
)
from ianua.infra.auth.debug import DebugFeature, resolve_debug_feature
from ianua.infra.auth.key_cache import KeySetCache, KeySetFetchError, KeySetFormat
from ianua.infra.auth.settings import (
    APP_CHECK_ISSUER_PREFIX,
    ID_TOKEN_ISSUER_PREFIX,
    AuthSettings,
    get_auth_settings,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
APP_CHECK_HEADER = "X-Firebase-AppCheck"
INSTANCE_ID_HEADER = "Firebase-Instance-ID-Token"

_ALGORITHM = "RS256"
_MAX_SUBJECT_LENGTH = 128
_BEARER_RE = re.compile(r"^Bearer (.*)$", re.IGNORECASE)

_LOG_LABELS = {"firebase-log-type": "callable-request-verification"}


def _as_headers(headers: Mapping[str, str]) -> Headers:
    if isinstance(headers, Headers):
        return headers
    return Headers(headers=dict(headers))


def extract_bearer_token(value: str | None) -> str | None:
    """Return the credential of an ``Authorization: Bearer`` value, or None."""
    if not value:
        return None
    match = _BEARER_RE.match(value)
    return match.group(1) if match else None


def unsafe_decode_token(token: str) -> dict[str, Any]:
    """Parse a JWT's claims WITHOUT verifying its signature.

    Used for debug bypass and for queue-dispatched requests, whose callers
    are already access-controlled by the platform.

    Raises:
        jwt.InvalidTokenError: If the token is not a parseable JWT or has no
            usable ``sub`` claim.
    """
    claims = pyjwt.decode(token, options={"verify_signature": False})
    sub = claims.get("sub")
    if not isinstance(sub, str) or not sub:
        raise pyjwt.MissingRequiredClaimError("sub")
    return claims


class TokenVerifier:
    """Base class for one signature-verifying token pipeline.

    Subclasses provide the expected issuer and audience and may add extra
    header or claim checks.
    """

    header_name: str = ""

    def __init__(self, key_cache: KeySetCache, *, leeway: int = 0) -> None:
        self._key_cache = key_cache
        self._leeway = leeway

    @property
    def key_cache(self) -> KeySetCache:
        return self._key_cache

    def is_configured(self) -> bool:
        return True

    def issuer(self) -> str:
        raise NotImplementedError

    def audience(self) -> str | list[str]:
        raise NotImplementedError

    def extract(self, headers: Headers) -> str | None:
        """Return the raw token from ``headers``; empty values count as absent."""
        return headers.get(self.header_name) or None

    def check_header(self, header: dict[str, Any]) -> None:
        """Validate the JOSE header. Raises jwt.InvalidTokenError."""
        if header.get("alg") != _ALGORITHM:
            raise pyjwt.InvalidAlgorithmError(f"Unexpected algorithm: {header.get('alg')!r}")
        if not header.get("kid"):
            raise pyjwt.InvalidTokenError("Token header has no 'kid'")

    def check_claims(self, claims: dict[str, Any]) -> None:
        """Validate claims beyond what PyJWT checks. Raises jwt.InvalidTokenError."""
        sub = claims.get("sub")
        if not isinstance(sub, str) or not sub:
            raise pyjwt.InvalidTokenError("'sub' claim must be a non-empty string")

    async def verify(self, token: str) -> dict[str, Any]:
        """Verify ``token`` and return its claims.

        Raises:
            jwt.InvalidTokenError: If the token fails any check.
            KeySetFetchError: If the signing keys cannot be fetched.
        """
        if not self.is_configured():
            raise pyjwt.InvalidTokenError(f"{type(self).__name__} has no project configured")

        header = pyjwt.get_unverified_header(token)
        self.check_header(header)
        try:
            key = await self._key_cache.get_key(header["kid"])
        except KeyError:
            raise pyjwt.InvalidTokenError(f"No signing key for kid {header['kid']!r}") from None

        claims = pyjwt.decode(
            token,
            key,
            algorithms=[_ALGORITHM],
            issuer=self.issuer(),
            audience=self.audience(),
            leeway=self._leeway,
            options={"require": ["exp", "iat", "iss", "aud", "sub"]},
        )
        self.check_claims(claims)
        return claims

    async def check(
        self,
        headers: Mapping[str, str],
        *,
        skip_verification: bool = False,
    ) -> tuple[TokenStatus, dict[str, Any] | None]:
        """Run the pipeline against request headers.

        Returns:
            ``(status, claims)``; claims are set only when status is VALID.
        """
        token = self.extract(_as_headers(headers))
        if token is None:
            return TokenStatus.MISSING, None
        try:
            if skip_verification:
                claims = unsafe_decode_token(token)
            else:
                claims = await self.verify(token)
        except (pyjwt.InvalidTokenError, KeySetFetchError) as exc:
            logger.warning(
                "token_rejected",
                extra={"verifier": type(self).__name__, "reason": str(exc)},
            )
            return TokenStatus.INVALID, None
        return TokenStatus.VALID, claims


class IdTokenVerifier(TokenVerifier):
    """Verifies end-user identity tokens sent as ``Authorization: Bearer``.

    Example:
        >>> verifier = IdTokenVerifier(cache, project_id="demo-project")
        >>> status, claims = await verifier.check(request.headers)
    """

    header_name = AUTHORIZATION_HEADER

    def __init__(self, key_cache: KeySetCache, *, project_id: str, leeway: int = 0) -> None:
        super().__init__(key_cache, leeway=leeway)
        self._project_id = project_id

    def is_configured(self) -> bool:
        return bool(self._project_id)

    def issuer(self) -> str:
        return f"{ID_TOKEN_ISSUER_PREFIX}{self._project_id}"

    def audience(self) -> str:
        return self._project_id

    def extract(self, headers: Headers) -> str | None:
        authorization = headers.get(self.header_name)
        if not authorization:
            return None
        # A non-Bearer scheme is a presented credential we cannot verify.
        return extract_bearer_token(authorization) or ""

    def check_claims(self, claims: dict[str, Any]) -> None:
        super().check_claims(claims)
        if len(claims["sub"]) > _MAX_SUBJECT_LENGTH:
            raise pyjwt.InvalidTokenError("'sub' claim is longer than 128 characters")


class AppCheckTokenVerifier(TokenVerifier):
    """Verifies app-attestation tokens sent in ``X-Firebase-AppCheck``."""

    header_name = APP_CHECK_HEADER

    def __init__(
        self,
        key_cache: KeySetCache,
        *,
        project_number: str,
        project_id: str = "",
        leeway: int = 0,
    ) -> None:
        super().__init__(key_cache, leeway=leeway)
        self._project_number = project_number
        self._project_id = project_id

    def is_configured(self) -> bool:
        return bool(self._project_number)

    def issuer(self) -> str:
        return f"{APP_CHECK_ISSUER_PREFIX}{self._project_number}"

    def audience(self) -> list[str]:
        audiences = [f"projects/{self._project_number}"]
        if self._project_id:
            audiences.append(f"projects/{self._project_id}")
        return audiences

    def check_header(self, header: dict[str, Any]) -> None:
        super().check_header(header)
        if header.get("typ") != "JWT":
            raise pyjwt.InvalidTokenError(f"Unexpected token type: {header.get('typ')!r}")


@dataclass(slots=True)
class TokenVerifiers:
    """The pair of verifiers shared by every request, plus their HTTP client."""

    id_token: IdTokenVerifier
    app_check: AppCheckTokenVerifier
    http_client: httpx.AsyncClient | None = None

    async def warm(self) -> None:
        """Fetch both key sets ahead of the first request.

        Raises:
            KeySetFetchError: If either key set cannot be fetched.
        """
        caches = [
            v.key_cache for v in (self.id_token, self.app_check) if v.is_configured()
        ]
        await asyncio.gather(*(cache.refresh() for cache in caches))

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None


def build_token_verifiers(
    settings: AuthSettings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> TokenVerifiers:
    """Create both verifiers sharing one HTTP client.

    When ``http_client`` is given, the caller keeps ownership of it.
    """
    settings = settings or get_auth_settings()
    owned = http_client is None
    client = http_client or httpx.AsyncClient(timeout=settings.http_timeout)

    id_cache = KeySetCache(
        settings.id_token_certs_url,
        KeySetFormat.X509,
        default_ttl=settings.key_cache_default_ttl,
        min_refresh_interval=settings.key_refresh_min_interval,
        timeout=settings.http_timeout,
        http_client=client,
    )
    app_cache = KeySetCache(
        settings.app_check_jwks_url,
        KeySetFormat.JWKS,
        default_ttl=settings.key_cache_default_ttl,
        min_refresh_interval=settings.key_refresh_min_interval,
        timeout=settings.http_timeout,
        http_client=client,
    )
    return TokenVerifiers(
        id_token=IdTokenVerifier(
            id_cache,
            project_id=settings.project_id,
            leeway=settings.clock_skew_seconds,
        ),
        app_check=AppCheckTokenVerifier(
            app_cache,
            project_number=settings.project_number,
            project_id=settings.project_id,
            leeway=settings.clock_skew_seconds,
        ),
        http_client=client if owned else None,
    )


_verifiers: TokenVerifiers | None = None


def get_token_verifiers() -> TokenVerifiers:
    """Return the process-wide verifiers, building them on first use."""
    global _verifiers
    if _verifiers is None:
        _verifiers = build_token_verifiers()
    return _verifiers


def set_token_verifiers(verifiers: TokenVerifiers | None) -> None:
    """Install (or with ``None``, forget) the process-wide verifiers."""
    global _verifiers
    _verifiers = verifiers


async def check_auth_token(
    headers: Mapping[str, str],
    verifier: IdTokenVerifier | None = None,
    *,
    skip_verification: bool | None = None,
) -> tuple[TokenStatus, AuthPrincipal | None]:
    """Run the identity-token pipeline and build the principal."""
    verifier = verifier or get_token_verifiers().id_token
    if skip_verification is None:
        skip_verification = resolve_debug_feature(DebugFeature.SKIP_TOKEN_VERIFICATION)
    status, claims = await verifier.check(headers, skip_verification=skip_verification)
    principal = AuthPrincipal.from_claims(claims) if claims is not None else None
    return status, principal


async def check_app_check_token(
    headers: Mapping[str, str],
    verifier: AppCheckTokenVerifier | None = None,
    *,
    skip_verification: bool | None = None,
) -> tuple[TokenStatus, AppPrincipal | None]:
    """Run the app-attestation pipeline and build the principal."""
    verifier = verifier or get_token_verifiers().app_check
    if skip_verification is None:
        skip_verification = resolve_debug_feature(DebugFeature.SKIP_TOKEN_VERIFICATION)
    status, claims = await verifier.check(headers, skip_verification=skip_verification)
    principal = AppPrincipal.from_claims(claims) if claims is not None else None
    return status, principal


async def check_tokens(
    headers: Mapping[str, str],
    verifiers: TokenVerifiers | None = None,
    *,
    skip_verification: bool | None = None,
) -> TokenVerifications:
    """Run both pipelines concurrently and log one combined outcome.

    Args:
        headers: Request headers.
        verifiers: Verifier pair to use; the process-wide pair if omitted.
        skip_verification: Parse claims without checking signatures. Resolved
            from the ``skip_token_verification`` debug feature if omitted.

    Returns:
        Both outcomes and any verified principals. Never raises for token
        problems; the caller decides whether to accept the request.
    """
    verifiers = verifiers or get_token_verifiers()
    if skip_verification is None:
        skip_verification = resolve_debug_feature(DebugFeature.SKIP_TOKEN_VERIFICATION)

    (auth_status, auth_principal), (app_status, app_principal) = await asyncio.gather(
        check_auth_token(headers, verifiers.id_token, skip_verification=skip_verification),
        check_app_check_token(headers, verifiers.app_check, skip_verification=skip_verification),
    )
    verifications = TokenVerifications(
        auth=auth_status,
        app=app_status,
        auth_principal=auth_principal,
        app_principal=app_principal,
    )

    errors = []
    if app_status is TokenStatus.INVALID:
        errors.append("AppCheck token was rejected.")
    if auth_status is TokenStatus.INVALID:
        errors.append("Auth token was rejected.")

    payload = {
        "verifications": verifications.as_log_payload(),
        "logging.googleapis.com/labels": _LOG_LABELS,
    }
    if errors:
        logger.warning(
            "callable_request_verification_failed",
            extra={**payload, "detail": " ".join(errors)},
        )
    else:
        logger.debug("callable_request_verification_passed", extra=payload)
    return verifications
