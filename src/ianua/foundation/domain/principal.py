"""Principals produced by token verification.

Pure domain objects with no external dependencies. Immutable (frozen
dataclasses). An :class:`AuthPrincipal` identifies a signed-in end user; an
:class:`AppPrincipal` identifies an attested app binary. They are unrelated:
an attested app is not a signed-in user.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any


class TokenStatus(StrEnum):
    """Outcome of one token pipeline.

    Values are stable: they appear in verification log records.
    """

    MISSING = "MISSING"
    VALID = "VALID"
    INVALID = "INVALID"


def _freeze(claims: dict[str, Any]) -> MappingProxyType[str, Any]:
    return MappingProxyType(dict(claims))


@dataclass(frozen=True, slots=True)
class AuthPrincipal:
    """End user authenticated by an identity token.

    Attributes:
        uid: The verified token's ``sub`` claim.
        claims: All decoded token claims (read-only).
    """

    uid: str
    claims: MappingProxyType[str, Any] = field(default_factory=lambda: _freeze({}))

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> AuthPrincipal:
        """Build a principal whose ``uid`` is the token subject."""
        return cls(uid=str(claims["sub"]), claims=_freeze(claims))


@dataclass(frozen=True, slots=True)
class AppPrincipal:
    """App instance attested by an app-attestation token.

    Attributes:
        app_id: The verified token's ``sub`` claim.
        claims: All decoded token claims (read-only).
    """

    app_id: str
    claims: MappingProxyType[str, Any] = field(default_factory=lambda: _freeze({}))

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> AppPrincipal:
        """Build a principal whose ``app_id`` is the token subject."""
        return cls(app_id=str(claims["sub"]), claims=_freeze(claims))


@dataclass(frozen=True, slots=True)
class TokenVerifications:
    """Combined outcome of both token pipelines for a single request."""

    auth: TokenStatus
    app: TokenStatus
    auth_principal: AuthPrincipal | None = None
    app_principal: AppPrincipal | None = None

    @property
    def any_invalid(self) -> bool:
        return TokenStatus.INVALID in (self.auth, self.app)

    def as_log_payload(self) -> dict[str, str]:
        return {"auth": self.auth.value, "app": self.app.value}
