"""Per-function CORS for callable endpoints.

Each callable function may carry its own origin policy, so instead of one
app-wide ``CORSMiddleware`` every callable route is wrapped in its own
Starlette ``CORSMiddleware`` built from the function's :class:`CorsPolicy`.
Preflight answers and the headers added to every response (including 400
and 401 errors) come from that middleware.

Origin policy values:
- ``True``: allow any origin, reflected back with ``Vary: Origin``
- ``False``: CORS disabled, the route is not wrapped
- ``"*"``: literal wildcard
- any other string: that exact origin
- compiled regex: origins the pattern fully matches
- list of strings / regexes: origins matching any entry

Usage:
    from ianua.infra.fastapi.cors import CorsPolicy, with_cors

    app.add_route("/addMessage", with_cors(add_message, CorsPolicy(origin=True)))
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from starlette.middleware.cors import CORSMiddleware

if TYPE_CHECKING:
    from starlette.types import ASGIApp

    from ianua.infra.fastapi.settings import CORSSettings

OriginEntry = str | re.Pattern[str]
OriginOption = bool | OriginEntry | list[OriginEntry] | tuple[OriginEntry, ...]

_ANY_ORIGIN = ".*"


def _normalize_origin(origin: Any) -> bool | tuple[OriginEntry, ...]:
    if isinstance(origin, bool):
        return origin
    entries = tuple(origin) if isinstance(origin, (list, tuple)) else (origin,)
    for entry in entries:
        if not isinstance(entry, (str, re.Pattern)):
            raise TypeError(f"Unsupported CORS origin option: {origin!r}")
    return entries


@dataclass(frozen=True, slots=True)
class CorsPolicy:
    """Origin policy plus the preflight parameters for one function.

    Attributes:
        origin: See module docstring for accepted values. Stored normalized:
            a bool, or a tuple of strings and patterns.
        methods: Methods allowed on preflight.
        allow_headers: Request headers allowed on preflight; ``"*"`` allows
            whatever the browser asks for.
        expose_headers: Response headers readable by the calling page.
        allow_credentials: Emit ``Access-Control-Allow-Credentials: true``.
        max_age: Preflight cache lifetime in seconds.
    """

    origin: Any = True
    methods: tuple[str, ...] = ("POST",)
    allow_headers: tuple[str, ...] = ("*",)
    expose_headers: tuple[str, ...] = ()
    allow_credentials: bool = False
    max_age: int = 600

    def __post_init__(self) -> None:
        object.__setattr__(self, "origin", _normalize_origin(self.origin))

    @property
    def enabled(self) -> bool:
        return self.origin is not False

    @classmethod
    def from_settings(cls, settings: CORSSettings) -> CorsPolicy:
        """Build the app default policy from ``CORS_*`` settings.

        ``["*"]`` (the default) allows every origin and reflects it.
        """
        if not settings.enabled:
            return cls(origin=False)
        origins = settings.allow_origins
        origin: Any = True if origins == ["*"] or not origins else list(origins)
        return cls(
            origin=origin,
            methods=tuple(settings.allow_methods) or ("POST",),
            allow_headers=tuple(settings.allow_headers),
            expose_headers=tuple(settings.expose_headers),
            allow_credentials=settings.allow_credentials,
            max_age=settings.max_age,
        )

    @classmethod
    def coerce(
        cls,
        value: CorsPolicy | OriginOption | None,
        default: CorsPolicy,
        *,
        force_enable: bool = False,
    ) -> CorsPolicy:
        """Resolve a function's ``cors`` option against the app default.

        Args:
            value: A policy, a bare origin option, or None for the default.
            default: Policy used when ``value`` is None.
            force_enable: Debug override that allows every origin, unless
                the function explicitly disabled CORS with ``False``.
        """
        if force_enable:
            if value is False or (isinstance(value, CorsPolicy) and not value.enabled):
                return cls(origin=False)
            return cls(origin=True)
        if value is None:
            return default
        if isinstance(value, CorsPolicy):
            return value
        return cls(origin=value)

    def middleware_options(self) -> dict[str, Any]:
        """Keyword arguments for Starlette's ``CORSMiddleware``.

        Plain origins become ``allow_origins``; ``True`` and patterns are
        combined into one ``allow_origin_regex``.
        """
        if not self.enabled:
            raise ValueError("CORS is disabled for this policy")
        origins: list[str] = []
        patterns: list[str] = []
        entries = (self.origin,) if self.origin is True else self.origin
        for entry in entries:
            if entry is True:
                patterns.append(_ANY_ORIGIN)
            elif isinstance(entry, re.Pattern):
                patterns.append(entry.pattern)
            else:
                origins.append(entry)
        return {
            "allow_origins": origins,
            "allow_origin_regex": "|".join(f"(?:{p})" for p in patterns) or None,
            "allow_methods": list(self.methods),
            "allow_headers": list(self.allow_headers),
            "expose_headers": list(self.expose_headers),
            "allow_credentials": self.allow_credentials,
            "max_age": self.max_age,
        }


def with_cors(app: ASGIApp, policy: CorsPolicy) -> ASGIApp:
    """Wrap ``app`` in a ``CORSMiddleware`` for ``policy``; unchanged if disabled."""
    if not policy.enabled:
        return app
    return CORSMiddleware(app, **policy.middleware_options())
