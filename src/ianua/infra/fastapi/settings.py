"""Application settings for the ianua app factory.

Provides Pydantic Settings for FastAPI configuration and the default CORS
policy applied to callable functions that do not declare their own.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CORSSettings(BaseSettings):
    """Default CORS policy for callable functions.

    Environment variables use the ``CORS_`` prefix (e.g., ``CORS_ALLOW_ORIGINS``).
    Comma-separated strings are automatically parsed into lists. The
    wildcard origin ``["*"]`` reflects the caller's origin.
    """

    model_config = SettingsConfigDict(env_prefix="CORS_", extra="ignore")

    enabled: bool = Field(default=True)
    allow_origins: list[str] = Field(default=["*"])
    allow_methods: list[str] = Field(default=["POST"])
    allow_headers: list[str] = Field(default=["*"])
    expose_headers: list[str] = Field(default=[])
    allow_credentials: bool = Field(default=False)
    max_age: int = Field(default=600, ge=0)

    @field_validator(
        "allow_origins",
        "allow_methods",
        "allow_headers",
        "expose_headers",
        mode="before",
    )
    @classmethod
    def _parse_comma_separated(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        if isinstance(v, list):
            return v
        return []

    @model_validator(mode="after")
    def _validate_credentials_with_wildcard(self) -> CORSSettings:
        if self.allow_credentials and self.allow_origins == ["*"]:
            msg = (
                "CORS allow_credentials=True cannot be used with allow_origins=['*']. "
                "Specify explicit origins instead."
            )
            raise ValueError(msg)
        return self


def _default_version() -> str:
    """Resolve default app version from package metadata."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("ianua")
    except PackageNotFoundError:
        return "0.0.0"


class AppSettings(BaseSettings):
    """Application factory settings.

    Environment variables use the ``APP_`` prefix (e.g., ``APP_TITLE``).
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        extra="ignore",
    )

    title: str = Field(default="Ianua Functions")
    version: str = Field(default_factory=_default_version)
    description: str = Field(default="")
    docs_url: str | None = Field(default=None)
    redoc_url: str | None = Field(default=None)
    openapi_url: str | None = Field(default=None)
    debug: bool = Field(default=False)
    cors: CORSSettings = Field(default_factory=CORSSettings)

    # Discovery filtering
    exclude_functions: frozenset[str] = Field(default=frozenset())
    exclude_lifespan_hooks: frozenset[str] = Field(default=frozenset())
