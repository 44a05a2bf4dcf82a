"""Authentication configuration settings.

Loaded from environment variables with AUTH_ prefix.
Follows Pydantic BaseSettings pattern for type-safe configuration.

Environment Variables:
    AUTH_PROJECT_ID: Project identifier (identity-token audience)
    AUTH_PROJECT_NUMBER: Numeric project identifier (attestation issuer)
    AUTH_ID_TOKEN_CERTS_URL: X.509 certificate map for identity tokens
    AUTH_APP_CHECK_JWKS_URL: JWKS document for attestation tokens
    AUTH_KEY_CACHE_DEFAULT_TTL: Key cache TTL when no Cache-Control is sent
    AUTH_KEY_REFRESH_MIN_INTERVAL: Minimum seconds between unknown-kid refetches
    AUTH_HTTP_TIMEOUT: Key fetch timeout in seconds
    AUTH_CLOCK_SKEW_SECONDS: Leeway applied to exp/iat checks
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ID_TOKEN_ISSUER_PREFIX = "https://securetoken.google.com/"
APP_CHECK_ISSUER_PREFIX = "https://firebaseappcheck.googleapis.com/"


class AuthSettings(BaseSettings):
    """Authentication configuration loaded from environment variables.

    Example:
        >>> settings = AuthSettings(project_id="demo-project")
        >>> settings.id_token_issuer
        'https://securetoken.google.com/demo-project'
        >>> settings.is_configured()
        True
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    project_id: str = Field(
        default="",
        description="Project identifier; identity-token audience",
    )
    project_number: str = Field(
        default="",
        description="Numeric project identifier; attestation-token issuer suffix",
    )
    id_token_certs_url: str = Field(
        default=(
            "https://www.googleapis.com/robot/v1/metadata/x509/"
            "securetoken@system.gserviceaccount.com"
        ),
        description="X.509 certificate map used to verify identity tokens",
    )
    app_check_jwks_url: str = Field(
        default="https://firebaseappcheck.googleapis.com/v1/jwks",
        description="JWKS document used to verify attestation tokens",
    )
    key_cache_default_ttl: int = Field(
        default=300,
        ge=30,
        le=86400,
        description="Key cache TTL in seconds when the origin sends no max-age",
    )
    key_refresh_min_interval: float = Field(
        default=60.0,
        ge=0,
        le=3600,
        description="Minimum seconds between refetches forced by an unknown kid",
    )
    http_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Key fetch timeout in seconds",
    )
    clock_skew_seconds: int = Field(
        default=0,
        ge=0,
        le=300,
        description="Leeway applied to exp and iat claim checks",
    )

    @property
    def id_token_issuer(self) -> str:
        return f"{ID_TOKEN_ISSUER_PREFIX}{self.project_id}"

    @property
    def app_check_issuer(self) -> str:
        return f"{APP_CHECK_ISSUER_PREFIX}{self.project_number}"

    def app_check_audiences(self) -> list[str]:
        """Accepted attestation-token audiences."""
        audiences = []
        if self.project_number:
            audiences.append(f"projects/{self.project_number}")
        if self.project_id:
            audiences.append(f"projects/{self.project_id}")
        return audiences

    def is_configured(self) -> bool:
        """Check whether enough is configured to verify identity tokens."""
        return bool(self.project_id)


@lru_cache(maxsize=1)
def get_auth_settings() -> AuthSettings:
    """Get singleton AuthSettings instance.

    Cached for performance - settings are loaded once per application lifecycle.
    Clear cache with ``get_auth_settings.cache_clear()`` for testing.

    Returns:
        AuthSettings instance with configuration from environment.
    """
    return AuthSettings()
