"""Debug feature resolution for local development and emulation.

Debug features relax checks that production must never relax, so they are
resolved with the same safety rules everywhere:

1. Production lockout: ENVIRONMENT=production ALWAYS disables debug features
2. Features are only active when IANUA_DEBUG_MODE=true
3. Each feature must be named explicitly in IANUA_DEBUG_FEATURES (JSON object)

Environment Variables:
    IANUA_DEBUG_MODE: Master switch for debug features
    IANUA_DEBUG_FEATURES: JSON object, e.g. ``{"skip_token_verification": true}``
    IANUA_EMULATOR: Running under the local emulator (task tokens optional)
"""

from __future__ import annotations

import logging
import os
from enum import StrEnum
from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class DebugFeature(StrEnum):
    """Known debug feature flags."""

    SKIP_TOKEN_VERIFICATION = "skip_token_verification"
    ENABLE_CORS = "enable_cors"


class DebugSettings(BaseSettings):
    """Debug and emulation settings loaded from ``IANUA_`` variables."""

    model_config = SettingsConfigDict(env_prefix="IANUA_", extra="ignore")

    debug_mode: bool = Field(default=False)
    debug_features: dict[str, Any] = Field(default_factory=dict)
    emulator: bool = Field(default=False)

    @field_validator("debug_features", mode="before")
    @classmethod
    def _ignore_non_objects(cls, v: Any) -> Any:
        # A feature document that is not a JSON object disables every feature.
        return v if isinstance(v, dict) else {}


@lru_cache(maxsize=1)
def get_debug_settings() -> DebugSettings:
    """Get singleton DebugSettings instance.

    Clear cache with ``get_debug_settings.cache_clear()`` for testing.
    """
    return DebugSettings()


def resolve_debug_feature(
    feature: DebugFeature | str,
    settings: DebugSettings | None = None,
) -> bool:
    """Resolve whether a debug feature should be active.

    Args:
        feature: The feature to check.
        settings: Settings to consult. Loaded from the environment if omitted.

    Returns:
        True if the feature is requested and the environment allows it.

    Side effects:
        - Logs WARNING when a feature is active in a non-production environment.
        - Logs ERROR when a feature is requested but blocked in production.
    """
    settings = settings or get_debug_settings()
    name = DebugFeature(feature).value
    if not settings.debug_mode or not settings.debug_features.get(name):
        return False

    env = os.environ.get("ENVIRONMENT", "development")

    if env == "production":
        logger.error(
            "debug_feature_blocked",
            extra={
                "feature": name,
                "environment": env,
                "detail": "Debug feature was requested but blocked in production environment.",
            },
        )
        return False

    logger.warning(
        "debug_feature_active",
        extra={
            "feature": name,
            "environment": env,
            "detail": "Debug feature is enabled. Do not use in production.",
        },
    )
    return True


def is_emulated(settings: DebugSettings | None = None) -> bool:
    """Whether the process runs under local emulation.

    Production lockout applies here too.
    """
    settings = settings or get_debug_settings()
    if not settings.emulator:
        return False
    return os.environ.get("ENVIRONMENT", "development") != "production"
