"""Auth lifespan hook for key-set pre-warming and client cleanup.

Priority 60 ensures auth starts AFTER observability (50), so key-set fetch
failures during startup are logged through the configured pipeline.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from ianua.foundation.application import LIFESPAN_PRIORITY_AUTH, LifespanContribution
from ianua.infra.auth.debug import DebugFeature, resolve_debug_feature
from ianua.infra.auth.key_cache import KeySetFetchError
from ianua.infra.auth.settings import get_auth_settings
from ianua.infra.auth.verifiers import build_token_verifiers, set_token_verifiers

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _auth_lifespan(app: Any) -> AsyncIterator[None]:
    """Manage token verifiers across the application lifecycle.

    Startup:
        1. Build the shared verifier pair and install it process-wide.
        2. Pre-warm both key caches if a project is configured.

    Shutdown:
        1. Close the shared HTTP client.

    Args:
        app: The application instance; the verifiers are stored on its state.
    """
    settings = get_auth_settings()
    verifiers = build_token_verifiers(settings)
    set_token_verifiers(verifiers)
    app.state.token_verifiers = verifiers

    skip = resolve_debug_feature(DebugFeature.SKIP_TOKEN_VERIFICATION)
    if settings.is_configured() and not skip:
        try:
            await verifiers.warm()
            logger.info("auth_lifespan: key sets pre-warmed")
        except KeySetFetchError:
            logger.warning("auth_lifespan: key set pre-warming failed", exc_info=True)
    else:
        logger.info("auth_lifespan: skipping key set pre-warming (no project or verification skipped)")

    try:
        yield
    finally:
        await verifiers.aclose()
        set_token_verifiers(None)
        logger.info("auth_lifespan: shutdown complete")


lifespan_contribution = LifespanContribution(
    hook=_auth_lifespan,
    priority=LIFESPAN_PRIORITY_AUTH,
)
