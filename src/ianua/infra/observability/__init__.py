"""Ianua Infra Observability -- structlog logging and trace-log correlation."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from ianua.foundation.application.contributions import (
    LIFESPAN_PRIORITY_OBSERVABILITY,
    LifespanContribution,
)
from ianua.infra.observability.logging import (
    LoggingSettings,
    configure_logging,
    get_logger,
    get_logging_settings,
)
from ianua.infra.observability.trace import (
    TraceContextMiddleware,
    TraceParent,
    extract_trace_parent,
    trace_reference,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@asynccontextmanager
async def _observability_lifespan(app: Any) -> AsyncIterator[None]:
    """Lifespan hook that configures logging on startup.

    Args:
        app: The FastAPI application instance.
    """
    configure_logging()
    yield


lifespan_contribution = LifespanContribution(
    hook=_observability_lifespan,
    priority=LIFESPAN_PRIORITY_OBSERVABILITY,  # Start early, shut down late
)

__all__ = [
    "LoggingSettings",
    "TraceContextMiddleware",
    "TraceParent",
    "configure_logging",
    "extract_trace_parent",
    "get_logger",
    "get_logging_settings",
    "lifespan_contribution",
    "trace_reference",
]
