"""Ianua Foundation Application -- contribution types and discovery."""

from ianua.foundation.application.contributions import (
    LIFESPAN_PRIORITY_AUTH,
    LIFESPAN_PRIORITY_DEFAULT,
    LIFESPAN_PRIORITY_OBSERVABILITY,
    LifespanContribution,
    MiddlewareContribution,
)
from ianua.foundation.application.discovery import (
    GROUP_FUNCTIONS,
    GROUP_LIFESPAN,
    DiscoveredContribution,
    discover,
    discover_functions,
)

__all__ = [
    "GROUP_FUNCTIONS",
    "GROUP_LIFESPAN",
    "LIFESPAN_PRIORITY_AUTH",
    "LIFESPAN_PRIORITY_DEFAULT",
    "LIFESPAN_PRIORITY_OBSERVABILITY",
    "DiscoveredContribution",
    "LifespanContribution",
    "MiddlewareContribution",
    "discover",
    "discover_functions",
]
