"""Entry-point-based discovery of gateway functions and lifespan hooks.

Installed packages contribute functions through the ``ianua.functions``
entry-point group. The entry-point name becomes the route name; the loaded
object must be a gateway function (anything exposing ``endpoint`` and
implementing the ASGI call protocol).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Any

logger = logging.getLogger(__name__)

GROUP_FUNCTIONS = "ianua.functions"
GROUP_LIFESPAN = "ianua.lifespan"


@dataclass(frozen=True, slots=True)
class DiscoveredContribution:
    """A single loaded entry point.

    Attributes:
        name: Entry point name (e.g., ``"addMessage"``).
        group: Entry point group (e.g., ``"ianua.functions"``).
        value: The loaded Python object.
    """

    name: str
    group: str
    value: Any


def discover(
    group: str,
    *,
    exclude_names: frozenset[str] = frozenset(),
) -> list[DiscoveredContribution]:
    """Load every entry point in ``group``.

    Entry points that fail to load are logged and skipped.

    Args:
        group: The entry point group name.
        exclude_names: Entry point names to skip.

    Returns:
        List of successfully loaded contributions.
    """
    contributions: list[DiscoveredContribution] = []

    for ep in entry_points(group=group):
        if ep.name in exclude_names:
            logger.debug("Skipping excluded entry point %s:%s", group, ep.name)
            continue
        try:
            loaded = ep.load()
        except Exception:
            logger.exception("Failed to load entry point %s:%s", group, ep.name)
            continue
        contributions.append(DiscoveredContribution(name=ep.name, group=group, value=loaded))

    logger.info("Discovered %d contributions in group %r", len(contributions), group)
    return contributions


def discover_functions(
    *,
    exclude_names: frozenset[str] = frozenset(),
) -> dict[str, Any]:
    """Return discovered gateway functions keyed by entry-point name.

    Loaded objects that are not gateway functions are skipped with a warning.
    """
    functions: dict[str, Any] = {}
    for contrib in discover(GROUP_FUNCTIONS, exclude_names=exclude_names):
        value = contrib.value
        if not (callable(value) and hasattr(value, "endpoint")):
            logger.warning(
                "Function entry point %r is not a gateway function",
                contrib.name,
            )
            continue
        functions[contrib.name] = value
    return functions
