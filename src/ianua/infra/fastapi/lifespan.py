"""Lifespan composition for the ianua app factory.

Composes :class:`~ianua.foundation.application.LifespanContribution` hooks
into the single lifespan context manager FastAPI accepts.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from fastapi import FastAPI

    from ianua.foundation.application import LifespanContribution

logger = logging.getLogger(__name__)


def _hook_name(hook: Any) -> str:
    return getattr(hook, "__qualname__", None) or repr(hook)


def compose_lifespan(
    hooks: list[LifespanContribution],
) -> Callable[[FastAPI], Any]:
    """Create a composite lifespan from :class:`LifespanContribution` hooks.

    Hooks run in ascending priority; the lowest priority starts first and
    shuts down last. A hook contributed twice runs once.

    Args:
        hooks: Lifespan contributions, in any order.

    Returns:
        An async context manager factory for FastAPI's ``lifespan`` parameter.
    """
    unique: dict[int, LifespanContribution] = {}
    for contrib in hooks:
        unique.setdefault(id(contrib.hook), contrib)
    ordered = sorted(unique.values(), key=lambda h: h.priority)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for contrib in ordered:
                logger.info(
                    "lifespan_hook_enter",
                    extra={"hook": _hook_name(contrib.hook), "priority": contrib.priority},
                )
                await stack.enter_async_context(contrib.hook(app))
            yield
        logger.info("lifespan_complete", extra={"hook_count": len(ordered)})

    return lifespan
