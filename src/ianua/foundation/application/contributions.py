"""Hooks that wrap a gateway app: ASGI middleware and lifespan context managers.

``create_app`` orders both kinds by ``priority``. The lowest-numbered
middleware wraps all the others, so it sees every request first. The
lowest-numbered lifespan hook enters first and exits last, which is why
logging (50) comes up before the token verifiers (60) warm their key caches.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable
    from contextlib import AbstractAsyncContextManager

MIDDLEWARE_PRIORITY_MIN = 0
MIDDLEWARE_PRIORITY_MAX = 499
MIDDLEWARE_PRIORITY_DEFAULT = 400

LIFESPAN_PRIORITY_OBSERVABILITY = 50
LIFESPAN_PRIORITY_AUTH = 60
LIFESPAN_PRIORITY_DEFAULT = 500


@dataclass(frozen=True, slots=True)
class MiddlewareContribution:
    """An ASGI middleware installed around every function route.

    ``kwargs`` are forwarded to ``FastAPI.add_middleware``. Priorities
    outside ``MIDDLEWARE_PRIORITY_MIN..MIDDLEWARE_PRIORITY_MAX`` are
    rejected when the contribution is built, not when the app starts.
    """

    middleware_class: type[Any]
    priority: int = MIDDLEWARE_PRIORITY_DEFAULT
    kwargs: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.priority < MIDDLEWARE_PRIORITY_MIN or self.priority > MIDDLEWARE_PRIORITY_MAX:
            raise ValueError(
                f"Middleware priority must be between {MIDDLEWARE_PRIORITY_MIN} "
                f"and {MIDDLEWARE_PRIORITY_MAX}, got {self.priority}"
            )


@dataclass(frozen=True, slots=True)
class LifespanContribution:
    """A startup/shutdown hook.

    ``hook(app)`` returns an async context manager that is entered before the
    first request and exited on shutdown.
    """

    hook: Callable[[Any], AbstractAsyncContextManager[None]]
    priority: int = LIFESPAN_PRIORITY_DEFAULT
