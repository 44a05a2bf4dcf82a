"""FastAPI application factory for serving gateway functions.

Provides :func:`create_app`, which mounts callable and task-dispatch
functions as raw ASGI routes and wires logging, trace correlation, token
verifiers, and error handlers around them.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI

from ianua.foundation.application import (
    GROUP_LIFESPAN,
    LifespanContribution,
    MiddlewareContribution,
    discover,
)
from ianua.foundation.application import discover_functions as _discover_functions
from ianua.infra.auth import lifespan_contribution as auth_lifespan
from ianua.infra.auth.debug import DebugFeature, resolve_debug_feature
from ianua.infra.fastapi._health import router as health_router
from ianua.infra.fastapi.callable import CallableFunction
from ianua.infra.fastapi.cors import CorsPolicy, with_cors
from ianua.infra.fastapi.error_handlers import register_exception_handlers
from ianua.infra.fastapi.lifespan import compose_lifespan
from ianua.infra.fastapi.settings import AppSettings
from ianua.infra.observability import lifespan_contribution as observability_lifespan
from ianua.infra.observability.trace import contribution as trace_contribution

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

_FUNCTION_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{0,62}$")


def _check_function(name: str, function: Any) -> None:
    if not _FUNCTION_NAME_RE.match(name):
        msg = (
            f"Invalid function name {name!r}: must start with a letter and contain "
            "only letters, digits, '-' and '_' (at most 63 characters)"
        )
        raise ValueError(msg)
    if not (callable(function) and hasattr(function, "endpoint")):
        msg = f"Function {name!r} is not a gateway function"
        raise TypeError(msg)


def create_app(
    functions: Mapping[str, Any] | None = None,
    settings: AppSettings | None = None,
    *,
    extra_middleware: list[MiddlewareContribution] | None = None,
    extra_lifespan_hooks: list[LifespanContribution] | None = None,
    discover_functions: bool = True,
) -> FastAPI:
    """Create a FastAPI application serving gateway functions.

    Each function is mounted at ``/<name>`` and accepts every method;
    rejecting anything but POST is the function's own job, so that the
    client receives a wire-format error rather than a bare 405. Callable
    functions are wrapped in their own ``CORSMiddleware``; task functions
    are called by the queue, not a browser, and are mounted bare.

    Args:
        functions: Functions keyed by name, as returned by ``on_call`` and
            ``on_task_dispatched``.
        settings: Application settings. If ``None``, loaded from environment.
        extra_middleware: Additional middleware beyond trace correlation.
        extra_lifespan_hooks: Additional lifespan hooks beyond logging and auth.
        discover_functions: Also mount functions and lifespan hooks
            contributed through entry points.

    Returns:
        Configured FastAPI application instance.

    Raises:
        ValueError: If a function name is not a valid route segment.
        TypeError: If a value is not a gateway function.
    """
    settings = settings or AppSettings()

    mounted: dict[str, Any] = {}
    if discover_functions:
        mounted.update(_discover_functions(exclude_names=settings.exclude_functions))
    mounted.update(functions or {})
    for name, function in mounted.items():
        _check_function(name, function)

    # --- Lifespan hooks ---
    lifespan_hooks: list[LifespanContribution] = [observability_lifespan, auth_lifespan]
    lifespan_hooks.extend(extra_lifespan_hooks or [])
    if discover_functions:
        for contrib in discover(GROUP_LIFESPAN, exclude_names=settings.exclude_lifespan_hooks):
            value = contrib.value
            if isinstance(value, LifespanContribution):
                lifespan_hooks.append(value)
            else:
                # Assume bare async context manager factory; wrap with default priority
                lifespan_hooks.append(LifespanContribution(hook=value))

    app = FastAPI(
        title=settings.title,
        version=settings.version,
        description=settings.description,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        debug=settings.debug,
        lifespan=compose_lifespan(lifespan_hooks),
    )
    app.state.cors_policy = CorsPolicy.from_settings(settings.cors)
    app.state.functions = mounted

    # --- Middleware: sort by priority ascending, then add in reverse (LIFO for Starlette) ---
    middleware_contribs = [trace_contribution, *(extra_middleware or [])]
    middleware_contribs.sort(key=lambda m: m.priority)
    for mw in reversed(middleware_contribs):
        app.add_middleware(mw.middleware_class, **mw.kwargs)
        logger.info(
            "Registered middleware %s (priority=%d)",
            mw.middleware_class.__name__,
            mw.priority,
        )

    register_exception_handlers(app)
    app.include_router(health_router)

    force_cors = resolve_debug_feature(DebugFeature.ENABLE_CORS)
    for name, function in mounted.items():
        route_app = function
        if isinstance(function, CallableFunction):
            policy = CorsPolicy.coerce(
                function.options.cors, app.state.cors_policy, force_enable=force_cors
            )
            route_app = with_cors(function, policy)
        app.add_route(f"/{name}", route_app, methods=None, include_in_schema=False)
        logger.info("Mounted function %s at /%s", type(function).__name__, name)

    return app
