"""Trace-context middleware for trace-log correlation.

Pure ASGI middleware that reads the caller's trace context from request
headers and binds it to structlog context variables, so that every log
entry written while handling the request carries the trace reference.

Header precedence:
1. ``X-Cloud-Trace-Context: TRACE_ID/SPAN_ID;o=OPTIONS``
2. W3C ``traceparent`` (parsed by the OpenTelemetry propagator)

Usage:
    from ianua.infra.observability.trace import TraceContextMiddleware
    app.add_middleware(TraceContextMiddleware)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry import trace
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from starlette.datastructures import Headers

from ianua.foundation.application.contributions import MiddlewareContribution
from ianua.infra.observability.logging import get_logging_settings

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

CLOUD_TRACE_HEADER = "x-cloud-trace-context"
TRACE_LOG_FIELD = "logging.googleapis.com/trace"

_CLOUD_TRACE_RE = re.compile(r"^(?P<trace_id>[A-Fa-f0-9]{32})/(?P<span_id>[0-9]+)(?:;o=(?P<mask>[0-3]))?$")
_propagator = TraceContextTextMapPropagator()

_BOUND_KEYS = ("trace_id", "span_id", "trace_sampled", TRACE_LOG_FIELD)


@dataclass(frozen=True, slots=True)
class TraceParent:
    """Caller's trace context.

    Attributes:
        trace_id: 32 lowercase hex characters.
        span_id: Parent span id, 16 lowercase hex characters.
        sampled: Whether the caller sampled this trace.
    """

    trace_id: str
    span_id: str
    sampled: bool


def _from_cloud_trace(value: str | None) -> TraceParent | None:
    if not value:
        return None
    match = _CLOUD_TRACE_RE.match(value)
    if match is None:
        return None
    mask = match.group("mask")
    return TraceParent(
        trace_id=match.group("trace_id").lower(),
        span_id=format(int(match.group("span_id")) & 0xFFFFFFFFFFFFFFFF, "016x"),
        sampled=mask is not None and mask != "0",
    )


def _from_traceparent(headers: Mapping[str, str]) -> TraceParent | None:
    value = headers.get("traceparent")
    if not value:
        return None
    context = _propagator.extract(carrier={"traceparent": value})
    span_context = trace.get_current_span(context).get_span_context()
    if not span_context.is_valid:
        return None
    return TraceParent(
        trace_id=format(span_context.trace_id, "032x"),
        span_id=format(span_context.span_id, "016x"),
        sampled=span_context.trace_flags.sampled,
    )


def extract_trace_parent(headers: Mapping[str, str]) -> TraceParent | None:
    """Read the caller's trace context, preferring the platform header."""
    return _from_cloud_trace(headers.get(CLOUD_TRACE_HEADER)) or _from_traceparent(headers)


def trace_reference(trace_id: str, project_id: str | None = None) -> str:
    """The value of the log field that links an entry to its trace."""
    if project_id is None:
        project_id = get_logging_settings().project_id
    if not project_id:
        return trace_id
    return f"projects/{project_id}/traces/{trace_id}"


class TraceContextMiddleware:
    """Pure ASGI middleware to bind trace fields to structlog context.

    Binds ``trace_id``, ``span_id``, ``trace_sampled`` and
    ``logging.googleapis.com/trace`` for the duration of the request and
    always unbinds them afterwards.

    Note:
        Requests without trace headers pass through without binding anything.
    """

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Callable[..., Any],
        send: Callable[..., Any],
    ) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        parent = extract_trace_parent(Headers(scope=scope))
        if parent is not None:
            structlog.contextvars.bind_contextvars(
                trace_id=parent.trace_id,
                span_id=parent.span_id,
                trace_sampled=parent.sampled,
                **{TRACE_LOG_FIELD: trace_reference(parent.trace_id)},
            )

        try:
            await self.app(scope, receive, send)
        finally:
            # Always unbind trace context to prevent leakage between requests
            structlog.contextvars.unbind_contextvars(*_BOUND_KEYS)


# Module-level contribution for the app factory
contribution = MiddlewareContribution(
    middleware_class=TraceContextMiddleware,
    priority=5,  # Outermost, so every log line of the request is correlated
)
