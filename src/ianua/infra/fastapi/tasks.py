"""Task-dispatch functions: endpoints invoked by a managed task queue.

The queue POSTs ``{"data": ...}`` with a bearer OIDC token and a set of
``X-CloudTasks-*`` headers describing the attempt. The handler's return
value is discarded: success is 204 with an empty body, and any non-2xx
status is the queue's signal to retry according to its retry config.

Queue access is already guarded by the platform's invoker policy, so the
bearer token is parsed for its claims but its signature is not re-checked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import jwt as pyjwt
from starlette.datastructures import Headers
from starlette.requests import Request

from ianua.foundation.domain.context import TaskContext, TaskRequest
from ianua.foundation.domain.encoding import decode
from ianua.foundation.domain.exceptions import HttpsError
from ianua.foundation.domain.principal import AuthPrincipal
from ianua.foundation.domain.result import InvocationResult
from ianua.foundation.domain.trigger import (
    RateLimits,
    RetryConfig,
    TaskQueueTrigger,
    convert_invoker,
)
from ianua.infra.auth.debug import is_emulated
from ianua.infra.auth.verifiers import (
    AUTHORIZATION_HEADER,
    extract_bearer_token,
    unsafe_decode_token,
)
from ianua.infra.fastapi.callable import call_handler
from ianua.infra.fastapi.error_handlers import (
    bad_request,
    error_body,
    internal_error,
    unauthenticated,
)
from ianua.infra.fastapi.request_validation import validate_request
from ianua.infra.fastapi.writer import ResponseWriter

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from starlette.types import Receive, Scope, Send

logger = logging.getLogger(__name__)

QUEUE_NAME_HEADER = "X-CloudTasks-QueueName"
TASK_NAME_HEADER = "X-CloudTasks-TaskName"
RETRY_COUNT_HEADER = "X-CloudTasks-TaskRetryCount"
EXECUTION_COUNT_HEADER = "X-CloudTasks-TaskExecutionCount"
ETA_HEADER = "X-CloudTasks-TaskETA"
PREVIOUS_RESPONSE_HEADER = "X-CloudTasks-TaskPreviousResponse"
RETRY_REASON_HEADER = "X-CloudTasks-TaskRetryReason"

REQUIRED_APIS = (
    {"api": "cloudtasks.googleapis.com", "reason": "Needed for task queue functions"},
)


class TaskHandlerShape(StrEnum):
    """Calling convention of a registered task handler."""

    LEGACY = "legacy"
    UNIFIED = "unified"


@dataclass(frozen=True, slots=True)
class TaskQueueOptions:
    """Queue configuration published with the trigger metadata.

    Attributes:
        retry_config: How the queue retries failed attempts.
        rate_limits: How fast the queue dispatches.
        invoker: Who may enqueue: ``"private"``, a service account, or a list.
        retry: Whether failed dispatches are retried at all.
        labels: Static labels published with the trigger metadata.
    """

    retry_config: RetryConfig | None = None
    rate_limits: RateLimits | None = None
    invoker: str | list[str] | tuple[str, ...] | None = None
    retry: bool | None = None
    labels: Mapping[str, str] = field(default_factory=dict)

    def to_trigger(self) -> TaskQueueTrigger:
        return TaskQueueTrigger(
            retry_config=self.retry_config,
            rate_limits=self.rate_limits,
            invoker=tuple(convert_invoker(self.invoker)) if self.invoker is not None else None,
            retry=self.retry,
        )


def _int_header(headers: Mapping[str, str], name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        logger.warning("task_header_not_an_integer", extra={"header": name, "value": value})
        return None


def _scheduled_time(value: str | None) -> str | None:
    """Convert an ETA in epoch seconds to RFC 3339 UTC.

    Values that are not numbers are passed through unchanged.
    """
    if value is None:
        return None
    try:
        seconds = float(value)
        instant = datetime.fromtimestamp(seconds, tz=UTC)
    except (ValueError, OverflowError, OSError):
        return value
    return instant.isoformat().replace("+00:00", "Z")


def task_context_from_headers(
    raw_request: Any,
    headers: Mapping[str, str],
    auth: AuthPrincipal | None = None,
) -> TaskContext:
    """Build the task context from queue headers.

    Numeric headers that are missing or malformed become None rather than
    zero, so a first attempt (``0``) is distinguishable from unknown.
    """
    if not isinstance(headers, Headers):
        headers = Headers(headers=dict(headers))
    return TaskContext(
        raw_request=raw_request,
        auth=auth,
        queue_name=headers.get(QUEUE_NAME_HEADER),
        id=headers.get(TASK_NAME_HEADER),
        retry_count=_int_header(headers, RETRY_COUNT_HEADER),
        execution_count=_int_header(headers, EXECUTION_COUNT_HEADER),
        scheduled_time=_scheduled_time(headers.get(ETA_HEADER)),
        previous_response=_int_header(headers, PREVIOUS_RESPONSE_HEADER),
        retry_reason=headers.get(RETRY_REASON_HEADER),
        headers=dict(headers.items()),
    )


def _principal_from_headers(headers: Mapping[str, str]) -> AuthPrincipal | None:
    """Parse the queue's bearer token. Returns None if it is absent or unparseable."""
    token = extract_bearer_token(headers.get(AUTHORIZATION_HEADER))
    if not token:
        return None
    try:
        claims = unsafe_decode_token(token)
    except pyjwt.InvalidTokenError as exc:
        logger.warning("task_token_unparseable", extra={"reason": str(exc)})
        return None
    return AuthPrincipal.from_claims(claims)


class TaskQueueFunction:
    """ASGI application wrapping one task handler.

    Use :func:`on_task_dispatched` or :func:`on_task_dispatched_legacy`
    rather than constructing this directly.
    """

    def __init__(
        self,
        handler: Callable[..., Any],
        shape: TaskHandlerShape,
        options: TaskQueueOptions | None = None,
    ) -> None:
        self.handler = handler
        self.shape = TaskHandlerShape(shape)
        self.options = options or TaskQueueOptions()
        # Fail at registration, not at deploy time, on a bad invoker.
        self._trigger = self.options.to_trigger()
        self.__name__ = getattr(handler, "__name__", type(self).__name__)
        self.__doc__ = getattr(handler, "__doc__", None)

    @property
    def endpoint(self) -> dict[str, Any]:
        """Static trigger metadata published to the deployment manifest."""
        return {
            "taskQueueTrigger": self._trigger.to_manifest(),
            "labels": dict(self.options.labels),
            "requiredAPIs": [dict(api) for api in REQUIRED_APIS],
        }

    def run(self, *args: Any, **kwargs: Any) -> Any:
        """Invoke the raw handler, bypassing HTTP handling."""
        return self.handler(*args, **kwargs)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        body = await request.body()
        writer = ResponseWriter(send)

        try:
            result = await self._invoke(request, body)
        except Exception as exc:
            logger.error(
                "unhandled_error",
                exc_info=exc,
                extra={"function": self.__name__, "exception_type": type(exc).__name__},
            )
            result = InvocationResult.failure(internal_error())

        if result.ok:
            await writer.respond(204)
            return
        error = result.error or internal_error()
        await writer.respond_json(error.http_status, error_body(error))

    async def _invoke(self, request: Request, body: bytes) -> InvocationResult:
        validated = validate_request(request.method, request.headers, body)
        if validated is None:
            return InvocationResult.failure(bad_request())

        auth = _principal_from_headers(request.headers)
        if auth is None and not is_emulated():
            return InvocationResult.failure(unauthenticated())

        context = task_context_from_headers(request, request.headers, auth)

        # DecodeError reaches the outer boundary and is reported as internal.
        data = decode(validated.payload)

        logger.debug(
            "task_dispatched",
            extra={
                "function": self.__name__,
                "queue_name": context.queue_name,
                "task_id": context.id,
                "retry_count": context.retry_count,
            },
        )
        try:
            if self.shape is TaskHandlerShape.LEGACY:
                await call_handler(self.handler, data, context)
            else:
                await call_handler(self.handler, TaskRequest.from_context(context, data))
        except HttpsError as err:
            return InvocationResult.failure(err)
        return InvocationResult.success(None)


def on_task_dispatched(
    handler: Callable[[TaskRequest[Any]], Any] | None = None,
    options: TaskQueueOptions | None = None,
) -> Any:
    """Register a task handler taking a single :class:`TaskRequest`.

    Usable as ``@on_task_dispatched`` or ``@on_task_dispatched(options=...)``.
    """
    if handler is None:
        return lambda fn: TaskQueueFunction(fn, TaskHandlerShape.UNIFIED, options)
    return TaskQueueFunction(handler, TaskHandlerShape.UNIFIED, options)


def on_task_dispatched_legacy(
    handler: Callable[[Any, TaskContext], Any] | None = None,
    options: TaskQueueOptions | None = None,
) -> Any:
    """Register a task handler taking ``(data, context)``."""
    if handler is None:
        return lambda fn: TaskQueueFunction(fn, TaskHandlerShape.LEGACY, options)
    return TaskQueueFunction(handler, TaskHandlerShape.LEGACY, options)
