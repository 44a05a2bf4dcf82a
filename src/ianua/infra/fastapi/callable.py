"""Callable functions: authenticated request/response endpoints.

A callable function is an ASGI application that turns an untrusted HTTP
request into a verified invocation of a user handler. Per request:

1. Validate the request structure (POST, JSON, ``{"data": ...}`` only).
2. Verify the identity and attestation tokens; reject if either is invalid.
3. Decode the payload and invoke the handler.
4. Encode the result as ``{"result": ...}``, or report the error.

CORS is not handled here: ``create_app`` mounts each function inside its own
Starlette ``CORSMiddleware`` built from ``CallableOptions.cors``.

Clients that send ``Accept: text/event-stream`` get a server-sent-event
response: intermediate chunks as ``data: {"message": ...}`` frames, heartbeat
comments during inactivity, and the result or error as the last frame.

Handler shapes are chosen at registration:

    @on_call
    async def add(request: CallableRequest) -> int: ...

    @on_call_streaming
    async def count(request: CallableRequest, response: CallableProxyResponse) -> int: ...

    @on_call_legacy
    def echo(data, context: CallableContext): ...
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from ianua.foundation.domain.context import CallableContext, CallableRequest
from ianua.foundation.domain.encoding import decode, encode
from ianua.foundation.domain.exceptions import ErrorCode, HttpsError
from ianua.foundation.domain.principal import TokenStatus, TokenVerifications
from ianua.foundation.domain.result import InvocationResult
from ianua.infra.auth.verifiers import INSTANCE_ID_HEADER, check_tokens, get_token_verifiers
from ianua.infra.fastapi.cors import CorsPolicy, OriginOption
from ianua.infra.fastapi.error_handlers import (
    bad_request,
    error_body,
    internal_error,
    unauthenticated,
)
from ianua.infra.fastapi.request_validation import validate_request
from ianua.infra.fastapi.writer import ResponseWriter, render_json

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from starlette.types import Receive, Scope, Send

    from ianua.infra.auth.verifiers import TokenVerifiers

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_SECONDS = 30
SSE_MEDIA_TYPE = "text/event-stream"
_HEARTBEAT_FRAME = b": ping\n"


class HandlerShape(StrEnum):
    """Calling convention of a registered handler."""

    LEGACY = "legacy"
    UNIFIED = "unified"
    STREAMING = "streaming"


@dataclass(frozen=True, slots=True)
class CallableOptions:
    """Per-function options.

    Attributes:
        cors: Origin policy or full :class:`CorsPolicy`; the app default if None.
        enforce_app_check: Reject requests without an attestation token.
        heartbeat_seconds: Interval between keep-alive comments on an idle
            stream. None disables heartbeats.
        labels: Static labels published with the trigger metadata.
    """

    cors: CorsPolicy | OriginOption | None = None
    enforce_app_check: bool = False
    heartbeat_seconds: float | None = DEFAULT_HEARTBEAT_SECONDS
    labels: Mapping[str, str] = field(default_factory=dict)


def encode_sse(data: Any) -> bytes:
    """Frame ``data`` as one server-sent event line."""
    return b"data: " + render_json(data) + b"\n"


def accepts_event_stream(headers: Mapping[str, str]) -> bool:
    return (headers.get("accept") or "").strip().lower() == SSE_MEDIA_TYPE


def accept_verifications(verifications: TokenVerifications, *, enforce_app_check: bool) -> bool:
    """Decide whether a callable request may proceed.

    Any INVALID outcome rejects. A MISSING attestation token rejects only
    when enforcement is on.
    """
    if verifications.any_invalid:
        return False
    if enforce_app_check and verifications.app is TokenStatus.MISSING:
        return False
    return True


class _EventStream:
    """Server-sent-event side of one callable response."""

    def __init__(self, writer: ResponseWriter, heartbeat_seconds: float | None) -> None:
        self._writer = writer
        self._heartbeat_seconds = heartbeat_seconds
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._last_activity = 0.0
        self.signal = asyncio.Event()
        self._close_callbacks: list[Callable[[], Any]] = []
        self._pending: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def aborted(self) -> bool:
        return self.signal.is_set()

    @property
    def started(self) -> bool:
        return self._writer.headers_sent

    async def _open(self) -> None:
        await self._writer.start_if_needed(
            200,
            [("Content-Type", SSE_MEDIA_TYPE), ("Cache-Control", "no-cache")],
        )

    async def send(self, payload: Any) -> bool:
        return await self._send_raw(encode_sse(payload))

    async def _send_raw(self, frame: bytes) -> bool:
        if self.aborted:
            return False
        await self._open()
        wrote = await self._writer.write(frame)
        if not wrote:
            await self.abort()
            return False
        self._last_activity = asyncio.get_running_loop().time()
        return True

    def start_heartbeat(self) -> None:
        if not self._heartbeat_seconds or self._heartbeat_seconds <= 0:
            return
        self._last_activity = asyncio.get_running_loop().time()
        self._heartbeat_task = asyncio.create_task(self._heartbeat())

    async def _heartbeat(self) -> None:
        interval = self._heartbeat_seconds or 0
        loop = asyncio.get_running_loop()
        while not self.aborted:
            delay = self._last_activity + interval - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
                continue
            if not await self._send_raw(_HEARTBEAT_FRAME):
                return

    async def stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def on_close(self, callback: Callable[[], Any]) -> None:
        self._close_callbacks.append(callback)
        if self._closed:
            # Registered after the response closed: run it right away.
            task = asyncio.get_running_loop().create_task(self._run_close_callbacks())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def abort(self) -> None:
        """Client went away: stop writing and run close callbacks."""
        if self.aborted:
            return
        self.signal.set()
        self._writer.mark_disconnected()
        logger.info("callable_stream_aborted")
        await self.close()

    async def close(self) -> None:
        self._closed = True
        await self._run_close_callbacks()

    async def _run_close_callbacks(self) -> None:
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("callable_close_callback_failed")


class CallableProxyResponse:
    """Handle a streaming handler uses to emit intermediate chunks.

    Attributes:
        accepts_streaming: Whether the client asked for an event stream.
        signal: Set once the client disconnects.
    """

    def __init__(self, stream: _EventStream | None, *, accepts_streaming: bool) -> None:
        self._stream = stream
        self.accepts_streaming = accepts_streaming
        self.signal = stream.signal if stream is not None else asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self.signal.is_set()

    async def write(self, chunk: Any) -> bool:
        """Send ``chunk`` to the client immediately.

        Returns:
            False (and does nothing) when the client does not accept streaming
            or has disconnected.
        """
        if not self.accepts_streaming or self._stream is None:
            return False
        return await self._stream.send({"message": encode(chunk)})

    def on_close(self, callback: Callable[[], Any]) -> None:
        """Register cleanup that runs exactly once when the response closes."""
        if self._stream is not None:
            self._stream.on_close(callback)


async def call_handler(handler: Callable[..., Any], *args: Any) -> Any:
    if inspect.iscoroutinefunction(handler):
        return await handler(*args)
    result = await run_in_threadpool(handler, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _watch_disconnect(receive: Receive, stream: _EventStream) -> None:
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            await stream.abort()
            return


class CallableFunction:
    """ASGI application wrapping one callable handler.

    Use :func:`on_call`, :func:`on_call_streaming` or :func:`on_call_legacy`
    rather than constructing this directly.
    """

    def __init__(
        self,
        handler: Callable[..., Any],
        shape: HandlerShape,
        options: CallableOptions | None = None,
    ) -> None:
        self.handler = handler
        self.shape = HandlerShape(shape)
        self.options = options or CallableOptions()
        self.__name__ = getattr(handler, "__name__", type(self).__name__)
        self.__doc__ = getattr(handler, "__doc__", None)

    @property
    def endpoint(self) -> dict[str, Any]:
        """Static trigger metadata published to the deployment manifest."""
        return {"callableTrigger": {}, "labels": dict(self.options.labels)}

    def run(self, *args: Any, **kwargs: Any) -> Any:
        """Invoke the raw handler, bypassing HTTP handling."""
        return self.handler(*args, **kwargs)

    def _verifiers(self, scope: Scope) -> TokenVerifiers:
        app = scope.get("app")
        verifiers = getattr(getattr(app, "state", None), "token_verifiers", None)
        return verifiers or get_token_verifiers()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        writer = ResponseWriter(send)
        body = await request.body()
        streaming = self.shape is not HandlerShape.LEGACY and accepts_event_stream(request.headers)
        stream = _EventStream(writer, self.options.heartbeat_seconds) if streaming else None
        watcher = asyncio.create_task(_watch_disconnect(receive, stream)) if stream else None

        try:
            try:
                result = await self._invoke(request, body, scope, stream)
            except Exception as exc:
                logger.error(
                    "unhandled_error",
                    exc_info=exc,
                    extra={"function": self.__name__, "exception_type": type(exc).__name__},
                )
                result = InvocationResult.failure(internal_error())
            finally:
                if stream is not None:
                    await stream.stop_heartbeat()
            await self._respond(writer, stream, result)
        finally:
            if watcher is not None:
                watcher.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await watcher
            if stream is not None:
                await stream.close()

    async def _invoke(
        self,
        request: Request,
        body: bytes,
        scope: Scope,
        stream: _EventStream | None,
    ) -> InvocationResult:
        validated = validate_request(request.method, request.headers, body)
        if validated is None:
            return InvocationResult.failure(bad_request())

        verifications = await check_tokens(request.headers, self._verifiers(scope))
        if not accept_verifications(
            verifications, enforce_app_check=self.options.enforce_app_check
        ):
            return InvocationResult.failure(unauthenticated())

        accepts_streaming = accepts_event_stream(request.headers)
        if accepts_streaming and self.shape is HandlerShape.LEGACY:
            return InvocationResult.rejected(
                ErrorCode.INVALID_ARGUMENT,
                f"Unsupported Accept header '{SSE_MEDIA_TYPE}'",
            )

        # DecodeError reaches the outer boundary and is reported as internal.
        data = decode(validated.payload)

        context = CallableContext(
            raw_request=request,
            auth=verifications.auth_principal,
            app=verifications.app_principal,
            instance_id_token=request.headers.get(INSTANCE_ID_HEADER) or None,
        )

        try:
            if self.shape is HandlerShape.LEGACY:
                value = await call_handler(self.handler, data, context)
            else:
                arg = CallableRequest.from_context(
                    context, data, accepts_streaming=accepts_streaming
                )
                if stream is not None:
                    stream.start_heartbeat()
                if self.shape is HandlerShape.STREAMING:
                    proxy = CallableProxyResponse(stream, accepts_streaming=accepts_streaming)
                    value = await self.handler(arg, proxy)
                else:
                    value = await call_handler(self.handler, arg)
        except HttpsError as err:
            return InvocationResult.failure(err)
        return InvocationResult.success(value)

    async def _respond(
        self,
        writer: ResponseWriter,
        stream: _EventStream | None,
        result: InvocationResult,
    ) -> None:
        if stream is not None and stream.aborted:
            await writer.end()
            return

        if result.ok:
            payload = {"result": encode(result.value)}
            if stream is not None:
                await stream.send(payload)
                await writer.end()
            else:
                await writer.respond_json(200, payload)
            return

        error = result.error or internal_error()
        if stream is not None and stream.started:
            # Status 200 is already on the wire.
            await stream.send(error_body(error))
            await writer.end()
        else:
            await writer.respond_json(error.http_status, error_body(error))


def on_call(
    handler: Callable[[CallableRequest[Any]], Any] | None = None,
    *,
    options: CallableOptions | None = None,
) -> Any:
    """Register a callable handler taking a single :class:`CallableRequest`.

    Usable as ``@on_call`` or ``@on_call(options=...)``.
    """
    if handler is None:
        return lambda fn: CallableFunction(fn, HandlerShape.UNIFIED, options)
    return CallableFunction(handler, HandlerShape.UNIFIED, options)


def on_call_streaming(
    handler: Callable[[CallableRequest[Any], CallableProxyResponse], Awaitable[Any]] | None = None,
    *,
    options: CallableOptions | None = None,
) -> Any:
    """Register an async handler taking ``(request, response)``.

    Raises:
        TypeError: If the handler is not a coroutine function.
    """

    def register(fn: Callable[..., Awaitable[Any]]) -> CallableFunction:
        if not inspect.iscoroutinefunction(fn):
            raise TypeError("Streaming callable handlers must be async functions")
        return CallableFunction(fn, HandlerShape.STREAMING, options)

    return register if handler is None else register(handler)


def on_call_legacy(
    handler: Callable[[Any, CallableContext], Any] | None = None,
    *,
    options: CallableOptions | None = None,
) -> Any:
    """Register a handler taking ``(data, context)``. Streaming is not supported."""
    if handler is None:
        return lambda fn: CallableFunction(fn, HandlerShape.LEGACY, options)
    return CallableFunction(handler, HandlerShape.LEGACY, options)
