"""Guarded ASGI response writer.

Function endpoints write their responses through this writer instead of
Starlette ``Response`` objects because a streamed callable response is
produced incrementally from several coroutines (the handler, the heartbeat
task, the final result). The writer enforces the response invariants:

- status and headers are sent exactly once, before any body bytes
- writes after the client disconnected are no-ops, never errors
- nothing is written after the response has ended
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from starlette.types import Message, Send

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class HeadersAlreadySentError(RuntimeError):
    """Raised when response headers are sent a second time."""


def render_json(content: Any) -> bytes:
    """Serialize ``content`` the way Starlette's JSONResponse does."""
    return json.dumps(
        content,
        ensure_ascii=False,
        allow_nan=False,
        indent=None,
        separators=(",", ":"),
    ).encode("utf-8")


def _encode_headers(headers: Iterable[tuple[str, str]]) -> list[tuple[bytes, bytes]]:
    return [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in headers]


class ResponseWriter:
    """Writes one HTTP response over an ASGI ``send`` callable.

    Args:
        send: The ASGI send callable.
    """

    def __init__(self, send: Send) -> None:
        self._send = send
        self._lock = asyncio.Lock()
        self._headers_sent = False
        self._ended = False
        self._disconnected = False

    @property
    def headers_sent(self) -> bool:
        return self._headers_sent

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    def mark_disconnected(self) -> None:
        self._disconnected = True

    async def start(self, status: int, headers: Iterable[tuple[str, str]] = ()) -> None:
        """Send the status line and headers.

        Raises:
            HeadersAlreadySentError: If headers were already sent.
        """
        async with self._lock:
            await self._start(status, headers)

    async def start_if_needed(self, status: int, headers: Iterable[tuple[str, str]] = ()) -> bool:
        """Send headers unless already sent. Returns True if this call sent them."""
        async with self._lock:
            if self._headers_sent:
                return False
            await self._start(status, headers)
            return True

    async def write(self, chunk: bytes) -> bool:
        """Write part of the body.

        Returns:
            False if the response has ended or the client is gone.

        Raises:
            RuntimeError: If headers have not been sent yet.
        """
        async with self._lock:
            if self._ended or self._disconnected:
                return False
            if not self._headers_sent:
                raise RuntimeError("Response headers must be sent before the body")
            return await self._transmit(
                {"type": "http.response.body", "body": chunk, "more_body": True}
            )

    async def end(self, chunk: bytes = b"") -> None:
        """Finish the response. Subsequent calls are no-ops."""
        async with self._lock:
            if self._ended:
                return
            self._ended = True
            if self._disconnected or not self._headers_sent:
                return
            await self._transmit({"type": "http.response.body", "body": chunk, "more_body": False})

    async def respond(
        self,
        status: int,
        body: bytes = b"",
        headers: Iterable[tuple[str, str]] = (),
    ) -> None:
        """Send a complete, non-streamed response."""
        headers = [*headers, ("Content-Length", str(len(body)))]
        await self.start(status, headers)
        await self.end(body)

    async def respond_json(
        self,
        status: int,
        content: Any,
        headers: Iterable[tuple[str, str]] = (),
    ) -> None:
        await self.respond(
            status,
            render_json(content),
            [("Content-Type", JSON_CONTENT_TYPE), *headers],
        )

    async def _start(self, status: int, headers: Iterable[tuple[str, str]]) -> None:
        if self._headers_sent:
            raise HeadersAlreadySentError("Response headers were already sent")
        self._headers_sent = True
        if self._disconnected:
            return
        await self._transmit(
            {
                "type": "http.response.start",
                "status": status,
                "headers": _encode_headers(headers),
            }
        )

    async def _transmit(self, message: Message) -> bool:
        try:
            await self._send(message)
        except OSError as exc:
            logger.info("client_disconnected", extra={"error": str(exc)})
            self._disconnected = True
            return False
        return True
