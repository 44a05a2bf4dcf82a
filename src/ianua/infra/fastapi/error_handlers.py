"""Error responses in the callable wire format.

Every error a client observes has the body
``{"error": {"status": <CANONICAL_NAME>, "message": ..., "details"?: ...}}``
and the HTTP status of its :class:`ErrorCode`. The function invokers build
these responses directly; :func:`register_exception_handlers` makes ordinary
FastAPI routes on the same app answer in the same format.

Usage:
    from ianua.infra.fastapi.error_handlers import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ianua.foundation.domain.encoding import encode
from ianua.foundation.domain.exceptions import ErrorCode, HttpsError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

BAD_REQUEST_MESSAGE = "Bad Request"
UNAUTHENTICATED_MESSAGE = "Unauthenticated"
INTERNAL_MESSAGE = "INTERNAL"


def bad_request() -> HttpsError:
    return HttpsError(ErrorCode.INVALID_ARGUMENT, BAD_REQUEST_MESSAGE)


def unauthenticated() -> HttpsError:
    return HttpsError(ErrorCode.UNAUTHENTICATED, UNAUTHENTICATED_MESSAGE)


def internal_error() -> HttpsError:
    """The fixed, non-leaking error reported for unexpected failures."""
    return HttpsError(ErrorCode.INTERNAL, INTERNAL_MESSAGE)


def error_body(error: HttpsError) -> dict[str, Any]:
    """Wire body for ``error``; ``details`` go through the wire codec."""
    wire = error.to_wire()
    if "details" in wire:
        wire["details"] = encode(wire["details"])
    return {"error": wire}


def error_response(
    error: HttpsError,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Build the JSON response for ``error``.

    Args:
        error: The error to report.
        headers: Extra response headers (e.g. CORS).

    Returns:
        JSONResponse with the code's HTTP status and the wire error body.
    """
    return JSONResponse(
        status_code=error.http_status,
        content=error_body(error),
        headers=dict(headers) if headers else None,
    )


async def https_error_handler(request: Request, exc: HttpsError) -> JSONResponse:
    """Translate HttpsError raised by a FastAPI route to its wire response."""
    logger.info(
        "https_error",
        extra={
            "path": str(request.url.path),
            "method": request.method,
            "status": exc.canonical_name,
        },
    )
    return error_response(exc)


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Translate FastAPI's request validation failures to ``invalid-argument``.

    Field-level details are logged, not returned.
    """
    logger.info(
        "request_validation_failed",
        extra={
            "path": str(request.url.path),
            "errors": [
                {"loc": list(e.get("loc", [])), "type": e.get("type", "")} for e in exc.errors()
            ],
        },
    )
    return error_response(bad_request())


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all handler for unhandled exceptions.

    Logs full exception details server-side; the client only sees
    ``INTERNAL``.
    """
    logger.error(
        "unhandled_exception",
        exc_info=exc,
        extra={
            "path": str(request.url.path),
            "method": request.method,
            "exception_type": type(exc).__name__,
        },
    )
    return error_response(internal_error())


def register_exception_handlers(app: FastAPI) -> None:
    """Register the wire-format exception handlers on a FastAPI application.

    1. HttpsError -> its declared status
    2. RequestValidationError -> 400 INVALID_ARGUMENT
    3. Exception -> 500 INTERNAL (catch-all)

    Args:
        app: FastAPI application instance
    """
    # Note: Type ignores needed due to Starlette's overly strict handler typing
    app.add_exception_handler(
        HttpsError,
        https_error_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        RequestValidationError,
        request_validation_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)
