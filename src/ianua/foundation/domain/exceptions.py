"""Canonical error codes and the structured error raised by function handlers.

Every error a client can observe is expressed as one of a fixed set of
codes. Each code maps 1:1 to a canonical uppercase name (sent on the wire)
and an HTTP status (used for the response line). Handlers raise
:class:`HttpsError` to send a specific code; anything else they raise is
reported to the client as ``internal``.

Example:
    >>> from ianua.foundation.domain.exceptions import HttpsError
    >>> raise HttpsError("not-found", "i am error")
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

__all__ = [
    "DecodeError",
    "ErrorCode",
    "HttpsError",
]


_CODE_TABLE: dict[str, tuple[str, int]] = {
    "ok": ("OK", 200),
    "cancelled": ("CANCELLED", 499),
    "unknown": ("UNKNOWN", 500),
    "invalid-argument": ("INVALID_ARGUMENT", 400),
    "deadline-exceeded": ("DEADLINE_EXCEEDED", 504),
    "not-found": ("NOT_FOUND", 404),
    "already-exists": ("ALREADY_EXISTS", 409),
    "permission-denied": ("PERMISSION_DENIED", 403),
    "unauthenticated": ("UNAUTHENTICATED", 401),
    "resource-exhausted": ("RESOURCE_EXHAUSTED", 429),
    "failed-precondition": ("FAILED_PRECONDITION", 400),
    "aborted": ("ABORTED", 409),
    "out-of-range": ("OUT_OF_RANGE", 400),
    "unimplemented": ("UNIMPLEMENTED", 501),
    "internal": ("INTERNAL", 500),
    "unavailable": ("UNAVAILABLE", 503),
    "data-loss": ("DATA_LOSS", 500),
}


class ErrorCode(StrEnum):
    """Closed set of error codes a function can report.

    Values are the client-facing kebab-case codes. ``canonical_name`` and
    ``http_status`` give the wire representation.
    """

    OK = "ok"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"
    INVALID_ARGUMENT = "invalid-argument"
    DEADLINE_EXCEEDED = "deadline-exceeded"
    NOT_FOUND = "not-found"
    ALREADY_EXISTS = "already-exists"
    PERMISSION_DENIED = "permission-denied"
    UNAUTHENTICATED = "unauthenticated"
    RESOURCE_EXHAUSTED = "resource-exhausted"
    FAILED_PRECONDITION = "failed-precondition"
    ABORTED = "aborted"
    OUT_OF_RANGE = "out-of-range"
    UNIMPLEMENTED = "unimplemented"
    INTERNAL = "internal"
    UNAVAILABLE = "unavailable"
    DATA_LOSS = "data-loss"

    @property
    def canonical_name(self) -> str:
        """Uppercase name sent in the ``status`` field of error bodies."""
        return _CODE_TABLE[self.value][0]

    @property
    def http_status(self) -> int:
        """HTTP status code used when responding with this error."""
        return _CODE_TABLE[self.value][1]


class HttpsError(Exception):
    """An explicit error that a handler raises to report a failure to the caller.

    The code determines both the HTTP status and the canonical name the
    client sees. ``message`` and ``details`` are passed through verbatim, so
    they must not carry anything the caller should not see.

    Attributes:
        code: The :class:`ErrorCode` reported to the client.
        message: Human-readable message sent to the client.
        details: Optional JSON-serializable payload sent to the client.

    Example:
        >>> err = HttpsError("not-found", "i am error")
        >>> err.http_status
        404
        >>> err.to_wire()
        {'message': 'i am error', 'status': 'NOT_FOUND'}
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: Any = None,
    ) -> None:
        """Initialize the error.

        Args:
            code: An :class:`ErrorCode` or its kebab-case string value.
            message: Message sent to the client.
            details: Extra data included in the error body when not ``None``.

        Raises:
            ValueError: If ``code`` is not a known error code.
        """
        try:
            resolved = ErrorCode(code)
        except ValueError:
            raise ValueError(f"Unknown error code: {code}.") from None
        super().__init__(message)
        self.code = resolved
        self.message = message
        self.details = details

    @property
    def http_status(self) -> int:
        return self.code.http_status

    @property
    def canonical_name(self) -> str:
        return self.code.canonical_name

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-serializable body of the ``error`` field."""
        body: dict[str, Any] = {}
        if self.details is not None:
            body["details"] = self.details
        body["message"] = self.message
        body["status"] = self.canonical_name
        return body

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.code.value!r}, {self.message!r})"


class DecodeError(ValueError):
    """Raised when a wire value cannot be decoded into a native value."""
