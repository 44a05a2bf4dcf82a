"""Result type returned by the invocation pipelines.

Expected failures (bad request, rejected tokens, handler-declared errors)
travel as values rather than exceptions. Only unexpected faults propagate as
exceptions, and the invoker boundary converts those to ``internal``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ianua.foundation.domain.exceptions import HttpsError


@dataclass(frozen=True, slots=True)
class InvocationResult:
    """Either a successful handler value or a structured error.

    Attributes:
        value: The handler's return value (undefined when ``error`` is set).
        error: The error to report, or ``None`` on success.
    """

    value: Any = None
    error: HttpsError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> InvocationResult:
        return cls(value=value)

    @classmethod
    def failure(cls, error: HttpsError) -> InvocationResult:
        return cls(error=error)

    @classmethod
    def rejected(cls, code: str, message: str) -> InvocationResult:
        return cls(error=HttpsError(code, message))
