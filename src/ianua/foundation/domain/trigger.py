"""Static trigger metadata that functions expose to manifest builders.

Task-queue configuration fields have three states:

- unset (``None``): omitted from the manifest, the platform default applies.
- reset (:data:`RESET_VALUE`): emitted as ``null``, explicitly restoring the
  platform default over any previously deployed value.
- a concrete value: emitted as-is.

Example:
    >>> RetryConfig(max_attempts=5, min_backoff_seconds=RESET_VALUE).to_manifest()
    {'maxAttempts': 5, 'minBackoffSeconds': None}
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Final

__all__ = [
    "RESET_VALUE",
    "RateLimits",
    "ResetValue",
    "RetryConfig",
    "TaskQueueTrigger",
    "convert_invoker",
]


class ResetValue:
    """Sentinel requesting that a configuration field revert to its default.

    There is exactly one instance, :data:`RESET_VALUE`.
    """

    _instance: ResetValue | None = None

    def __new__(cls) -> ResetValue:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "RESET_VALUE"

    def __reduce__(self) -> str:
        return "RESET_VALUE"


RESET_VALUE: Final = ResetValue()


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _check_non_negative(owner: object) -> None:
    for f in fields(owner):  # type: ignore[arg-type]
        value = getattr(owner, f.name)
        if value is None or value is RESET_VALUE:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            msg = f"{type(owner).__name__}.{f.name} must be a number, got {value!r}"
            raise TypeError(msg)
        if value < 0:
            msg = f"{type(owner).__name__}.{f.name} must be non-negative, got {value!r}"
            raise ValueError(msg)


def _serialize(owner: object) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in fields(owner):  # type: ignore[arg-type]
        value = getattr(owner, f.name)
        if value is None:
            continue
        out[_camel(f.name)] = None if value is RESET_VALUE else value
    return out


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """How a task is retried after a non-2xx response.

    Attributes:
        max_attempts: Maximum number of attempts (platform default 3).
        max_retry_seconds: Maximum time to keep retrying.
        max_backoff_seconds: Maximum wait between attempts.
        max_doublings: Maximum number of times the backoff doubles.
        min_backoff_seconds: Minimum wait between attempts.
    """

    max_attempts: int | ResetValue | None = None
    max_retry_seconds: float | ResetValue | None = None
    max_backoff_seconds: float | ResetValue | None = None
    max_doublings: int | ResetValue | None = None
    min_backoff_seconds: float | ResetValue | None = None

    def __post_init__(self) -> None:
        _check_non_negative(self)

    def to_manifest(self) -> dict[str, Any]:
        return _serialize(self)


@dataclass(frozen=True, slots=True)
class RateLimits:
    """Congestion control applied by the queue.

    Attributes:
        max_concurrent_dispatches: Maximum outstanding requests.
        max_dispatches_per_second: Maximum invocations per second.
    """

    max_concurrent_dispatches: int | ResetValue | None = None
    max_dispatches_per_second: float | ResetValue | None = None

    def __post_init__(self) -> None:
        _check_non_negative(self)

    def to_manifest(self) -> dict[str, Any]:
        return _serialize(self)


def convert_invoker(invoker: str | list[str] | tuple[str, ...]) -> list[str]:
    """Normalize an invoker policy into a list of principals.

    Args:
        invoker: ``"private"``, ``"public"``, a service account, or a list of
            service accounts.

    Returns:
        The invoker as a non-empty list.

    Raises:
        ValueError: If the list is empty, contains an empty string, or mixes
            ``public``/``private`` with other entries.
    """
    invokers = [invoker] if isinstance(invoker, str) else list(invoker)

    if not invokers:
        raise ValueError("Invalid option for invoker: Must be a non-empty array.")
    if any(not inv for inv in invokers):
        raise ValueError("Invalid option for invoker: Must be a non-empty string.")
    if len(invokers) > 1 and any(inv in ("public", "private") for inv in invokers):
        raise ValueError(
            "Invalid option for invoker: Cannot have 'public' or 'private' "
            "in an array of service accounts."
        )
    return invokers


@dataclass(frozen=True, slots=True)
class TaskQueueTrigger:
    """Trigger metadata emitted for a task-dispatch function."""

    retry_config: RetryConfig | None = None
    rate_limits: RateLimits | None = None
    invoker: tuple[str, ...] | None = None
    retry: bool | None = None

    def to_manifest(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "retryConfig": self.retry_config.to_manifest() if self.retry_config else {},
            "rateLimits": self.rate_limits.to_manifest() if self.rate_limits else {},
        }
        if self.invoker is not None:
            out["invoker"] = list(self.invoker)
        if self.retry is not None:
            out["retry"] = self.retry
        return out
