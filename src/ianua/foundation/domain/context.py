"""Handler-visible invocation contexts.

A context is built fresh for every request, handed to the user handler, and
discarded once the response is sent. All context types are frozen; header
snapshots are read-only mappings.

Two calling conventions exist for each function kind:

- legacy: ``handler(data, context)`` receives a :class:`CallableContext` or
  :class:`TaskContext`.
- unified: ``handler(request)`` receives a :class:`CallableRequest` or
  :class:`TaskRequest`, which carry ``data`` alongside the context fields.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from ianua.foundation.domain.principal import AppPrincipal, AuthPrincipal

T = TypeVar("T")


def _readonly(headers: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(headers or {}))


@dataclass(frozen=True, slots=True)
class CallableContext:
    """Metadata for a callable invocation.

    Attributes:
        raw_request: The underlying HTTP request object.
        auth: Verified end-user principal, if an identity token was presented.
        app: Verified app principal, if an attestation token was presented.
        instance_id_token: Unverified client-instance identifier, if sent.
    """

    raw_request: Any
    auth: AuthPrincipal | None = None
    app: AppPrincipal | None = None
    instance_id_token: str | None = None


@dataclass(frozen=True, slots=True)
class CallableRequest(Generic[T]):
    """Single-argument view of a callable invocation: context plus ``data``."""

    data: T
    raw_request: Any
    auth: AuthPrincipal | None = None
    app: AppPrincipal | None = None
    instance_id_token: str | None = None
    accepts_streaming: bool = False

    @classmethod
    def from_context(
        cls,
        context: CallableContext,
        data: T,
        *,
        accepts_streaming: bool = False,
    ) -> CallableRequest[T]:
        return cls(
            data=data,
            raw_request=context.raw_request,
            auth=context.auth,
            app=context.app,
            instance_id_token=context.instance_id_token,
            accepts_streaming=accepts_streaming,
        )


@dataclass(frozen=True, slots=True)
class TaskContext:
    """Metadata for a task-dispatch invocation.

    Numeric fields are ``None`` when the platform did not send the
    corresponding header, so a handler can tell "first attempt" (``0``)
    apart from "unknown".

    Attributes:
        raw_request: The underlying HTTP request object.
        auth: Principal parsed from the queue's bearer token.
        queue_name: Name of the dispatching queue.
        id: Short task name.
        retry_count: Zero-based count of retries so far.
        execution_count: Zero-based count of attempts that got a response.
        scheduled_time: RFC 3339 time the task was scheduled for.
        previous_response: HTTP status of the previous attempt.
        retry_reason: Platform-supplied reason for this retry.
        headers: Snapshot of all request headers (lowercase names).
    """

    raw_request: Any
    auth: AuthPrincipal | None = None
    queue_name: str | None = None
    id: str | None = None
    retry_count: int | None = None
    execution_count: int | None = None
    scheduled_time: str | None = None
    previous_response: int | None = None
    retry_reason: str | None = None
    headers: Mapping[str, str] = field(default_factory=lambda: _readonly(None))

    def __post_init__(self) -> None:
        if not isinstance(self.headers, MappingProxyType):
            object.__setattr__(self, "headers", _readonly(self.headers))


@dataclass(frozen=True, slots=True)
class TaskRequest(Generic[T]):
    """Single-argument view of a task-dispatch invocation: context plus ``data``."""

    data: T
    raw_request: Any
    auth: AuthPrincipal | None = None
    queue_name: str | None = None
    id: str | None = None
    retry_count: int | None = None
    execution_count: int | None = None
    scheduled_time: str | None = None
    previous_response: int | None = None
    retry_reason: str | None = None
    headers: Mapping[str, str] = field(default_factory=lambda: _readonly(None))

    @classmethod
    def from_context(cls, context: TaskContext, data: T) -> TaskRequest[T]:
        values = {f.name: getattr(context, f.name) for f in fields(context)}
        return cls(data=data, **values)
