"""Example functions: a greeting, a streamed count, and a queued job."""

from __future__ import annotations

from typing import Any

import structlog

from ianua.foundation.domain.context import CallableRequest, TaskRequest
from ianua.foundation.domain.exceptions import HttpsError
from ianua.foundation.domain.trigger import RateLimits, RetryConfig
from ianua.infra.fastapi import (
    CallableOptions,
    CallableProxyResponse,
    TaskQueueOptions,
    on_call,
    on_call_streaming,
    on_task_dispatched,
)

logger = structlog.get_logger(__name__)

completed_jobs: list[dict[str, Any]] = []


@on_call
def greet(request: CallableRequest[dict[str, Any]]) -> dict[str, str]:
    """Greet the caller by name, or by uid when signed in."""
    data = request.data or {}
    name = data.get("name") if isinstance(data, dict) else None
    if name is None and request.auth is not None:
        name = request.auth.uid
    if not name:
        raise HttpsError("invalid-argument", "name is required")
    return {"greeting": f"Hello, {name}!"}


@on_call_streaming(options=CallableOptions(heartbeat_seconds=15))
async def count_down(request: CallableRequest[int], response: CallableProxyResponse) -> str:
    """Stream ``data`` down to one, then finish with a result."""
    start = request.data
    if not isinstance(start, int) or start < 0:
        raise HttpsError("invalid-argument", "data must be a non-negative integer")
    for n in range(start, 0, -1):
        if response.aborted:
            break
        await response.write(n)
    return "done"


@on_task_dispatched(
    options=TaskQueueOptions(
        retry_config=RetryConfig(max_attempts=5, min_backoff_seconds=10),
        rate_limits=RateLimits(max_concurrent_dispatches=2),
    )
)
async def resize_image(request: TaskRequest[dict[str, Any]]) -> None:
    """Pretend to resize an image; the queue retries on failure."""
    if not request.data or "path" not in request.data:
        raise HttpsError("invalid-argument", "path is required")
    logger.info(
        "image_resized",
        path=request.data["path"],
        queue=request.queue_name,
        retry_count=request.retry_count,
    )
    completed_jobs.append(dict(request.data))


FUNCTIONS = {
    "greet": greet,
    "countDown": count_down,
    "resizeImage": resize_image,
}
