"""Structural validation of function requests.

A request is accepted only if it is a POST with a JSON content type whose
body is an object holding exactly one top-level ``data`` field. Rejections
are logged with their reason but reported to the client as a generic
"Bad Request".
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"
PAYLOAD_FIELD = "data"


@dataclass(frozen=True, slots=True)
class ValidatedBody:
    """The still-encoded ``data`` field of an accepted request."""

    payload: Any


def media_type(content_type: str | None) -> str:
    """Lower-cased media type with any parameters (e.g. charset) removed."""
    value = (content_type or "").lower()
    return value.split(";", 1)[0].strip()


def _reject(reason: str, **extra: Any) -> None:
    logger.warning("invalid_request", extra={"reason": reason, **extra})


def validate_request(
    method: str,
    headers: Mapping[str, str],
    body: bytes,
) -> ValidatedBody | None:
    """Validate a raw function request.

    Args:
        method: HTTP method.
        headers: Request headers (case-insensitive mapping).
        body: Raw request body.

    Returns:
        The validated body, or None if any check failed.
    """
    if not body:
        _reject("missing_body")
        return None

    if method != "POST":
        _reject("invalid_method", method=method)
        return None

    content_type = media_type(headers.get("content-type"))
    if content_type != JSON_MEDIA_TYPE:
        _reject("invalid_content_type", content_type=content_type)
        return None

    try:
        parsed = json.loads(body)
    except ValueError:
        _reject("malformed_json")
        return None

    if not isinstance(parsed, dict) or PAYLOAD_FIELD not in parsed:
        _reject("missing_data")
        return None

    extra_keys = sorted(k for k in parsed if k != PAYLOAD_FIELD)
    if extra_keys:
        _reject("extra_fields", fields=extra_keys)
        return None

    return ValidatedBody(payload=parsed[PAYLOAD_FIELD])
