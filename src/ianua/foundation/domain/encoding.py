"""Extended-JSON wire codec for function payloads and results.

Plain JSON values pass through unchanged. Integers that a double cannot
represent exactly are carried as a tagged wrapper object holding the decimal
string, so both sides can round-trip 64-bit values::

    {"@type": "type.googleapis.com/google.protobuf.Int64Value", "value": "9007199254740993"}

``encode`` never raises: values with no JSON representation become ``{}``.
``decode`` raises :class:`DecodeError` for wrappers it cannot interpret.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from collections.abc import Mapping
from typing import Any

from ianua.foundation.domain.exceptions import DecodeError

logger = logging.getLogger(__name__)

LONG_TYPE = "type.googleapis.com/google.protobuf.Int64Value"
UNSIGNED_LONG_TYPE = "type.googleapis.com/google.protobuf.UInt64Value"

MAX_SAFE_INTEGER = 2**53 - 1

_TYPE_KEY = "@type"


def encode(data: Any) -> Any:
    """Encode a native value into its wire representation.

    Args:
        data: Any Python value.

    Returns:
        A JSON-serializable value. Unencodable values become ``{}``.
    """
    if data is None:
        return None
    # bool is a subclass of int; keep it out of the integer branch.
    if isinstance(data, bool):
        return data
    if isinstance(data, int):
        if -MAX_SAFE_INTEGER <= data <= MAX_SAFE_INTEGER:
            return data
        return {_TYPE_KEY: LONG_TYPE, "value": str(data)}
    if isinstance(data, float):
        if math.isfinite(data):
            return data
        logger.debug("wire_encode_non_finite", extra={"value": repr(data)})
        return {}
    if isinstance(data, str):
        return data
    if isinstance(data, (list, tuple)):
        return [encode(item) for item in data]
    if isinstance(data, Mapping):
        return {str(key): encode(value) for key, value in data.items()}
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return {
            field.name: encode(getattr(data, field.name)) for field in dataclasses.fields(data)
        }
    logger.debug("wire_encode_unsupported", extra={"value_type": type(data).__name__})
    return {}


def decode(data: Any) -> Any:
    """Decode a wire value into native Python types.

    Args:
        data: A value parsed from JSON.

    Returns:
        The native value with tagged 64-bit wrappers unwrapped to numbers.

    Raises:
        DecodeError: If a tagged wrapper has an unknown type or a value that
            is not a number.
    """
    if data is None:
        return None
    if isinstance(data, dict) and data.get(_TYPE_KEY):
        return _decode_tagged(data)
    if isinstance(data, list):
        return [decode(item) for item in data]
    if isinstance(data, dict):
        return {key: decode(value) for key, value in data.items()}
    return data


def _decode_tagged(data: dict[str, Any]) -> int | float:
    type_tag = data[_TYPE_KEY]
    if type_tag not in (LONG_TYPE, UNSIGNED_LONG_TYPE):
        logger.error("wire_decode_unknown_type", extra={"type_tag": str(type_tag)})
        raise DecodeError(f"Data cannot be decoded from JSON: {data!r}")

    raw = str(data.get("value", "")).strip()
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        value = float(raw)
    except ValueError:
        value = math.nan
    if math.isnan(value):
        logger.error("wire_decode_invalid_number", extra={"value": raw})
        raise DecodeError(f"Data cannot be decoded from JSON: {data!r}")
    return value
