"""Ianua Foundation Domain -- pure Python gateway primitives.

Error codes, principals, invocation contexts, the extended-JSON wire codec,
and trigger configuration. No web framework or network dependencies.
"""

from ianua.foundation.domain.context import (
    CallableContext,
    CallableRequest,
    TaskContext,
    TaskRequest,
)
from ianua.foundation.domain.encoding import (
    LONG_TYPE,
    MAX_SAFE_INTEGER,
    UNSIGNED_LONG_TYPE,
    decode,
    encode,
)
from ianua.foundation.domain.exceptions import DecodeError, ErrorCode, HttpsError
from ianua.foundation.domain.principal import (
    AppPrincipal,
    AuthPrincipal,
    TokenStatus,
    TokenVerifications,
)
from ianua.foundation.domain.result import InvocationResult
from ianua.foundation.domain.trigger import (
    RESET_VALUE,
    RateLimits,
    ResetValue,
    RetryConfig,
    TaskQueueTrigger,
    convert_invoker,
)

__all__ = [
    "LONG_TYPE",
    "MAX_SAFE_INTEGER",
    "RESET_VALUE",
    "UNSIGNED_LONG_TYPE",
    "AppPrincipal",
    "AuthPrincipal",
    "CallableContext",
    "CallableRequest",
    "DecodeError",
    "ErrorCode",
    "HttpsError",
    "InvocationResult",
    "RateLimits",
    "ResetValue",
    "RetryConfig",
    "TaskContext",
    "TaskQueueTrigger",
    "TaskRequest",
    "TokenStatus",
    "TokenVerifications",
    "convert_invoker",
    "decode",
    "encode",
]
