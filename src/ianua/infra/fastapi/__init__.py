"""Ianua Infra FastAPI -- function invokers, CORS, error handlers, app factory."""

from ianua.infra.fastapi.app_factory import create_app
from ianua.infra.fastapi.callable import (
    CallableFunction,
    CallableOptions,
    CallableProxyResponse,
    HandlerShape,
    on_call,
    on_call_legacy,
    on_call_streaming,
)
from ianua.infra.fastapi.cors import CorsPolicy, with_cors
from ianua.infra.fastapi.error_handlers import error_response, register_exception_handlers
from ianua.infra.fastapi.request_validation import ValidatedBody, validate_request
from ianua.infra.fastapi.settings import AppSettings, CORSSettings
from ianua.infra.fastapi.tasks import (
    TaskHandlerShape,
    TaskQueueFunction,
    TaskQueueOptions,
    on_task_dispatched,
    on_task_dispatched_legacy,
)
from ianua.infra.fastapi.writer import HeadersAlreadySentError, ResponseWriter

__all__ = [
    "AppSettings",
    "CORSSettings",
    "CallableFunction",
    "CallableOptions",
    "CallableProxyResponse",
    "CorsPolicy",
    "HandlerShape",
    "HeadersAlreadySentError",
    "ResponseWriter",
    "TaskHandlerShape",
    "TaskQueueFunction",
    "TaskQueueOptions",
    "ValidatedBody",
    "create_app",
    "error_response",
    "on_call",
    "on_call_legacy",
    "on_call_streaming",
    "on_task_dispatched",
    "on_task_dispatched_legacy",
    "register_exception_handlers",
    "validate_request",
    "with_cors",
]
