"""Unit tests for ianua.infra.observability.trace."""

from __future__ import annotations

from typing import Any

import pytest
import structlog
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from ianua.foundation.application.contributions import MiddlewareContribution
from ianua.infra.observability.trace import (
    TRACE_LOG_FIELD,
    TraceContextMiddleware,
    TraceParent,
    contribution,
    extract_trace_parent,
    trace_reference,
)

TRACE_ID = "105445aa7843bc8bf206b12000100000"


def _context_app() -> Starlette:
    async def context(request: Request) -> JSONResponse:
        return JSONResponse(dict(structlog.contextvars.get_contextvars()))

    app = Starlette(routes=[Route("/ctx", context)])
    app.add_middleware(TraceContextMiddleware)
    return app


class TestExtractTraceParent:
    @pytest.mark.unit
    def test_cloud_trace_header(self) -> None:
        parent = extract_trace_parent({"x-cloud-trace-context": f"{TRACE_ID}/1;o=1"})
        assert parent == TraceParent(trace_id=TRACE_ID, span_id="0000000000000001", sampled=True)

    @pytest.mark.unit
    def test_cloud_trace_without_options_is_unsampled(self) -> None:
        parent = extract_trace_parent({"x-cloud-trace-context": f"{TRACE_ID}/255"})
        assert parent is not None
        assert parent.span_id == "00000000000000ff"
        assert parent.sampled is False

    @pytest.mark.unit
    def test_traceparent_header(self) -> None:
        headers = {"traceparent": f"00-{TRACE_ID}-00f067aa0ba902b7-01"}
        parent = extract_trace_parent(headers)
        assert parent == TraceParent(trace_id=TRACE_ID, span_id="00f067aa0ba902b7", sampled=True)

    @pytest.mark.unit
    def test_cloud_header_preferred(self) -> None:
        other = "4bf92f3577b34da6a3ce929d0e0e4736"
        headers = {
            "x-cloud-trace-context": f"{TRACE_ID}/1;o=0",
            "traceparent": f"00-{other}-00f067aa0ba902b7-01",
        }
        parent = extract_trace_parent(headers)
        assert parent is not None
        assert parent.trace_id == TRACE_ID

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"x-cloud-trace-context": "not-a-trace"},
            {"traceparent": "00-00000000000000000000000000000000-00f067aa0ba902b7-01"},
        ],
    )
    def test_invalid_or_missing(self, headers: dict[str, str]) -> None:
        assert extract_trace_parent(headers) is None


class TestTraceReference:
    @pytest.mark.unit
    def test_with_project(self) -> None:
        assert trace_reference(TRACE_ID, "demo") == f"projects/demo/traces/{TRACE_ID}"

    @pytest.mark.unit
    def test_without_project(self) -> None:
        assert trace_reference(TRACE_ID, "") == TRACE_ID


class TestTraceContextMiddleware:
    @pytest.mark.unit
    def test_binds_trace_fields_during_request(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "demo-project")
        client = TestClient(_context_app())
        resp = client.get("/ctx", headers={"X-Cloud-Trace-Context": f"{TRACE_ID}/1;o=1"})
        body: dict[str, Any] = resp.json()
        assert body["trace_id"] == TRACE_ID
        assert body["span_id"] == "0000000000000001"
        assert body["trace_sampled"] is True
        assert body[TRACE_LOG_FIELD] == f"projects/demo-project/traces/{TRACE_ID}"

    @pytest.mark.unit
    def test_no_headers_binds_nothing(self) -> None:
        client = TestClient(_context_app())
        assert client.get("/ctx").json() == {}

    @pytest.mark.unit
    def test_unbinds_after_request(self) -> None:
        client = TestClient(_context_app())
        client.get("/ctx", headers={"X-Cloud-Trace-Context": f"{TRACE_ID}/1"})
        assert "trace_id" not in structlog.contextvars.get_contextvars()


class TestContribution:
    @pytest.mark.unit
    def test_contribution(self) -> None:
        assert isinstance(contribution, MiddlewareContribution)
        assert contribution.middleware_class is TraceContextMiddleware
        assert contribution.priority == 5
