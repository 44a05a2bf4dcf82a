"""Tests for the error-code table and HttpsError."""

from __future__ import annotations

import pytest

from ianua.foundation.domain.exceptions import ErrorCode, HttpsError
from ianua.foundation.domain.result import InvocationResult


@pytest.mark.unit
class TestErrorCode:
    @pytest.mark.parametrize(
        ("code", "name", "status"),
        [
            ("ok", "OK", 200),
            ("cancelled", "CANCELLED", 499),
            ("invalid-argument", "INVALID_ARGUMENT", 400),
            ("deadline-exceeded", "DEADLINE_EXCEEDED", 504),
            ("not-found", "NOT_FOUND", 404),
            ("already-exists", "ALREADY_EXISTS", 409),
            ("permission-denied", "PERMISSION_DENIED", 403),
            ("unauthenticated", "UNAUTHENTICATED", 401),
            ("resource-exhausted", "RESOURCE_EXHAUSTED", 429),
            ("failed-precondition", "FAILED_PRECONDITION", 400),
            ("aborted", "ABORTED", 409),
            ("out-of-range", "OUT_OF_RANGE", 400),
            ("unimplemented", "UNIMPLEMENTED", 501),
            ("internal", "INTERNAL", 500),
            ("unavailable", "UNAVAILABLE", 503),
            ("data-loss", "DATA_LOSS", 500),
            ("unknown", "UNKNOWN", 500),
        ],
    )
    def test_code_table(self, code: str, name: str, status: int) -> None:
        assert ErrorCode(code).canonical_name == name
        assert ErrorCode(code).http_status == status

    def test_code_set_is_closed(self) -> None:
        assert len(ErrorCode) == 17


@pytest.mark.unit
class TestHttpsError:
    def test_wire_body_without_details(self) -> None:
        err = HttpsError("not-found", "i am error")
        assert err.http_status == 404
        assert err.to_wire() == {"message": "i am error", "status": "NOT_FOUND"}

    def test_wire_body_with_details(self) -> None:
        err = HttpsError(ErrorCode.FAILED_PRECONDITION, "nope", details={"field": "x"})
        assert err.to_wire() == {
            "details": {"field": "x"},
            "message": "nope",
            "status": "FAILED_PRECONDITION",
        }

    def test_falsy_details_are_kept(self) -> None:
        assert HttpsError("aborted", "m", details=0).to_wire()["details"] == 0

    def test_unknown_code_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown error code"):
            HttpsError("teapot", "short and stout")

    def test_str_is_the_message(self) -> None:
        assert str(HttpsError("internal", "boom")) == "boom"

    def test_repr(self) -> None:
        assert repr(HttpsError("internal", "boom")) == "HttpsError('internal', 'boom')"


@pytest.mark.unit
class TestInvocationResult:
    def test_success(self) -> None:
        result = InvocationResult.success({"a": 1})
        assert result.ok
        assert result.value == {"a": 1}

    def test_success_with_none_value(self) -> None:
        assert InvocationResult.success(None).ok

    def test_rejected_builds_error(self) -> None:
        result = InvocationResult.rejected("invalid-argument", "bad")
        assert not result.ok
        assert result.error is not None
        assert result.error.http_status == 400
