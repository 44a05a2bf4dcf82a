"""Tests for task-queue trigger configuration and the reset sentinel."""

from __future__ import annotations

import json
import pickle

import pytest

from ianua.foundation.domain.trigger import (
    RESET_VALUE,
    RateLimits,
    ResetValue,
    RetryConfig,
    TaskQueueTrigger,
    convert_invoker,
)


@pytest.mark.unit
class TestResetValue:
    def test_singleton(self) -> None:
        assert ResetValue() is RESET_VALUE

    def test_survives_pickling(self) -> None:
        assert pickle.loads(pickle.dumps(RESET_VALUE)) is RESET_VALUE


@pytest.mark.unit
class TestRetryConfig:
    def test_unset_fields_are_omitted(self) -> None:
        assert RetryConfig().to_manifest() == {}

    def test_camel_case_keys(self) -> None:
        config = RetryConfig(max_attempts=5, max_retry_seconds=60, max_doublings=2)
        assert config.to_manifest() == {
            "maxAttempts": 5,
            "maxRetrySeconds": 60,
            "maxDoublings": 2,
        }

    def test_reset_is_emitted_as_null(self) -> None:
        config = RetryConfig(max_attempts=RESET_VALUE, min_backoff_seconds=1)
        manifest = config.to_manifest()
        assert manifest == {"maxAttempts": None, "minBackoffSeconds": 1}
        assert json.dumps(manifest) == '{"maxAttempts": null, "minBackoffSeconds": 1}'

    def test_negative_value_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            RetryConfig(max_attempts=-1)

    def test_non_number_rejected(self) -> None:
        with pytest.raises(TypeError):
            RetryConfig(max_attempts="3")  # type: ignore[arg-type]


@pytest.mark.unit
class TestRateLimits:
    def test_manifest(self) -> None:
        limits = RateLimits(max_concurrent_dispatches=10, max_dispatches_per_second=RESET_VALUE)
        assert limits.to_manifest() == {
            "maxConcurrentDispatches": 10,
            "maxDispatchesPerSecond": None,
        }


@pytest.mark.unit
class TestConvertInvoker:
    def test_string_becomes_list(self) -> None:
        assert convert_invoker("private") == ["private"]

    def test_list_of_service_accounts(self) -> None:
        accounts = ["a@example.iam.gserviceaccount.com", "b@example.iam.gserviceaccount.com"]
        assert convert_invoker(accounts) == accounts

    def test_empty_list_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-empty array"):
            convert_invoker([])

    def test_empty_string_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-empty string"):
            convert_invoker("")

    @pytest.mark.parametrize("keyword", ["public", "private"])
    def test_keyword_mixed_with_accounts_rejected(self, keyword: str) -> None:
        with pytest.raises(ValueError, match="Cannot have"):
            convert_invoker([keyword, "svc@example.iam.gserviceaccount.com"])


@pytest.mark.unit
class TestTaskQueueTrigger:
    def test_empty_trigger(self) -> None:
        assert TaskQueueTrigger().to_manifest() == {"retryConfig": {}, "rateLimits": {}}

    def test_full_trigger(self) -> None:
        trigger = TaskQueueTrigger(
            retry_config=RetryConfig(max_attempts=5),
            rate_limits=RateLimits(max_concurrent_dispatches=2),
            invoker=("private",),
            retry=False,
        )
        assert trigger.to_manifest() == {
            "retryConfig": {"maxAttempts": 5},
            "rateLimits": {"maxConcurrentDispatches": 2},
            "invoker": ["private"],
            "retry": False,
        }
