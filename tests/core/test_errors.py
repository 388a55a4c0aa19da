"""Tests for the taproom error hierarchy."""

from __future__ import annotations

import pytest

from taproom.core.errors import (
    ConfigError,
    ErrorCategory,
    ExhaustedRetriesError,
    MalformedResponseError,
    RateLimitError,
    StoreWriteError,
    TaproomError,
    TransientError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
    categorize_error,
    get_retry_after,
    is_retryable,
)


class TestErrorDefaults:
    @pytest.mark.parametrize(
        "error_cls, category, retryable",
        [
            (TransientError, ErrorCategory.NETWORK, True),
            (UpstreamError, ErrorCategory.UPSTREAM, True),
            (UpstreamTimeoutError, ErrorCategory.NETWORK, True),
            (MalformedResponseError, ErrorCategory.PARSE, True),
            (StoreWriteError, ErrorCategory.STORAGE, True),
            (ValidationError, ErrorCategory.VALIDATION, False),
            (ConfigError, ErrorCategory.CONFIG, False),
        ],
    )
    def test_category_and_retryable(self, error_cls, category, retryable):
        error = error_cls("boom")
        assert error.category == category
        assert error.retryable is retryable

    def test_overrides_per_instance(self):
        error = UpstreamError("boom", retryable=False, category=ErrorCategory.INTERNAL)
        assert error.retryable is False
        assert error.category == ErrorCategory.INTERNAL

    def test_rate_limit_default_retry_after(self):
        error = RateLimitError()
        assert error.retry_after == 120
        assert isinstance(error, UpstreamError)

    def test_exhausted_retries_message(self):
        error = ExhaustedRetriesError("msg-1", 3, "upstream 503")
        assert "msg-1" in error.message
        assert "upstream 503" in error.message
        assert error.attempts == 3
        assert error.context.message_id == "msg-1"


class TestContextAndSerialization:
    def test_with_context_sets_known_and_extra_fields(self):
        error = UpstreamError("boom").with_context(service="perplexity", beer_id="77", region="us")
        assert error.context.service == "perplexity"
        assert error.context.beer_id == "77"
        assert error.context.metadata == {"region": "us"}

    def test_to_dict(self):
        cause = ValueError("bad json")
        error = MalformedResponseError("unusable body", cause=cause).with_context(service="perplexity")
        data = error.to_dict()
        assert data["error_type"] == "MalformedResponseError"
        assert data["category"] == "PARSE"
        assert data["retryable"] is True
        assert data["context"] == {"service": "perplexity"}
        assert data["cause"] == "bad json"
        assert error.__cause__ is cause

    def test_to_dict_omits_empty_parts(self):
        data = ValidationError("nope").to_dict()
        assert "context" not in data
        assert "retry_after" not in data
        assert "cause" not in data


class TestHelpers:
    def test_is_retryable(self):
        assert is_retryable(UpstreamError("x"))
        assert not is_retryable(ValidationError("x"))
        assert is_retryable(ConnectionError())
        assert not is_retryable(KeyError("x"))

    def test_get_retry_after(self):
        assert get_retry_after(RateLimitError(retry_after=30)) == 30
        assert get_retry_after(UpstreamError("x")) is None
        assert get_retry_after(RuntimeError("x")) is None

    def test_categorize_error(self):
        assert categorize_error(StoreWriteError("x")) == ErrorCategory.STORAGE
        assert categorize_error(OSError()) == ErrorCategory.NETWORK
        assert categorize_error(ValueError()) == ErrorCategory.VALIDATION
        assert categorize_error(RuntimeError()) == ErrorCategory.UNKNOWN

    def test_everything_is_a_taproom_error(self):
        for cls in (UpstreamError, StoreWriteError, ValidationError, ConfigError):
            assert issubclass(cls, TaproomError)
