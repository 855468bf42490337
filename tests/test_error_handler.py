"""Tests for endpoint error classification and wrapping."""

from types import SimpleNamespace

import pytest

from replyhub.infra.error_handler import (
    EndpointError,
    ErrorCategory,
    classify_error,
    wrap_llm_error,
)


def _status_error(status_code, message="error"):
    error = Exception(message)
    error.status_code = status_code
    return error


class TestClassifyError:
    """Test error classification."""

    @pytest.mark.parametrize("status_code, category", [
        (429, ErrorCategory.RATE_LIMIT),
        (401, ErrorCategory.AUTH_ERROR),
        (403, ErrorCategory.AUTH_ERROR),
        (408, ErrorCategory.TIMEOUT),
        (500, ErrorCategory.API_ERROR),
        (503, ErrorCategory.API_ERROR),
    ])
    def test_status_codes(self, status_code, category):
        assert classify_error(_status_error(status_code)) == (category, status_code)

    def test_timeout(self):
        assert classify_error(TimeoutError("slow")) == (ErrorCategory.TIMEOUT, None)
        assert classify_error(Exception("Request timed out")) == (ErrorCategory.TIMEOUT, None)

    def test_connection(self):
        assert classify_error(ConnectionError("reset")) == (ErrorCategory.NETWORK, None)
        assert classify_error(Exception("Connection refused")) == (ErrorCategory.NETWORK, None)

    def test_message_keywords(self):
        assert classify_error(Exception("Rate limit exceeded"))[0] == ErrorCategory.RATE_LIMIT
        assert classify_error(Exception("Unauthorized"))[0] == ErrorCategory.AUTH_ERROR

    def test_unknown(self):
        assert classify_error(ValueError("odd")) == (ErrorCategory.UNKNOWN, None)

    def test_endpoint_error_passes_through(self):
        error = EndpointError("x", category=ErrorCategory.NETWORK, status_code=502)
        assert classify_error(error) == (ErrorCategory.NETWORK, 502)


class TestWrapLLMError:
    """Test LLM error wrapping."""

    def test_wrap_includes_provider_and_status(self):
        wrapped = wrap_llm_error(_status_error(500, "boom"), "openai")

        assert isinstance(wrapped, EndpointError)
        assert wrapped.category == ErrorCategory.API_ERROR
        assert wrapped.status_code == 500
        assert wrapped.message == "openai api_error (500): boom"
        assert wrapped.retry_after is None

    def test_retry_after_from_headers(self):
        error = _status_error(429, "Too many requests")
        error.response = SimpleNamespace(headers={"retry-after": "12"})

        wrapped = wrap_llm_error(error, "openai")

        assert wrapped.category == ErrorCategory.RATE_LIMIT
        assert wrapped.retry_after == 12.0

    def test_retry_after_from_message(self):
        wrapped = wrap_llm_error(Exception("rate limit hit, retry-after: 30"), "openai")
        assert wrapped.retry_after == 30.0

    def test_already_wrapped(self):
        error = EndpointError("x")
        assert wrap_llm_error(error, "openai") is error
