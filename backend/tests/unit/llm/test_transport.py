"""Unit tests for the HTTP transport.

Tests cover:
- Headers and JSON payload
- Retry on connection errors, no retry on HTTP errors
- Status code to error mapping
- URL validation
"""

import json

import httpx
import pytest

from writeassist.llm.errors import (
    BackendHTTPError,
    BackendUnreachableError,
    MalformedConfigurationError,
    TransientNetworkError,
)
from writeassist.llm.transport import HttpTransport, validate_url

URL = "http://ai.test/v1/chat/completions"


def transport_for(handler, max_retries=3) -> HttpTransport:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpTransport(max_retries=max_retries, base_delay=0, client=client)


class TestValidateUrl:
    """Tests for backend URL validation."""

    def test_accepts_http(self):
        """Test absolute http URLs parse."""
        assert validate_url("http://localhost:8080/v1/edits").host == "localhost"

    @pytest.mark.parametrize("url", ["not a url", "ftp://host/path", "/v1/chat/completions", ""])
    def test_rejects_unusable(self, url):
        """Test relative and non-http URLs fail fast."""
        with pytest.raises(MalformedConfigurationError):
            validate_url(url)


class TestPostJson:
    """Tests for successful posts."""

    def test_sends_headers_and_body(self):
        """Test the API key goes into Authorization as-is."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["type"] = request.headers["Content-Type"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        response = transport_for(handler).post_json(URL, "secret", {"model": "m", "text": "Grüße"})
        assert response.status_code == 200
        assert seen["auth"] == "secret"
        assert seen["type"] == "application/json"
        assert seen["body"] == {"model": "m", "text": "Grüße"}

    def test_retries_connection_errors(self):
        """Test a transient failure is retried until it succeeds."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={})

        response = transport_for(handler, max_retries=3).post_json(URL, "k", {})
        assert response.status_code == 200
        assert len(calls) == 3

    def test_gives_up_after_max_retries(self):
        """Test exhausted retries raise a transient error."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TransientNetworkError) as exc_info:
            transport_for(handler, max_retries=4).post_json(URL, "k", {}, request_id=9, category="text")
        assert len(calls) == 4
        assert exc_info.value.attempts == 4
        assert exc_info.value.request_id == 9


class TestStatusMapping:
    """Tests for non-200 responses."""

    def test_404_is_unreachable(self):
        """Test 404 maps to the breaker-tripping error, without retry."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, text="not found")

        with pytest.raises(BackendUnreachableError):
            transport_for(handler).post_json(URL, "k", {})
        assert len(calls) == 1

    def test_500_carries_backend_message(self):
        """Test the JSON error message is surfaced."""

        def handler(request):
            return httpx.Response(500, json={"error": {"message": "model crashed"}})

        with pytest.raises(BackendHTTPError) as exc_info:
            transport_for(handler).post_json(URL, "k", {})
        assert exc_info.value.status_code == 500
        assert "model crashed" in str(exc_info.value)

    def test_non_json_error_body(self):
        """Test plain text error bodies are kept as the message."""

        def handler(request):
            return httpx.Response(401, text="bad key")

        with pytest.raises(BackendHTTPError, match="bad key"):
            transport_for(handler).post_json(URL, "k", {})

    def test_malformed_url_not_retried(self):
        """Test a malformed URL fails before any request."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        with pytest.raises(MalformedConfigurationError):
            transport_for(handler).post_json("localhost:8080", "k", {})
        assert calls == []


class TestBackoff:
    """Tests for backoff timing."""

    def test_zero_base_delay(self):
        assert HttpTransport(base_delay=0)._calculate_backoff(3) == 0.0

    def test_exponential_with_cap(self):
        transport = HttpTransport(base_delay=1.0)
        assert 0.75 <= transport._calculate_backoff(1) <= 1.25
        assert 3.0 <= transport._calculate_backoff(3) <= 5.0
        assert transport._calculate_backoff(10) == HttpTransport.DEFAULT_MAX_DELAY
