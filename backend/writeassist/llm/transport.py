"""HTTP transport with bounded retry.

Posts JSON bodies to a backend and maps transport failures onto the AI
error hierarchy. Retries live entirely here; callers above never retry.

Configuration (env vars):
- AI_MAX_RETRIES: Attempts per request (default: 5)
- AI_HTTP_TIMEOUT_SECONDS: Per-attempt HTTP timeout (default: 60)
"""

from __future__ import annotations

import json
import logging
import os
import random
import time
from typing import Any

import httpx

from .errors import (
    BackendHTTPError,
    BackendUnreachableError,
    MalformedConfigurationError,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)


def debug_enabled() -> bool:
    """Whether failures are logged with stack traces (``AI_DEBUG``)."""
    return os.environ.get("AI_DEBUG", "").lower() in ("1", "true", "yes", "on")


def validate_url(url: str) -> httpx.URL:
    """Parse a backend URL, failing fast on anything unusable.

    Raises:
        MalformedConfigurationError: Not an absolute http(s) URL.
    """
    try:
        parsed = httpx.URL(url.strip())
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise MalformedConfigurationError(f"Invalid backend URL: {e}", url=url) from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise MalformedConfigurationError("Backend URL must be an absolute http(s) URL", url=url)
    return parsed


class HttpTransport:
    """Synchronous JSON POST client with bounded retry and backoff.

    Only connection-level failures are retried. Any HTTP response, even an
    error page, is final for that request.
    """

    DEFAULT_MAX_RETRIES = 5
    DEFAULT_TIMEOUT = 60.0
    DEFAULT_BASE_DELAY = 0.5  # Base delay for exponential backoff
    DEFAULT_MAX_DELAY = 8.0  # Maximum delay between attempts

    def __init__(
        self,
        max_retries: int | None = None,
        timeout: float | None = None,
        base_delay: float | None = None,
        client: httpx.Client | None = None,
    ):
        """Initialize the transport.

        Args:
            max_retries: Total attempts per request. Defaults to AI_MAX_RETRIES env var.
            timeout: Per-attempt timeout in seconds. Defaults to AI_HTTP_TIMEOUT_SECONDS env var.
            base_delay: Backoff base in seconds; 0 disables waiting between attempts.
            client: Preconfigured httpx client (tests pass one with a mock transport).
        """
        self._max_retries = (
            max_retries
            if max_retries is not None
            else int(os.environ.get("AI_MAX_RETRIES", self.DEFAULT_MAX_RETRIES))
        )
        self._timeout = (
            timeout
            if timeout is not None
            else float(os.environ.get("AI_HTTP_TIMEOUT_SECONDS", self.DEFAULT_TIMEOUT))
        )
        self._base_delay = base_delay if base_delay is not None else self.DEFAULT_BASE_DELAY
        self._client = client

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialized httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout, follow_redirects=False)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def post_json(
        self,
        url: str,
        api_key: str,
        body: dict[str, Any],
        request_id: int | None = None,
        category: str | None = None,
    ) -> httpx.Response:
        """POST a JSON body and return the HTTP 200 response.

        Raises:
            MalformedConfigurationError: URL cannot be used (no retry).
            TransientNetworkError: Connection failed on every attempt.
            BackendUnreachableError: HTTP 404.
            BackendHTTPError: Any other non-200 status.
        """
        target = validate_url(url)
        payload = json.dumps(body, ensure_ascii=False).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "charset": "utf-8",
            "Authorization": api_key,
        }
        context = {"request_id": request_id, "category": category, "url": url}
        last_error: Exception | None = None

        for attempt in range(1, self._max_retries + 1):
            try:
                logger.debug(
                    "Posting AI request (attempt %d/%d)",
                    attempt,
                    self._max_retries,
                    extra={**context, "attempt": attempt},
                )
                response = self.client.post(target, content=payload, headers=headers)
            except httpx.UnsupportedProtocol as e:
                raise MalformedConfigurationError(
                    f"Unsupported protocol: {e}", category=category, url=url, request_id=request_id
                ) from e
            except (httpx.NetworkError, httpx.TimeoutException) as e:
                last_error = e
                logger.warning(
                    "Connection error on attempt %d/%d: %s",
                    attempt,
                    self._max_retries,
                    str(e),
                    extra={**context, "attempt": attempt, "error_type": type(e).__name__},
                )
                if attempt < self._max_retries:
                    time.sleep(self._calculate_backoff(attempt))
                continue

            if response.status_code == 200:
                return response
            self._raise_for_status(response, payload, context)

        logger.error("Could not connect to server at: %s", url, extra=context)
        raise TransientNetworkError(
            f"Connection failed after {self._max_retries} attempts: {last_error}",
            attempts=self._max_retries,
            category=category,
            url=url,
            request_id=request_id,
        ) from last_error

    def _raise_for_status(self, response: httpx.Response, payload: bytes, context: dict) -> None:
        """Log a non-200 response and convert it to an AiError."""
        error_body = response.text
        logger.error(
            "Got error: %s - HTTP response code %d",
            error_body,
            response.status_code,
            extra={**context, "status_code": response.status_code},
        )
        logger.error("Request body: %s", payload.decode("utf-8", errors="replace"), extra=context)

        if response.status_code == 404:
            raise BackendUnreachableError(
                f"Backend endpoint not found (404): {error_body}",
                category=context["category"],
                url=context["url"],
                request_id=context["request_id"],
            )

        message = error_body
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and "error" in data:
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)

        raise BackendHTTPError(
            f"Backend error ({response.status_code}): {message}",
            status_code=response.status_code,
            category=context["category"],
            url=context["url"],
            request_id=context["request_id"],
        )

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with ±25% jitter, capped at DEFAULT_MAX_DELAY.

        Args:
            attempt: Attempt that just failed (1-based).
        """
        if self._base_delay <= 0:
            return 0.0
        base_delay = self._base_delay * (2 ** (attempt - 1))
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return min(base_delay + jitter, self.DEFAULT_MAX_DELAY)
