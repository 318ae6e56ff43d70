"""AI backend error hierarchy.

Custom exceptions for backend requests with request context.
Used for retry decisions, the circuit breaker and user-facing messages.
"""


class AiError(Exception):
    """Base exception for AI backend operations."""

    def __init__(
        self,
        message: str,
        category: str | None = None,
        url: str | None = None,
        request_id: int | None = None,
    ):
        super().__init__(message)
        self.category = category
        self.url = url
        self.request_id = request_id

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.category:
            parts.append(f"category={self.category}")
        if self.url:
            parts.append(f"url={self.url}")
        if self.request_id:
            parts.append(f"request_id={self.request_id}")
        return " ".join(parts)


class TransientNetworkError(AiError):
    """Connection refused, reset or timed out.

    Retryable with backoff inside the HTTP step. Once the retry bound is
    exhausted the category's breaker fires.
    """

    def __init__(
        self,
        message: str,
        attempts: int = 1,
        category: str | None = None,
        url: str | None = None,
        request_id: int | None = None,
    ):
        super().__init__(message, category, url, request_id)
        self.attempts = attempts


class MalformedConfigurationError(AiError):
    """Backend URL cannot be used.

    Fatal. Trips the breaker immediately, no retry.
    """

    pass


class BackendUnreachableError(AiError):
    """404 - endpoint does not exist on the configured host.

    Treated like an unreachable backend: trips the breaker.
    """

    pass


class BackendHTTPError(AiError):
    """Non-200 response other than 404.

    Surfaced to the user, does not disable the feature.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        category: str | None = None,
        url: str | None = None,
        request_id: int | None = None,
    ):
        super().__init__(message, category, url, request_id)
        self.status_code = status_code


class BackendProtocolError(AiError):
    """Response body has an unexpected JSON shape.

    Not retried (the response already arrived). Logged, result is null.
    """

    pass


class BackendReportedError(AiError):
    """Response body carries an ``error`` field.

    Shown to the user, does not disable the feature.
    """

    pass


class WatchdogTimeoutError(AiError):
    """Request exceeded the wall-clock ceiling of the worker watchdog.

    The HTTP call is abandoned; its eventual response is discarded.
    """

    pass


class StoreAccessError(AiError):
    """Paragraph accessor failed while planning a batch.

    The caller skips the paragraph instead of retrying.
    """

    pass


class DuplicateSubmissionError(AiError):
    """A request entry that already carries an id was submitted again.

    Programming error, raised synchronously to the caller.
    """

    pass


# Error classification for retry and breaker logic
RETRYABLE_ERRORS = (TransientNetworkError,)
BREAKER_ERRORS = (MalformedConfigurationError, BackendUnreachableError, TransientNetworkError)
USER_VISIBLE_ERRORS = (BackendReportedError, BackendHTTPError)
