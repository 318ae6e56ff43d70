"""AI backend layer.

Wire dialects, response parsing, output normalization and HTTP transport
for a single configurable backend per request category.
"""

from .errors import (
    AiError,
    BackendHTTPError,
    BackendProtocolError,
    BackendReportedError,
    BackendUnreachableError,
    DuplicateSubmissionError,
    MalformedConfigurationError,
    StoreAccessError,
    TransientNetworkError,
    WatchdogTimeoutError,
)
from .models import BackendConfig, Dialect, RequestCategory, RequestEntry, dialect_for_url
from .normalizer import normalize_output
from .protocol import build_request, parse_response
from .transport import HttpTransport

__all__ = [
    "AiError",
    "BackendHTTPError",
    "BackendProtocolError",
    "BackendReportedError",
    "BackendUnreachableError",
    "DuplicateSubmissionError",
    "MalformedConfigurationError",
    "StoreAccessError",
    "TransientNetworkError",
    "WatchdogTimeoutError",
    "BackendConfig",
    "Dialect",
    "RequestCategory",
    "RequestEntry",
    "dialect_for_url",
    "normalize_output",
    "build_request",
    "parse_response",
    "HttpTransport",
]
