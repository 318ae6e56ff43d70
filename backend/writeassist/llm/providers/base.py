"""Abstract base class for category handlers.

Defines the interface the request worker dispatches to, one handler per
request category.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..models import BackendConfig, RequestCategory, RequestEntry
from ..transport import HttpTransport


class CategoryHandler(ABC):
    """Base interface for text, image and speech handlers.

    A handler performs one synchronous backend call for a request entry.
    Failures are raised as AiError subclasses; the worker decides whether
    they trip the breaker.
    """

    def __init__(self, config: BackendConfig, transport: HttpTransport):
        self._config = config
        self._transport = transport

    @property
    @abstractmethod
    def category(self) -> RequestCategory:
        """Category served by this handler."""
        ...

    @property
    def config(self) -> BackendConfig:
        return self._config

    @abstractmethod
    def run(self, entry: RequestEntry) -> Optional[str]:
        """Execute the request and return its result.

        Args:
            entry: Request entry of this handler's category.

        Returns:
            Result text (answer, image URL or written file name), or None
            when there is nothing to send.

        Raises:
            MalformedConfigurationError: Backend URL is unusable.
            TransientNetworkError: Connection failed on every attempt.
            BackendUnreachableError: Backend answered 404.
            BackendHTTPError: Backend answered another non-200 status.
            BackendReportedError: Response body carries an error.
            BackendProtocolError: Response body has an unexpected shape.
        """
        ...
