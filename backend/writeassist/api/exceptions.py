"""Custom exception classes for the API."""

from typing import Optional


class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AiUnavailableError(Exception):
    """Raised when an AI request produced no result."""

    def __init__(self, category: str, detail: Optional[str] = None, disabled: bool = False):
        self.category = category
        self.detail = detail
        self.disabled = disabled
        if disabled:
            message = f"AI support for {category} is disabled"
        else:
            message = detail or f"AI {category} request failed"
        super().__init__(message)
