"""``{data, error}`` envelope shared by every AI endpoint and error handler."""

from typing import Any

from pydantic import BaseModel


def success_response(data: Any) -> dict[str, Any]:
    """Wrap a result (a plain value or a response model) as ``data``."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return {"data": data, "error": None}


def error_response(code: str, message: str) -> dict[str, Any]:
    """Wrap a failure code and its user-facing message as ``error``."""
    return {"data": None, "error": {"code": code, "message": message}}
