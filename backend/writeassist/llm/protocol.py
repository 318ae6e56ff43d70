"""Wire protocol adapter.

Builds request bodies for the configured backend dialect and turns raw
response bodies back into plain text.

Supported response shapes:
- Non-streaming: one JSON object with a ``choices`` array
- Streaming: line-delimited JSON, one object per line, ending at ``done``
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .errors import BackendProtocolError, BackendReportedError
from .models import BackendConfig, Dialect, RequestCategory, RequestEntry

logger = logging.getLogger(__name__)


def fold_wire_text(text: str) -> str:
    """Fold line breaks and tabs to spaces before interpolation.

    Quotes are escaped by the JSON encoder when the body is serialized.
    """
    return text.replace("\n", "\r").replace("\r", " ").replace("\t", " ")


def _text_prompt(instruction: str, text: str | None) -> str:
    return instruction if text is None else f"{instruction}: {{{text}}}"


def build_text_body(config: BackendConfig, entry: RequestEntry) -> dict[str, Any]:
    """Serialize a text request for the configured dialect.

    ``entry.instruction`` must be set; ``entry.text`` may be None when the
    instruction alone is the prompt.
    """
    instruction = fold_wire_text(entry.instruction or "")
    text = fold_wire_text(entry.text) if entry.text is not None else None

    if config.dialect == Dialect.chat:
        body: dict[str, Any] = {
            "model": config.model,
            "stream": False,
            "language": entry.locale,
            "messages": [{"role": "user", "content": _text_prompt(instruction, text)}],
        }
        if entry.seed > 0:
            body["seed"] = entry.seed
        body["temperature"] = entry.temperature
        return body

    if config.dialect == Dialect.edits:
        return {
            "model": config.model,
            "instruction": instruction,
            "input": text or "",
            "temperature": entry.temperature,
        }

    # completions and generate share the prompt shape
    body = {
        "model": config.model,
        "prompt": _text_prompt(instruction, text),
    }
    if config.dialect == Dialect.generate:
        body["stream"] = False
    if entry.seed > 0:
        body["seed"] = entry.seed
    body["temperature"] = entry.temperature
    return body


def build_image_body(config: BackendConfig, entry: RequestEntry) -> dict[str, Any]:
    """Serialize an image generation request (independent of dialect)."""
    body: dict[str, Any] = {
        "model": config.model,
        "prompt": fold_wire_text(entry.instruction or ""),
    }
    if entry.seed > 0:
        body["seed"] = entry.seed
    body["size"] = f"{entry.width}x{entry.height}"
    body["step"] = entry.step
    return body


def build_speech_body(config: BackendConfig, entry: RequestEntry) -> dict[str, Any]:
    """Serialize a text-to-speech request (independent of dialect)."""
    return {
        "model": config.model,
        "input": fold_wire_text(entry.text or ""),
    }


def build_request(config: BackendConfig, entry: RequestEntry) -> tuple[str, dict[str, Any]]:
    """Return the target URL and JSON body for a request entry."""
    if entry.category == RequestCategory.text:
        return config.url, build_text_body(config, entry)
    if entry.category == RequestCategory.image:
        return config.url, build_image_body(config, entry)
    return config.url, build_speech_body(config, entry)


def _as_text(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def _error_message(error: Any) -> str:
    """Extract a readable message from an ``error`` field (string or object)."""
    if isinstance(error, dict):
        return str(error.get("message") or json.dumps(error))
    return str(error)


def _load_object(raw: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise BackendProtocolError(f"Response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise BackendProtocolError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def is_streaming_shape(raw: str | bytes) -> bool:
    """Sniff the response shape from its first line.

    Best effort only: a single-object response that happens to carry a
    ``message`` or ``response`` key is parsed as a one-line stream.
    """
    text = _as_text(raw).strip()
    if not text:
        return False
    first_line = text.splitlines()[0]
    try:
        first = json.loads(first_line)
    except json.JSONDecodeError:
        return False
    return isinstance(first, dict) and ("message" in first or "response" in first)


def parse_choices_response(dialect: Dialect, raw: str | bytes) -> str:
    """Parse a non-streaming ``choices`` response.

    Raises:
        BackendReportedError: The body carries an ``error`` field instead.
        BackendProtocolError: Any other unexpected shape.
    """
    data = _load_object(_as_text(raw))
    choices = data.get("choices")
    if choices is None:
        if "error" in data:
            raise BackendReportedError(_error_message(data["error"]))
        raise BackendProtocolError("Response has neither 'choices' nor 'error'")
    try:
        choice = choices[0]
        if dialect == Dialect.chat:
            content = choice["message"]["content"]
        else:
            content = choice["text"]
    except (IndexError, KeyError, TypeError) as e:
        raise BackendProtocolError(f"Unexpected 'choices' shape: {e!r}") from e
    if not isinstance(content, str):
        raise BackendProtocolError("Response content is not a string")
    return content


def parse_streaming_response(raw: str | bytes) -> str:
    """Concatenate the content of every NDJSON line up to ``done``.

    Lines after the one flagged ``done`` are ignored.
    """
    parts: list[str] = []
    for line in _as_text(raw).splitlines():
        line = line.strip()
        if not line:
            continue
        data = _load_object(line)
        if "error" in data and "message" not in data and "response" not in data:
            raise BackendReportedError(_error_message(data["error"]))
        message = data.get("message")
        if isinstance(message, dict):
            parts.append(str(message.get("content") or ""))
            done = data.get("done") is True or message.get("done") is True
        else:
            parts.append(str(data.get("response") or ""))
            done = data.get("done") is True
        if done:
            break
    return "".join(parts)


def unwrap_nested_content(content: str) -> str:
    """Compatibility shim for backends that double-encode the answer.

    At least one supported backend returns its answer as a JSON object
    nested inside the content string. When the content parses as an
    object, the value of its last key is the answer; non-string values
    are re-serialized. Anything that fails here falls back to the raw
    content. Remove once that backend is no longer supported.
    """
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return content
    if not isinstance(data, dict) or not data:
        return content
    value = list(data.values())[-1]
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return content


def parse_text_response(dialect: Dialect, raw: str | bytes) -> str:
    """Parse either response shape into the extracted answer text."""
    if is_streaming_shape(raw):
        content = parse_streaming_response(raw)
    else:
        content = parse_choices_response(dialect, raw)
    logger.debug("Extracted response content", extra={"dialect": dialect.value, "content": content})
    return unwrap_nested_content(content)


def parse_image_response(raw: str | bytes) -> str:
    """Return the URL of the first generated image."""
    data = _load_object(_as_text(raw))
    images = data.get("data")
    if images is None:
        if "error" in data:
            raise BackendReportedError(_error_message(data["error"]))
        raise BackendProtocolError("Response has neither 'data' nor 'error'")
    try:
        url = images[0]["url"]
    except (IndexError, KeyError, TypeError) as e:
        raise BackendProtocolError(f"Unexpected 'data' shape: {e!r}") from e
    return str(url)


def parse_speech_response(raw: bytes) -> bytes:
    """Return the audio payload, surfacing a JSON error body if present."""
    head = raw.lstrip()[:1]
    if head == b"{":
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return raw
        if isinstance(data, dict) and "error" in data:
            raise BackendReportedError(_error_message(data["error"]))
    if not raw:
        raise BackendProtocolError("Empty audio response")
    return raw


def parse_response(category: RequestCategory, dialect: Dialect, raw: str | bytes) -> str:
    """Parse a text or image response into plain text.

    Speech responses are binary and go through ``parse_speech_response``.
    """
    if category == RequestCategory.image:
        return parse_image_response(raw)
    if category == RequestCategory.speech:
        raise BackendProtocolError("Speech responses are binary; use parse_speech_response")
    return parse_text_response(dialect, raw)
