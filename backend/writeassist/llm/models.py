"""AI request data models.

Backend configuration and the unit of queued AI work. The wire dialect is
derived once from the configured URL and never changes afterwards.
"""

from __future__ import annotations

import itertools
import os
import threading
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RequestCategory(str, Enum):
    """Kind of AI work, each with its own payload and feature flag."""
    text = "text"
    image = "image"
    speech = "speech"


class Dialect(str, Enum):
    """Wire protocol spoken by a text backend."""
    edits = "edits"
    completions = "completions"
    chat = "chat"
    generate = "generate"


# Checked in order: "/chat/completions" must win over "/completions".
_DIALECT_SUFFIXES = (
    ("/edits", Dialect.edits),
    ("/chat/completions", Dialect.chat),
    ("/completions", Dialect.completions),
    ("/generate", Dialect.generate),
)


def dialect_for_url(url: str) -> Dialect:
    """Pick the wire dialect from the URL path suffix (Chat if none matches)."""
    path = url.strip().rstrip("/")
    for suffix, dialect in _DIALECT_SUFFIXES:
        if path.endswith(suffix):
            return dialect
    return Dialect.chat


# Defaults per category: (url, api key, model)
DEFAULT_BACKENDS: dict[RequestCategory, tuple[str, str, str]] = {
    RequestCategory.text: ("http://localhost:8080/v1/chat/completions/", "1234567", "gpt-4"),
    RequestCategory.image: ("http://localhost:8080/v1/images/generations/", "1234567", "stablediffusion"),
    RequestCategory.speech: ("http://localhost:8080/tts/", "1234567", "voice-de-eva_k-x-low"),
}

# Environment variable prefix per category
ENV_PREFIXES: dict[RequestCategory, str] = {
    RequestCategory.text: "AI",
    RequestCategory.image: "AI_IMG",
    RequestCategory.speech: "AI_TTS",
}


class BackendConfig(BaseModel):
    """Resolved, read-only backend settings for one category."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str
    api_key: str = ""
    model: str = ""
    dialect: Dialect = Dialect.chat

    @model_validator(mode="before")
    @classmethod
    def _derive_dialect(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("dialect") is None and data.get("url") is not None:
            data = {**data, "dialect": dialect_for_url(data["url"])}
        return data

    @classmethod
    def from_env(
        cls,
        category: RequestCategory = RequestCategory.text,
        url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
    ) -> BackendConfig:
        """Build a config from ``<PREFIX>_URL`` / ``_API_KEY`` / ``_MODEL``.

        Explicit arguments win over the environment, the environment wins
        over the built-in defaults.
        """
        prefix = ENV_PREFIXES[category]
        default_url, default_key, default_model = DEFAULT_BACKENDS[category]
        return cls(
            url=url if url is not None else os.environ.get(f"{prefix}_URL", default_url),
            api_key=api_key if api_key is not None else os.environ.get(f"{prefix}_API_KEY", default_key),
            model=model if model is not None else os.environ.get(f"{prefix}_MODEL", default_model),
        )


# Request ids wrap back to 1 at this ceiling; 0 means "unset".
MAX_REQUEST_ID = 2**31 - 1

_id_lock = threading.Lock()
_id_counter = itertools.count(1)


def next_request_id() -> int:
    """Return the next process-unique request id (never 0)."""
    global _id_counter
    with _id_lock:
        value = next(_id_counter)
        if value >= MAX_REQUEST_ID:
            _id_counter = itertools.count(2)
            value = 1
        return value


# Category defaults
DEFAULT_TEXT_TEMPERATURE = 0.7
DEFAULT_IMAGE_STEP = 30
DEFAULT_IMAGE_SIZE = 256
ALLOWED_IMAGE_SIZES = (128, 256, 512)


class RequestEntry(BaseModel):
    """One unit of queued AI work.

    Payload fields are grouped per category:
    - text: instruction, text, locale, only_one_paragraph
    - image: instruction (prompt), exclude
    - speech: text, filename
    """
    model_config = ConfigDict(extra="forbid")

    category: RequestCategory
    id: int = Field(default=0, ge=0, description="Assigned on submission; 0 means unset")

    instruction: Optional[str] = None
    text: Optional[str] = None
    exclude: Optional[str] = None
    filename: Optional[str] = None

    temperature: float = Field(default=DEFAULT_TEXT_TEMPERATURE, ge=0.0, le=2.0)
    seed: int = Field(default=0, ge=0)
    step: int = Field(default=DEFAULT_IMAGE_STEP, ge=0)
    height: int = Field(default=DEFAULT_IMAGE_SIZE, gt=0)
    width: int = Field(default=DEFAULT_IMAGE_SIZE, gt=0)

    locale: str = "en"
    only_one_paragraph: bool = False

    @classmethod
    def for_text(
        cls,
        instruction: str | None,
        text: str | None,
        temperature: float = DEFAULT_TEXT_TEMPERATURE,
        seed: int = 0,
        locale: str = "en",
        only_one_paragraph: bool = False,
    ) -> RequestEntry:
        """Create a text (rewrite/check) request."""
        return cls(
            category=RequestCategory.text,
            instruction=instruction,
            text=text,
            temperature=temperature,
            seed=seed,
            locale=locale or "en",
            only_one_paragraph=only_one_paragraph,
        )

    @classmethod
    def for_image(
        cls,
        prompt: str | None,
        exclude: str | None = "",
        step: int = DEFAULT_IMAGE_STEP,
        seed: int = 0,
        size: int = DEFAULT_IMAGE_SIZE,
    ) -> RequestEntry:
        """Create an image generation request.

        Only square sizes of 128, 256 or 512 pixels are supported; anything
        else falls back to 256.
        """
        if size not in ALLOWED_IMAGE_SIZES:
            size = DEFAULT_IMAGE_SIZE
        return cls(
            category=RequestCategory.image,
            instruction=prompt,
            exclude=exclude,
            step=step,
            seed=seed,
            height=size,
            width=size,
        )

    @classmethod
    def for_speech(cls, text: str, filename: str) -> RequestEntry:
        """Create a text-to-speech request writing audio to ``filename``."""
        return cls(category=RequestCategory.speech, text=text, filename=filename)
