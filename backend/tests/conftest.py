"""Pytest fixtures for testing."""

import json
import threading
from collections.abc import Callable, Generator
from typing import Any

import httpx
import pytest

from writeassist.llm.models import BackendConfig, RequestCategory
from writeassist.llm.transport import HttpTransport
from writeassist.services.ai_service import AiService

TEXT_URL = "http://ai.test/v1/chat/completions"
IMAGE_URL = "http://ai.test/v1/images/generations"
SPEECH_URL = "http://ai.test/tts"


def chat_answer(content: str) -> dict[str, Any]:
    """Non-streaming chat response body."""
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class FakeBackend:
    """Records requests and answers them through a responder callable.

    The responder gets the decoded JSON body and the request and returns
    an ``httpx.Response`` (or raises an httpx transport error).
    """

    def __init__(self, responder: Callable[[dict[str, Any], httpx.Request], httpx.Response]):
        self.responder = responder
        self.requests: list[httpx.Request] = []
        self.bodies: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content.decode("utf-8"))
        with self._lock:
            self.requests.append(request)
            self.bodies.append(body)
        return self.responder(body, request)

    @property
    def calls(self) -> int:
        with self._lock:
            return len(self.requests)

    def transport(self, max_retries: int = 2) -> HttpTransport:
        client = httpx.Client(transport=httpx.MockTransport(self))
        return HttpTransport(max_retries=max_retries, timeout=5.0, base_delay=0, client=client)


def default_responder(body: dict[str, Any], request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/images/generations"):
        return httpx.Response(200, json={"data": [{"url": "http://img.test/1.png"}]})
    if path.endswith("/tts"):
        return httpx.Response(200, content=b"RIFF-audio")
    content = body["messages"][0]["content"]
    return httpx.Response(200, json=chat_answer(f"Answer to {content}"))


@pytest.fixture(autouse=True)
def clean_ai_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer AI_* settings out of the tests."""
    for name in (
        "AI_URL",
        "AI_API_KEY",
        "AI_MODEL",
        "AI_DEBUG",
        "AI_MAX_RETRIES",
        "AI_WATCHDOG_SECONDS",
        "AI_SINGLE_PARAGRAPH_MODE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def backend_configs() -> dict[RequestCategory, BackendConfig]:
    return {
        RequestCategory.text: BackendConfig(url=TEXT_URL, api_key="test-key", model="test-model"),
        RequestCategory.image: BackendConfig(url=IMAGE_URL, api_key="test-key", model="test-image"),
        RequestCategory.speech: BackendConfig(url=SPEECH_URL, api_key="test-key", model="test-voice"),
    }


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Backend answering text, image and speech requests successfully."""
    return FakeBackend(default_responder)


@pytest.fixture
def make_backend() -> Callable[..., FakeBackend]:
    """Factory for fake backends with a custom responder."""
    return FakeBackend


@pytest.fixture
def chat_reply() -> Callable[[str], httpx.Response]:
    """Build a 200 chat response carrying ``content``."""
    return lambda content: httpx.Response(200, json=chat_answer(content))


@pytest.fixture
def make_service(backend_configs) -> Generator[Callable[..., AiService], None, None]:
    """Factory for AI services wired to a fake backend; closed on teardown."""
    services: list[AiService] = []

    def factory(backend: FakeBackend, **kwargs: Any) -> AiService:
        kwargs.setdefault("watchdog_seconds", 5.0)
        max_retries = kwargs.pop("max_retries", 2)
        service = AiService(
            configs=backend_configs,
            transport=backend.transport(max_retries=max_retries),
            **kwargs,
        )
        services.append(service)
        return service

    yield factory
    for service in services:
        service.close()
