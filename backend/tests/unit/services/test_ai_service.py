"""Unit tests for the AI service facade.

Tests cover:
- End-to-end text, image and speech requests against a fake backend
- Breaker trip on connection failure, including check queue discard
- Background checks delivered to the result sink
"""

import threading
import time
from unittest.mock import MagicMock

import httpx
import pytest

from writeassist.llm.models import RequestCategory
from writeassist.services import ai_service as ai_service_module
from writeassist.services.ai_service import AiService, get_ai_service, reset_ai_service
from writeassist.services.collaborators import (
    InMemoryDocument,
    InMemoryDocumentRegistry,
    ParagraphKind,
    TextParagraph,
)


def para(n: int) -> TextParagraph:
    return TextParagraph(ParagraphKind.text, n)


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestRequests:
    def test_text_request_example(self, make_service, make_backend, chat_reply):
        """Labelled chat answer is reduced to the corrected sentence."""
        backend = make_backend(lambda body, request: chat_reply("Corrected: He goes home."))
        service = make_service(backend)
        result = service.submit_text_request(
            "Output the corrected text",
            "He go home.",
            temperature=0.0,
            only_one_paragraph=True,
        )
        assert result == "He goes home."
        assert backend.bodies[0]["messages"][0]["content"] == "Output the corrected text: {He go home.}"
        assert backend.requests[0].headers["Authorization"] == "test-key"

    def test_image_request(self, make_service, fake_backend):
        service = make_service(fake_backend)
        assert service.submit_image_request("a cat", exclude="dogs") == "http://img.test/1.png"
        assert fake_backend.bodies[0]["prompt"] == "a cat|dogs"

    def test_speech_request(self, make_service, fake_backend, tmp_path):
        service = make_service(fake_backend)
        target = tmp_path / "hello"
        assert service.submit_speech_request("Hello", str(target)) == str(target)
        assert target.read_bytes() == b"RIFF-audio"

    def test_reported_error_recorded(self, make_service, make_backend):
        backend = make_backend(lambda body, request: httpx.Response(200, json={"error": "model not loaded"}))
        service = make_service(backend)
        assert service.submit_text_request("Fix", "text") is None
        assert service.last_message == "model not loaded"
        assert service.is_enabled(RequestCategory.text)

    def test_message_belongs_to_calling_thread(self, make_service, make_backend, chat_reply):
        """A failure in one caller's request is not reported to another caller."""

        def responder(body, request):
            if "broken" in body["messages"][0]["content"]:
                return httpx.Response(200, json={"error": "model not loaded"})
            return chat_reply("fine")

        service = make_service(make_backend(responder))
        seen = {}

        def failing_caller():
            seen["result"] = service.submit_text_request("Fix", "broken")
            seen["message"] = service.last_message

        worker = threading.Thread(target=failing_caller)
        worker.start()
        worker.join(5)

        assert seen == {"result": None, "message": "model not loaded"}
        assert service.submit_text_request("Fix", "ok") == "fine"
        assert service.last_message is None

    def test_http_error_keeps_category_enabled(self, make_service, make_backend):
        backend = make_backend(lambda body, request: httpx.Response(500, json={"error": {"message": "oom"}}))
        service = make_service(backend)
        assert service.submit_text_request("Fix", "text") is None
        assert "oom" in service.last_message
        assert service.is_enabled(RequestCategory.text)


class TestBreaker:
    def test_connection_failure_disables_text(self, make_service, make_backend):
        """Exhausted retries flip the flag, notify listeners and drop checks."""

        def refuse(body, request):
            raise httpx.ConnectError("connection refused", request=request)

        backend = make_backend(refuse)
        registry = InMemoryDocumentRegistry([InMemoryDocument("doc", ["He go home."])])
        service = make_service(backend, registry=registry, max_retries=3)
        listener = MagicMock()
        service.add_breaker_listener(listener)
        check_queue = service.check_queue

        assert service.submit_text_request("Fix", "text") is None
        assert backend.calls == 3
        assert not service.is_enabled(RequestCategory.text)
        assert service.is_enabled(RequestCategory.image)
        listener.assert_called_once()
        assert listener.call_args.args[0] == RequestCategory.text

        assert service.check_queue is None
        assert check_queue.stopped
        assert service.enqueue_check("doc", para(0)) is None
        assert service.dequeue_next_check() is None

        # no further backend calls once disabled
        assert service.submit_text_request("Fix", "again") is None
        assert backend.calls == 3

    def test_connect_timeouts_beyond_watchdog_disable_text(self, make_service, make_backend):
        """Retries that outlast the watchdog still end in a breaker trip."""

        def slow_refuse(body, request):
            time.sleep(0.2)
            raise httpx.ConnectTimeout("timed out", request=request)

        backend = make_backend(slow_refuse)
        service = make_service(backend, watchdog_seconds=0.5, max_retries=5)

        assert service.submit_text_request("Fix", "text") is None
        assert service.is_enabled(RequestCategory.text)
        assert wait_until(lambda: not service.is_enabled(RequestCategory.text))
        assert backend.calls == 5
        assert service.check_queue is None

    def test_404_disables_category(self, make_service, make_backend):
        backend = make_backend(lambda body, request: httpx.Response(404, text="no such route"))
        service = make_service(backend)
        assert service.submit_image_request("a cat") is None
        assert not service.is_enabled(RequestCategory.image)
        assert service.is_enabled(RequestCategory.text)
        assert service.check_queue is not None

    def test_malformed_url_disables_without_request(self, make_service, fake_backend, backend_configs):
        from writeassist.llm.models import BackendConfig

        backend_configs[RequestCategory.speech] = BackendConfig(url="tts-server:5002")
        service = make_service(fake_backend)
        assert service.submit_speech_request("Hello", "/tmp/never") is None
        assert fake_backend.calls == 0
        assert not service.is_enabled(RequestCategory.speech)


class TestChecks:
    def test_enqueued_check_reaches_sink(self, make_service, make_backend, chat_reply):
        backend = make_backend(lambda body, request: chat_reply("He goes home."))
        document = InMemoryDocument("doc", ["He go home."], locale="de")
        results = []
        done = threading.Event()

        def sink(result):
            results.append(result)
            done.set()

        service = make_service(
            backend,
            registry=InMemoryDocumentRegistry([document]),
            result_sink=sink,
        )
        queued = service.enqueue_check("doc", para(0))
        assert queued is not None
        assert done.wait(5)

        result = results[0]
        assert result.doc_id == "doc"
        assert result.original == "He go home."
        assert result.corrected == "He goes home."
        assert result.changed
        assert document.is_checked(para(0))
        body = backend.bodies[0]
        assert body["temperature"] == 0.0
        assert body["seed"] == 1
        assert body["language"] == "de"
        assert body["messages"][0]["content"].startswith("Output the corrected text (language: de)")
        assert wait_until(lambda: not service.check_queue.is_worker_active())

    def test_unknown_document(self, make_service, fake_backend):
        service = make_service(fake_backend)
        assert service.enqueue_check("nope", para(0)) is None

    def test_dequeue_next_check(self, make_service, fake_backend):
        document = InMemoryDocument("doc", ["a", "b", "c"])
        document.mark_checked(para(0))
        service = make_service(fake_backend, registry=InMemoryDocumentRegistry([document]))
        found = service.dequeue_next_check()
        assert (found.start.number, found.end.number) == (0, 3)

    def test_check_paragraph_batches(self, make_service, make_backend, chat_reply):
        backend = make_backend(lambda body, request: chat_reply("One. Two."))
        service = make_service(backend)
        document = InMemoryDocument("doc", ["One.", "Two."])
        result = service.check_paragraph("doc", document, para(1))
        assert (result.paragraph_range.start, result.paragraph_range.end) == (0, 2)
        assert result.original == "One.\nTwo."
        # paragraphs are folded to spaces on the wire
        assert backend.bodies[0]["messages"][0]["content"].endswith("{One. Two.}")

    def test_unchanged_batch_is_not_reported_as_changed(self, make_service, make_backend, chat_reply):
        """A backend echoing a multi-paragraph batch leaves it unchanged."""

        def echo(body, request):
            content = body["messages"][0]["content"]
            return chat_reply(content.split("{", 1)[1].rstrip("}"))

        service = make_service(make_backend(echo))
        document = InMemoryDocument("doc", ["Short one a.", "Short two b.", "Short three c."])
        result = service.check_paragraph("doc", document, para(1))
        assert result.original == "Short one a.\nShort two b.\nShort three c."
        assert result.corrected == "Short one a. Short two b. Short three c."
        assert not result.changed

    def test_single_paragraph_mode_from_env(self, make_service, fake_backend, monkeypatch):
        monkeypatch.setenv("AI_SINGLE_PARAGRAPH_MODE", "true")
        service = make_service(fake_backend)
        assert service.check_queue.single_paragraph_mode


class TestSingleton:
    def test_get_returns_same_instance(self, monkeypatch):
        monkeypatch.setattr(ai_service_module, "_default_service", None)
        first = get_ai_service()
        assert get_ai_service() is first
        reset_ai_service()
        assert ai_service_module._default_service is None

    def test_disabled_text_has_no_check_queue(self, backend_configs, fake_backend):
        from writeassist.services.circuit_breaker import InMemoryFeatureFlags

        service = AiService(
            configs=backend_configs,
            transport=fake_backend.transport(),
            flags=InMemoryFeatureFlags({RequestCategory.text: False}),
        )
        assert service.check_queue is None
        assert service.submit_text_request("Fix", "x") is None
        service.close()
