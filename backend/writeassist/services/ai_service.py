"""AI service facade used by the document integration and the HTTP API.

Wires the backend handlers into one request queue, owns the circuit
breaker and the background check queue, and offers blocking calls:
- Text instructions (grammar, style, free-form), image and speech requests
- Batched grammar checks of document paragraphs
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from writeassist.llm.models import (
    DEFAULT_IMAGE_SIZE,
    DEFAULT_IMAGE_STEP,
    DEFAULT_TEXT_TEMPERATURE,
    BackendConfig,
    RequestCategory,
    RequestEntry,
)
from writeassist.llm.protocol import fold_wire_text
from writeassist.llm.providers import ImageHandler, SpeechHandler, TextHandler
from writeassist.llm.transport import HttpTransport

from .batch_planner import ParagraphRange, plan_range, range_text
from .check_queue import CheckQueue, CheckQueueEntry
from .circuit_breaker import BreakerListener, CircuitBreaker, FeatureStore
from .collaborators import DocumentRegistry, InMemoryDocumentRegistry, ParagraphStore, TextParagraph
from .instructions import CORRECT_TEMPERATURE, AiCommand, get_instruction
from .request_queue import RequestQueue

logger = logging.getLogger(__name__)

# Seed for reproducible check answers
CHECK_SEED = 1


@dataclass(frozen=True)
class CheckResult:
    """Corrected text for one checked batch (None when the request failed)."""
    doc_id: str
    paragraph_range: ParagraphRange
    original: str
    corrected: Optional[str]

    @property
    def changed(self) -> bool:
        """Whether the answer differs from the batch as it was sent.

        Paragraph breaks are folded to spaces on the wire, so both sides
        are compared in that form.
        """
        if self.corrected is None:
            return False
        return fold_wire_text(self.corrected).strip() != fold_wire_text(self.original).strip()


CheckResultSink = Callable[[CheckResult], None]


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


class AiService:
    """Blocking entry point for all AI requests.

    Usage:
        service = AiService()
        corrected = service.submit_text_request(instruction, "He go home.", only_one_paragraph=True)
    """

    def __init__(
        self,
        configs: Optional[dict[RequestCategory, BackendConfig]] = None,
        transport: Optional[HttpTransport] = None,
        flags: Optional[FeatureStore] = None,
        registry: Optional[DocumentRegistry] = None,
        result_sink: Optional[CheckResultSink] = None,
        watchdog_seconds: Optional[float] = None,
        single_paragraph_mode: Optional[bool] = None,
    ):
        """Initialize the service.

        Args:
            configs: Backend settings per category; missing ones come from env vars.
            transport: HTTP transport shared by all handlers.
            flags: Feature flags read and written by the circuit breaker.
            registry: Open documents for background checks.
            result_sink: Receives the result of every background check.
            watchdog_seconds: Ceiling per backend call.
            single_paragraph_mode: Check paragraphs one at a time.
                Defaults to AI_SINGLE_PARAGRAPH_MODE env var.
        """
        configs = dict(configs or {})
        for category in RequestCategory:
            if category not in configs:
                configs[category] = BackendConfig.from_env(category)
        self._configs = configs
        self._transport = transport if transport is not None else HttpTransport()
        self._breaker = CircuitBreaker(flags)
        self._messages: dict[int, str] = {}
        self._message_lock = threading.Lock()
        self._caller = threading.local()
        self._queue = RequestQueue(
            [
                TextHandler(configs[RequestCategory.text], self._transport),
                ImageHandler(configs[RequestCategory.image], self._transport),
                SpeechHandler(configs[RequestCategory.speech], self._transport),
            ],
            breaker=self._breaker,
            watchdog_seconds=watchdog_seconds,
            message_sink=self._record_message,
        )

        self._registry: DocumentRegistry = registry if registry is not None else InMemoryDocumentRegistry()
        self._result_sink = result_sink
        if single_paragraph_mode is None:
            single_paragraph_mode = _env_flag("AI_SINGLE_PARAGRAPH_MODE")
        self._check_queue: Optional[CheckQueue] = None
        if self._breaker.is_enabled(RequestCategory.text):
            self._check_queue = CheckQueue(self._registry, self._run_check, single_paragraph_mode)

        self._breaker.add_listener(self._on_breaker_tripped)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def request_queue(self) -> RequestQueue:
        return self._queue

    @property
    def check_queue(self) -> Optional[CheckQueue]:
        """Background check queue, None once text support is disabled."""
        return self._check_queue

    @property
    def registry(self) -> DocumentRegistry:
        return self._registry

    @property
    def last_message(self) -> Optional[str]:
        """Backend error message of the calling thread's most recent request."""
        return getattr(self._caller, "last_message", None)

    def config(self, category: RequestCategory) -> BackendConfig:
        return self._configs[category]

    def is_enabled(self, category: RequestCategory) -> bool:
        return self._breaker.is_enabled(category)

    def add_breaker_listener(self, listener: BreakerListener) -> None:
        self._breaker.add_listener(listener)

    def remove_breaker_listener(self, listener: BreakerListener) -> None:
        self._breaker.remove_listener(listener)

    # ==========================================================================
    # Requests
    # ==========================================================================

    def submit_text_request(
        self,
        instruction: Optional[str],
        text: Optional[str],
        temperature: float = DEFAULT_TEXT_TEMPERATURE,
        seed: int = 0,
        locale: str = "en",
        only_one_paragraph: bool = False,
        priority: bool = False,
    ) -> Optional[str]:
        """Run a text instruction and wait for the normalized answer.

        Returns:
            Answer text, or None if the request failed or text support is off.
        """
        entry = RequestEntry.for_text(
            instruction,
            text,
            temperature=temperature,
            seed=seed,
            locale=locale,
            only_one_paragraph=only_one_paragraph,
        )
        return self._run(entry, priority)

    def submit_image_request(
        self,
        prompt: Optional[str],
        exclude: Optional[str] = "",
        step: int = DEFAULT_IMAGE_STEP,
        seed: int = 0,
        size: int = DEFAULT_IMAGE_SIZE,
        priority: bool = False,
    ) -> Optional[str]:
        """Generate an image and return its URL (None on failure)."""
        entry = RequestEntry.for_image(prompt, exclude=exclude, step=step, seed=seed, size=size)
        return self._run(entry, priority)

    def submit_speech_request(self, text: str, filename: str, priority: bool = False) -> Optional[str]:
        """Convert text to speech and return the written filename (None on failure)."""
        entry = RequestEntry.for_speech(text, filename)
        return self._run(entry, priority)

    def _run(self, entry: RequestEntry, priority: bool) -> Optional[str]:
        request_id = self._queue.submit(entry, priority=priority)
        result = self._queue.await_result(request_id)
        # the worker records a failure message before publishing the result
        with self._message_lock:
            self._caller.last_message = self._messages.pop(request_id, None)
        return result

    # ==========================================================================
    # Checks
    # ==========================================================================

    def enqueue_check(self, doc_id: str, paragraph: TextParagraph, priority: bool = False) -> Optional[CheckQueueEntry]:
        """Queue a background check of the batch around ``paragraph``.

        Returns:
            The queued entry, or None if the document is unknown, the
            check queue is gone or the batch could not be planned.
        """
        check_queue = self._check_queue
        if check_queue is None:
            return None
        document = self._find_document(doc_id)
        if document is None:
            logger.warning(f"Check requested for unknown document: {doc_id}")
            return None
        return check_queue.enqueue_paragraph(document, paragraph, priority=priority)

    def dequeue_next_check(
        self,
        doc_id: Optional[str] = None,
        paragraph: Optional[TextParagraph] = None,
    ) -> Optional[CheckQueueEntry]:
        """Next unchecked batch over all open documents, starting near the hint."""
        check_queue = self._check_queue
        if check_queue is None:
            return None
        return check_queue.dequeue_next_for(doc_id, paragraph)

    def check_paragraph(
        self,
        doc_id: str,
        store: ParagraphStore,
        paragraph: TextParagraph,
        locale: str = "en",
        single_paragraph_mode: bool = False,
    ) -> CheckResult:
        """Check the batch around ``paragraph`` right away (blocking).

        Raises:
            StoreAccessError: The paragraph store failed.
        """
        batch = plan_range(paragraph, store, single_paragraph_mode=single_paragraph_mode)
        return self._check_range(doc_id, store, batch, locale)

    def _check_range(self, doc_id: str, store: ParagraphStore, batch: ParagraphRange, locale: str) -> CheckResult:
        original = range_text(batch, store)
        corrected = self.submit_text_request(
            get_instruction(AiCommand.correct_grammar, locale),
            original,
            temperature=CORRECT_TEMPERATURE,
            seed=CHECK_SEED,
            locale=locale,
            only_one_paragraph=True,
        )
        return CheckResult(doc_id=doc_id, paragraph_range=batch, original=original, corrected=corrected)

    def _run_check(self, entry: CheckQueueEntry) -> None:
        """Check one queued batch; runs on the check worker thread."""
        document = self._find_document(entry.doc_id)
        if document is None or document.is_disposed():
            logger.debug(f"Skipping check of closed document {entry.doc_id}")
            return
        result = self._check_range(entry.doc_id, document.store, entry.paragraph_range, document.locale)
        mark_checked = getattr(document, "mark_checked", None)
        if mark_checked is not None:
            for paragraph in entry.paragraph_range.paragraphs():
                mark_checked(paragraph)
        if self._result_sink is not None:
            self._result_sink(result)

    def _find_document(self, doc_id: str):
        for document in self._registry.documents():
            if document.doc_id == doc_id:
                return document
        return None

    # ==========================================================================
    # Breaker and messages
    # ==========================================================================

    def _on_breaker_tripped(self, category: RequestCategory, reason: str) -> None:
        if category != RequestCategory.text:
            return
        check_queue = self._check_queue
        self._check_queue = None
        if check_queue is not None:
            check_queue.stop()
            logger.info("Background AI checks discarded: text support disabled")

    def _record_message(self, request_id: int, message: str) -> None:
        with self._message_lock:
            self._messages[request_id] = message
        logger.warning(f"AI backend reported: {message}")

    def close(self) -> None:
        """Stop background checks and release HTTP connections."""
        if self._check_queue is not None:
            self._check_queue.stop()
        self._transport.close()


# Module-level singleton instance
_default_service: Optional[AiService] = None
_service_lock = threading.Lock()


def get_ai_service() -> AiService:
    """Get the default AI service singleton.

    Creates the service from environment settings on first access.
    """
    global _default_service
    with _service_lock:
        if _default_service is None:
            _default_service = AiService()
        return _default_service


def reset_ai_service() -> None:
    """Close and forget the default service (used by tests)."""
    global _default_service
    with _service_lock:
        if _default_service is not None:
            _default_service.close()
        _default_service = None
