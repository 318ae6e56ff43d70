"""Request queue with a single-flight background worker.

Heterogeneous requests (text, image, speech) are queued FIFO, priority
submissions jump to the front. One worker thread per queue instance drains
the queue and exits when it is empty; the next submission starts a new one.

Features:
- Results published per request id; callers block on a condition, not a poll
- Wall-clock watchdog per backend call (abandoned calls are discarded)
- Terminal failures trip the category's circuit breaker

Configuration (env vars):
- AI_WATCHDOG_SECONDS: Ceiling per backend call (default: 10)
"""

from __future__ import annotations

import logging
import os
import threading
from collections import deque
from typing import Any, Callable, Iterable, Optional

from writeassist.llm.errors import (
    AiError,
    BREAKER_ERRORS,
    DuplicateSubmissionError,
    USER_VISIBLE_ERRORS,
    WatchdogTimeoutError,
)
from writeassist.llm.models import RequestCategory, RequestEntry, next_request_id
from writeassist.llm.providers.base import CategoryHandler
from writeassist.llm.transport import debug_enabled

from .circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

# Receives (request id, message) for failures the user should see
MessageSink = Callable[[int, str], None]


class ResultSlot:
    """Results keyed by request id.

    Each id is written once by the worker and removed by the reader that
    takes it, so the map only holds results nobody has collected yet.
    """

    def __init__(self):
        self._results: dict[int, Optional[str]] = {}
        self._abandoned: set[int] = set()
        self._cond = threading.Condition()

    def publish(self, request_id: int, value: Optional[str]) -> None:
        """Store a result (None marks a failed request) and wake readers."""
        with self._cond:
            if request_id in self._abandoned:
                # reader gave up waiting
                self._abandoned.discard(request_id)
                return
            self._results[request_id] = value
            self._cond.notify_all()

    def take(self, request_id: int, timeout: Optional[float] = None) -> Optional[str]:
        """Block until the result for ``request_id`` exists, then remove it.

        Raises:
            WatchdogTimeoutError: ``timeout`` elapsed first. A result
                published later is dropped.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: request_id in self._results, timeout=timeout):
                self._abandoned.add(request_id)
                raise WatchdogTimeoutError(
                    f"No result within {timeout}s", request_id=request_id
                )
            return self._results.pop(request_id)

    def __len__(self) -> int:
        with self._cond:
            return len(self._results)


class RequestQueue:
    """FIFO/priority queue of AI requests drained by one worker thread.

    Usage:
        queue = RequestQueue([TextHandler(config, transport)], breaker)
        request_id = queue.submit(RequestEntry.for_text(instruction, text))
        result = queue.await_result(request_id)
    """

    DEFAULT_WATCHDOG_SECONDS = 10.0

    def __init__(
        self,
        handlers: Iterable[CategoryHandler],
        breaker: Optional[CircuitBreaker] = None,
        watchdog_seconds: Optional[float] = None,
        message_sink: Optional[MessageSink] = None,
    ):
        """Initialize the queue.

        Args:
            handlers: One handler per supported category.
            breaker: Circuit breaker shared with the queue owner.
            watchdog_seconds: Ceiling per backend call; 0 disables the watchdog.
                Defaults to AI_WATCHDOG_SECONDS env var.
            message_sink: Receives (request id, message) for user-visible failures.
        """
        self._handlers: dict[RequestCategory, CategoryHandler] = {
            handler.category: handler for handler in handlers
        }
        self._breaker = breaker if breaker is not None else CircuitBreaker()
        self._watchdog_seconds = (
            watchdog_seconds
            if watchdog_seconds is not None
            else float(os.environ.get("AI_WATCHDOG_SECONDS", self.DEFAULT_WATCHDOG_SECONDS))
        )
        self._message_sink = message_sink
        self._entries: deque[RequestEntry] = deque()
        self._lock = threading.Lock()
        self._results = ResultSlot()
        self._worker_active = False
        self._running_workers = 0

        # Worker accounting, read by tests and health checks
        self.workers_started = 0
        self.max_concurrent_workers = 0

        self._breaker.add_listener(self._on_breaker_tripped)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def submit(self, entry: RequestEntry, priority: bool = False) -> int:
        """Queue a request and return its id immediately.

        Args:
            entry: Fresh request entry (``id`` must still be 0).
            priority: Insert at the head instead of the tail.

        Returns:
            The id assigned to the entry.

        Raises:
            DuplicateSubmissionError: The entry already carries an id.
            ValueError: No handler is registered for the entry's category.
        """
        if entry.category not in self._handlers:
            raise ValueError(f"No handler for category: {entry.category.value}")
        with self._lock:
            if entry.id != 0:
                raise DuplicateSubmissionError(
                    "Request entry was already submitted",
                    category=entry.category.value,
                    request_id=entry.id,
                )
            entry.id = next_request_id()

        if not self._breaker.is_enabled(entry.category):
            logger.debug(
                "Category disabled, request not queued",
                extra={"request_id": entry.id, "category": entry.category.value},
            )
            self._results.publish(entry.id, None)
            return entry.id

        with self._lock:
            if priority:
                self._entries.appendleft(entry)
            else:
                self._entries.append(entry)
            if not self._worker_active:
                self._worker_active = True
                self.workers_started += 1
                threading.Thread(
                    target=self._run_worker,
                    name=f"ai-request-worker-{self.workers_started}",
                    daemon=True,
                ).start()
        return entry.id

    def await_result(self, request_id: int, timeout: Optional[float] = None) -> Optional[str]:
        """Block until the request's result is published and return it.

        None means the request failed or its category is disabled.
        """
        return self._results.take(request_id, timeout=timeout)

    def run(self, entry: RequestEntry, priority: bool = False) -> Optional[str]:
        """Submit a request and wait for its result."""
        return self.await_result(self.submit(entry, priority=priority))

    def pending(self) -> int:
        """Number of queued (not yet started) requests."""
        with self._lock:
            return len(self._entries)

    def is_worker_active(self) -> bool:
        with self._lock:
            return self._worker_active

    def _run_worker(self) -> None:
        """Drain the queue, then exit."""
        with self._lock:
            self._running_workers += 1
            self.max_concurrent_workers = max(self.max_concurrent_workers, self._running_workers)
        logger.debug("Request worker started")

        while True:
            with self._lock:
                if not self._entries:
                    self._running_workers -= 1
                    self._worker_active = False
                    logger.debug("Request worker stopped: queue empty")
                    return
                entry = self._entries.popleft()
            try:
                result = self._process(entry)
            except Exception as e:
                logger.error(
                    f"Unexpected error processing request: {e}",
                    extra={"request_id": entry.id, "category": entry.category.value},
                )
                result = None
            self._results.publish(entry.id, result)

    def _process(self, entry: RequestEntry) -> Optional[str]:
        """Run one entry through its handler, mapping failures to None."""
        category = entry.category
        if not self._breaker.is_enabled(category):
            return None
        handler = self._handlers[category]
        try:
            return self._call_with_watchdog(handler, entry)
        except BREAKER_ERRORS as e:
            self._log_failure(e, entry)
            self._breaker.trip(category, str(e))
        except USER_VISIBLE_ERRORS as e:
            self._log_failure(e, entry)
            self._notify_user(entry, str(e))
        except AiError as e:
            self._log_failure(e, entry)
        except Exception as e:
            self._log_failure(e, entry)
        return None

    def _call_with_watchdog(self, handler: CategoryHandler, entry: RequestEntry) -> Optional[str]:
        """Run the handler, giving up after the watchdog ceiling.

        The abandoned call keeps running on its own daemon thread. Its
        eventual result is dropped, but a terminal connection failure it
        runs into later still trips the breaker.
        """
        if not self._watchdog_seconds or self._watchdog_seconds <= 0:
            return handler.run(entry)

        outcome: dict[str, Any] = {}
        outcome_lock = threading.Lock()
        finished = threading.Event()

        def settle(**result: Any) -> bool:
            with outcome_lock:
                if outcome.get("abandoned"):
                    return False
                outcome.update(result)
                finished.set()
                return True

        def call() -> None:
            try:
                value = handler.run(entry)
            except Exception as e:
                if not settle(error=e):
                    self._report_abandoned_failure(e, entry)
            else:
                settle(value=value)

        threading.Thread(target=call, name=f"ai-call-{entry.id}", daemon=True).start()
        finished.wait(self._watchdog_seconds)
        with outcome_lock:
            if not finished.is_set():
                outcome["abandoned"] = True
        if outcome.get("abandoned"):
            raise WatchdogTimeoutError(
                f"Backend call exceeded {self._watchdog_seconds}s",
                category=entry.category.value,
                url=handler.config.url,
                request_id=entry.id,
            )
        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("value")

    def _report_abandoned_failure(self, error: Exception, entry: RequestEntry) -> None:
        """Handle a failure of a call the watchdog already gave up on."""
        if isinstance(error, BREAKER_ERRORS):
            self._log_failure(error, entry)
            self._breaker.trip(entry.category, str(error))
        else:
            logger.debug(
                f"Discarded failure of abandoned request: {error}",
                extra={"request_id": entry.id, "category": entry.category.value},
            )

    def _on_breaker_tripped(self, category: RequestCategory, reason: str) -> None:
        """Release every queued request of a disabled category with None."""
        with self._lock:
            dropped = [entry for entry in self._entries if entry.category == category]
            self._entries = deque(entry for entry in self._entries if entry.category != category)
        for entry in dropped:
            self._results.publish(entry.id, None)
        if dropped:
            logger.info(f"Released {len(dropped)} queued {category.value} requests after breaker trip")

    def _notify_user(self, entry: RequestEntry, message: str) -> None:
        if self._message_sink is not None:
            self._message_sink(entry.id, message)
        else:
            logger.warning(f"AI request failed: {message}")

    def _log_failure(self, error: Exception, entry: RequestEntry) -> None:
        extra = {
            "request_id": entry.id,
            "category": entry.category.value,
            "error_type": type(error).__name__,
        }
        if debug_enabled():
            logger.exception(f"AI request failed: {error}", extra=extra)
        else:
            logger.error(f"AI request failed: {error}", extra=extra)
