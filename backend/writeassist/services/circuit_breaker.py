"""Per-category feature flags and the one-way circuit breaker.

A terminal failure (unusable URL, 404, connection retries exhausted)
switches the category's "AI support enabled" flag off and notifies
listeners (check queue owner, open dialogs). The breaker never resets
itself; re-enabling is an explicit ``set_enabled`` call on the flags.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

from writeassist.llm.models import RequestCategory

logger = logging.getLogger(__name__)

BreakerListener = Callable[[RequestCategory, str], None]


class FeatureStore(Protocol):
    """Read/write access to the per-category enabled flag."""

    def is_enabled(self, category: RequestCategory) -> bool: ...

    def set_enabled(self, category: RequestCategory, enabled: bool) -> None: ...


class InMemoryFeatureFlags:
    """Thread-safe in-memory feature flags, all categories enabled by default."""

    def __init__(self, enabled: Optional[dict[RequestCategory, bool]] = None):
        self._flags: dict[RequestCategory, bool] = {category: True for category in RequestCategory}
        if enabled:
            self._flags.update(enabled)
        self._lock = threading.Lock()

    def is_enabled(self, category: RequestCategory) -> bool:
        with self._lock:
            return self._flags.get(category, False)

    def set_enabled(self, category: RequestCategory, enabled: bool) -> None:
        with self._lock:
            self._flags[category] = enabled


class CircuitBreaker:
    """Disables a request category after a terminal failure.

    Usage:
        breaker = CircuitBreaker(flags)
        breaker.add_listener(lambda category, reason: ...)
        breaker.trip(RequestCategory.text, "Could not connect")
    """

    def __init__(self, flags: Optional[FeatureStore] = None):
        self._flags: FeatureStore = flags if flags is not None else InMemoryFeatureFlags()
        self._listeners: list[BreakerListener] = []
        self._lock = threading.Lock()

    @property
    def flags(self) -> FeatureStore:
        return self._flags

    def is_enabled(self, category: RequestCategory) -> bool:
        return self._flags.is_enabled(category)

    def add_listener(self, listener: BreakerListener) -> None:
        """Register a callback run once per trip with (category, reason)."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: BreakerListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def trip(self, category: RequestCategory, reason: str) -> bool:
        """Switch the category off and notify listeners.

        Args:
            category: Category that failed terminally.
            reason: Human-readable failure description.

        Returns:
            True if this call disabled the category, False if it was
            already disabled (listeners are not notified again).
        """
        with self._lock:
            if not self._flags.is_enabled(category):
                return False
            self._flags.set_enabled(category, False)
            listeners = list(self._listeners)

        logger.error(
            f"AI support disabled for {category.value}: {reason}",
            extra={"category": category.value},
        )
        for listener in listeners:
            try:
                listener(category, reason)
            except Exception as e:
                logger.error(f"Breaker listener failed: {e}", extra={"category": category.value})
        return True
