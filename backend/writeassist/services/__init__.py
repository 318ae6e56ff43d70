"""Request orchestration: queues, circuit breaker, batching and document services."""

from .ai_service import AiService, CheckResult, get_ai_service
from .batch_planner import ParagraphRange, plan_range, range_text
from .check_queue import CheckQueue, CheckQueueEntry
from .circuit_breaker import CircuitBreaker, InMemoryFeatureFlags
from .collaborators import InMemoryDocument, InMemoryDocumentRegistry, ParagraphKind, TextParagraph
from .instructions import AiCommand, get_instruction
from .request_queue import RequestQueue, ResultSlot

__all__ = [
    "AiService",
    "CheckResult",
    "get_ai_service",
    "ParagraphRange",
    "plan_range",
    "range_text",
    "CheckQueue",
    "CheckQueueEntry",
    "CircuitBreaker",
    "InMemoryFeatureFlags",
    "InMemoryDocument",
    "InMemoryDocumentRegistry",
    "ParagraphKind",
    "TextParagraph",
    "AiCommand",
    "get_instruction",
    "RequestQueue",
    "ResultSlot",
]
