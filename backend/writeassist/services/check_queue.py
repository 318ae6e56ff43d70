"""Queue of pending grammar/style AI checks across open documents.

Entries are deduplicated on insert. When the queue runs dry, the worker
asks the open documents (round-robin, starting at the last checked one)
for their next unchecked paragraph, so checking continues in the
background until every document is done.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from writeassist.llm.errors import StoreAccessError

from .batch_planner import ParagraphRange, plan_range
from .collaborators import CheckDocument, DocumentRegistry, ParagraphStore, TextParagraph

logger = logging.getLogger(__name__)

# Result cache fed by AI checks
AI_CACHE_SLOT = 0

CheckRunner = Callable[["CheckQueueEntry"], None]


@dataclass(frozen=True)
class CheckQueueEntry:
    """One pending check of the paragraph range ``[start, end)``."""
    doc_id: str
    start: TextParagraph
    end: TextParagraph
    cache_slot: int = AI_CACHE_SLOT
    check_index: int = 0
    override_running: bool = False

    @property
    def key(self) -> tuple[str, TextParagraph, TextParagraph, int]:
        """Dedup key: at most one queued entry per key."""
        return (self.doc_id, self.start, self.end, self.cache_slot)

    @property
    def paragraph_range(self) -> ParagraphRange:
        return ParagraphRange(self.start.kind, self.start.number, self.end.number)

    def is_valid(self) -> bool:
        return (
            bool(self.doc_id)
            and self.start.kind == self.end.kind
            and self.start.number >= 0
            and self.end.number > self.start.number
            and self.cache_slot >= 0
        )


class CheckQueue:
    """Priority list of check entries drained by one worker thread.

    Usage:
        queue = CheckQueue(registry, runner)
        queue.enqueue_paragraph(document, TextParagraph(ParagraphKind.text, 12))
    """

    def __init__(
        self,
        registry: DocumentRegistry,
        runner: CheckRunner,
        single_paragraph_mode: bool = False,
    ):
        """Initialize the queue.

        Args:
            registry: Source of open documents for background scanning.
            runner: Runs one check synchronously on the worker thread.
            single_paragraph_mode: Check paragraphs one at a time instead of batches.
        """
        self._registry = registry
        self._runner = runner
        self._single_paragraph_mode = single_paragraph_mode
        self._entries: list[CheckQueueEntry] = []
        self._lock = threading.Lock()
        self._worker_active = False
        self._stopped = False
        self._last_doc_id: Optional[str] = None
        self._last_start: Optional[TextParagraph] = None
        self.workers_started = 0
        logger.info("AI check queue started")

    @property
    def single_paragraph_mode(self) -> bool:
        return self._single_paragraph_mode

    @single_paragraph_mode.setter
    def single_paragraph_mode(self, value: bool) -> None:
        self._single_paragraph_mode = value

    @property
    def stopped(self) -> bool:
        return self._stopped

    def pending(self) -> list[CheckQueueEntry]:
        """Snapshot of the queued entries, head first."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def create_entry(
        self,
        doc_id: str,
        store: ParagraphStore,
        paragraph: TextParagraph,
        cache_slot: int = AI_CACHE_SLOT,
        check_index: int = 0,
        override_running: bool = False,
    ) -> CheckQueueEntry:
        """Build an entry covering the batch that contains ``paragraph``.

        Raises:
            StoreAccessError: The paragraph store failed.
        """
        batch = plan_range(paragraph, store, single_paragraph_mode=self._single_paragraph_mode)
        return CheckQueueEntry(
            doc_id=doc_id,
            start=batch.first,
            end=TextParagraph(batch.kind, batch.end),
            cache_slot=cache_slot,
            check_index=check_index,
            override_running=override_running,
        )

    def enqueue(self, entry: CheckQueueEntry, priority: bool = False) -> bool:
        """Insert an entry, replacing an equal one already queued.

        Args:
            entry: Entry to insert.
            priority: Insert at the head instead of the tail.

        Returns:
            True if the entry was queued.
        """
        if self._stopped or not entry.is_valid():
            logger.debug(
                f"Check entry not queued: {entry}",
                extra={"doc_id": entry.doc_id, "stopped": self._stopped},
            )
            return False
        with self._lock:
            for i, queued in enumerate(self._entries):
                if queued.key == entry.key:
                    del self._entries[i]
                    break
            if priority:
                self._entries.insert(0, entry)
            else:
                self._entries.append(entry)
            if self._last_doc_id is None:
                self._last_doc_id = entry.doc_id
            self._wake_worker()
        return True

    def enqueue_paragraph(
        self,
        document: CheckDocument,
        paragraph: TextParagraph,
        priority: bool = False,
    ) -> Optional[CheckQueueEntry]:
        """Plan the batch for a paragraph and queue it.

        A paragraph whose batch cannot be planned is skipped.
        """
        if paragraph.number < 0:
            return None
        try:
            entry = self.create_entry(document.doc_id, document.store, paragraph)
        except StoreAccessError as e:
            logger.warning(f"Skipping paragraph {paragraph} of {document.doc_id}: {e}")
            return None
        return entry if self.enqueue(entry, priority=priority) else None

    def dequeue_next_for(
        self,
        doc_id: Optional[str] = None,
        paragraph: Optional[TextParagraph] = None,
    ) -> Optional[CheckQueueEntry]:
        """Ask the open documents for their next unchecked batch.

        Starts at the document ``doc_id`` (or the first usable document),
        then scans the following documents and wraps around. Disposed and
        non-editable documents are skipped, and a document that raises is
        treated as having nothing pending.
        """
        documents = list(self._registry.documents())
        start_index: Optional[int] = None
        for n, document in enumerate(documents):
            if doc_id is not None and document.doc_id != doc_id:
                continue
            if not self._is_usable(document):
                continue
            entry = self._next_entry_from(document, paragraph)
            if entry is not None:
                return entry
            start_index = n
            break

        if start_index is None:
            order = documents
        else:
            order = documents[start_index + 1:] + documents[:start_index]
        for document in order:
            if not self._is_usable(document):
                continue
            entry = self._next_entry_from(document, None)
            if entry is not None:
                return entry
        return None

    def interrupt(self, doc_id: str) -> None:
        """Remove every entry of a closed document."""
        with self._lock:
            self._entries = [entry for entry in self._entries if entry.doc_id != doc_id]
            if self._last_doc_id == doc_id:
                self._last_doc_id = None
                self._last_start = None
        logger.debug(f"Check queue interrupted for document {doc_id}")

    def reset(self) -> None:
        """Drop all entries and forget the scan position."""
        with self._lock:
            self._entries.clear()
            self._last_doc_id = None
            self._last_start = None
            self._stopped = False
        logger.debug("Check queue reset")

    def stop(self) -> None:
        """Stop for good: drop all entries; the worker exits after its current check."""
        with self._lock:
            self._stopped = True
            self._entries.clear()
        logger.info("AI check queue stopped")

    def is_worker_active(self) -> bool:
        with self._lock:
            return self._worker_active

    def _wake_worker(self) -> None:
        # caller holds self._lock
        if not self._worker_active and not self._stopped:
            self._worker_active = True
            self.workers_started += 1
            threading.Thread(
                target=self._run_worker,
                name=f"ai-check-worker-{self.workers_started}",
                daemon=True,
            ).start()

    def _run_worker(self) -> None:
        """Run queued checks, refilling from the documents when empty."""
        logger.debug("Check worker started")
        while True:
            with self._lock:
                if self._stopped:
                    self._worker_active = False
                    return
                entry = self._entries.pop(0) if self._entries else None
                last_doc_id, last_start = self._last_doc_id, self._last_start

            if entry is None and last_doc_id is not None:
                entry = self.dequeue_next_for(last_doc_id, last_start)
            if entry is None:
                with self._lock:
                    if self._entries and not self._stopped:
                        continue
                    self._worker_active = False
                    self._last_start = None
                logger.debug("Check worker stopped: nothing left to check")
                return

            with self._lock:
                self._last_doc_id = entry.doc_id
                self._last_start = entry.start
            try:
                self._runner(entry)
            except Exception as e:
                logger.error(
                    f"Check failed for {entry.doc_id} [{entry.start.number}, {entry.end.number}): {e}",
                    extra={"doc_id": entry.doc_id},
                )

    @staticmethod
    def _is_usable(document: CheckDocument) -> bool:
        try:
            return not document.is_disposed() and document.is_editable()
        except Exception as e:
            logger.error(f"Cannot query document state: {e}")
            return False

    def _next_entry_from(
        self,
        document: CheckDocument,
        hint: Optional[TextParagraph],
    ) -> Optional[CheckQueueEntry]:
        try:
            paragraph = document.next_check_paragraph(hint)
            if paragraph is None:
                return None
            return self.create_entry(document.doc_id, document.store, paragraph)
        except Exception as e:
            logger.error(f"Cannot get next check entry from document {document.doc_id}: {e}")
            return None
