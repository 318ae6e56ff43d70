"""Interfaces consumed from the host document integration.

The orchestration layer never touches an editor directly; it only sees
paragraphs through these protocols.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Optional, Protocol, Sequence


class ParagraphKind(IntEnum):
    """Structural kind of a paragraph.

    ``unknown`` marks a flat paragraph not yet mapped into the chapter
    structure; the batch planner never extends such a paragraph.
    """
    unknown = -1
    text = 0
    table = 1
    footnote = 2
    endnote = 3
    header_footer = 4
    frame = 5
    shape = 6


@dataclass(frozen=True)
class TextParagraph:
    """Logical paragraph id: kind discriminator plus index within that kind."""
    kind: ParagraphKind
    number: int

    def with_number(self, number: int) -> TextParagraph:
        return TextParagraph(self.kind, number)


class ParagraphStore(Protocol):
    """Read-only paragraph access used by the batch planner."""

    def paragraph_text(self, paragraph: TextParagraph) -> str:
        """Return the text of a logical paragraph."""
        ...

    def chapter_range(self, paragraph: TextParagraph) -> tuple[int, int]:
        """Return ``[start, end)`` of the chapter containing the paragraph."""
        ...


class DocumentEditor(ParagraphStore, Protocol):
    """Paragraph access plus in-place replacement."""

    def paragraph_count(self, kind: ParagraphKind = ParagraphKind.text) -> int: ...

    def replace_paragraph_text(self, doc_id: str, paragraph: TextParagraph, new_text: str) -> None: ...


class CheckDocument(Protocol):
    """An open document taking part in background checks."""

    doc_id: str
    locale: str

    @property
    def store(self) -> ParagraphStore: ...

    def is_disposed(self) -> bool: ...

    def is_editable(self) -> bool:
        """True for the editable text document type that can be checked."""
        ...

    def next_check_paragraph(self, hint: Optional[TextParagraph]) -> Optional[TextParagraph]:
        """Return the next paragraph still waiting for a check near ``hint``."""
        ...


class DocumentRegistry(Protocol):
    """All currently open documents, in a stable order."""

    def documents(self) -> Sequence[CheckDocument]: ...


class OutlinedText(Protocol):
    """Body text with its heading structure, used for chapter-wise output."""

    def paragraph_count(self, kind: ParagraphKind = ParagraphKind.text) -> int: ...

    def paragraph_text(self, paragraph: TextParagraph) -> str: ...

    def heading_level(self, number: int) -> int:
        """Outline level of a body paragraph; 0 for ordinary text."""
        ...


class InMemoryDocument:
    """Document kept as a list of body paragraphs.

    Chapters start at every paragraph with a heading level above 0. Backs
    the HTTP API, which receives whole documents per request.
    """

    def __init__(
        self,
        doc_id: str,
        paragraphs: Sequence[str],
        headings: Optional[dict[int, int]] = None,
        locale: str = "en",
        editable: bool = True,
    ):
        self.doc_id = doc_id
        self.locale = locale
        self._paragraphs = list(paragraphs)
        self._headings = {n: level for n, level in (headings or {}).items() if level > 0}
        self._editable = editable
        self._disposed = False
        self._checked: set[int] = set()
        self._lock = threading.Lock()

    @property
    def store(self) -> InMemoryDocument:
        return self

    @property
    def paragraphs(self) -> list[str]:
        with self._lock:
            return list(self._paragraphs)

    def paragraph_count(self, kind: ParagraphKind = ParagraphKind.text) -> int:
        return len(self._paragraphs) if kind == ParagraphKind.text else 0

    def paragraph_text(self, paragraph: TextParagraph) -> str:
        if paragraph.kind != ParagraphKind.text:
            raise KeyError(f"No paragraphs of kind {paragraph.kind.name}")
        with self._lock:
            return self._paragraphs[paragraph.number]

    def heading_level(self, number: int) -> int:
        return self._headings.get(number, 0)

    def chapter_range(self, paragraph: TextParagraph) -> tuple[int, int]:
        number = paragraph.number
        size = self.paragraph_count(paragraph.kind)
        if not 0 <= number < size:
            raise IndexError(f"Paragraph {number} out of range")
        start = max((n for n in self._headings if n <= number), default=0)
        end = min((n for n in self._headings if n > number), default=size)
        return start, end

    def replace_paragraph_text(self, doc_id: str, paragraph: TextParagraph, new_text: str) -> None:
        if doc_id != self.doc_id:
            raise KeyError(f"Unknown document: {doc_id}")
        with self._lock:
            self._paragraphs[paragraph.number] = new_text
            self._checked.discard(paragraph.number)

    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        self._disposed = True

    def is_editable(self) -> bool:
        return self._editable

    def mark_checked(self, paragraph: TextParagraph) -> None:
        with self._lock:
            self._checked.add(paragraph.number)

    def is_checked(self, paragraph: TextParagraph) -> bool:
        with self._lock:
            return paragraph.number in self._checked

    def next_check_paragraph(self, hint: Optional[TextParagraph]) -> Optional[TextParagraph]:
        """First unchecked paragraph from ``hint`` to the end, then from the top."""
        with self._lock:
            size = len(self._paragraphs)
            begin = hint.number if hint is not None and 0 <= hint.number < size else 0
            for number in list(range(begin, size)) + list(range(0, begin)):
                if number not in self._checked:
                    return TextParagraph(ParagraphKind.text, number)
        return None


class InMemoryDocumentRegistry:
    """Open documents in insertion order."""

    def __init__(self, documents: Optional[Iterable[CheckDocument]] = None):
        self._documents: dict[str, CheckDocument] = {}
        self._lock = threading.Lock()
        for document in documents or ():
            self.add(document)

    def add(self, document: CheckDocument) -> None:
        with self._lock:
            self._documents[document.doc_id] = document

    def remove(self, doc_id: str) -> Optional[CheckDocument]:
        with self._lock:
            return self._documents.pop(doc_id, None)

    def get(self, doc_id: str) -> Optional[CheckDocument]:
        with self._lock:
            return self._documents.get(doc_id)

    def documents(self) -> list[CheckDocument]:
        with self._lock:
            return list(self._documents.values())
