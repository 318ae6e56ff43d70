"""Batch planning: which paragraphs go into one AI request.

A chapter is cut into consecutive windows starting at its first paragraph.
Each window grows until its text reaches MIN_TEXT_LENGTH characters or the
chapter ends. The window holding the target paragraph is the batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from writeassist.llm.errors import StoreAccessError

from .collaborators import ParagraphKind, ParagraphStore, TextParagraph

logger = logging.getLogger(__name__)

# Minimum characters per batch
MIN_TEXT_LENGTH = 300

# Separator between paragraphs when a batch is sent as one text
PARAGRAPH_JOINER = "\n"


@dataclass(frozen=True)
class ParagraphRange:
    """Half-open paragraph range ``[start, end)`` of a single kind."""
    kind: ParagraphKind
    start: int
    end: int

    @property
    def first(self) -> TextParagraph:
        return TextParagraph(self.kind, self.start)

    @property
    def last(self) -> TextParagraph:
        return TextParagraph(self.kind, self.end - 1)

    def __len__(self) -> int:
        return max(0, self.end - self.start)

    def __contains__(self, paragraph: object) -> bool:
        return (
            isinstance(paragraph, TextParagraph)
            and paragraph.kind == self.kind
            and self.start <= paragraph.number < self.end
        )

    def paragraphs(self) -> list[TextParagraph]:
        return [TextParagraph(self.kind, n) for n in range(self.start, self.end)]


def _text_length(store: ParagraphStore, paragraph: TextParagraph) -> int:
    try:
        return len(store.paragraph_text(paragraph) or "")
    except StoreAccessError:
        raise
    except Exception as e:
        raise StoreAccessError(f"Cannot read paragraph {paragraph}: {e}") from e


def _chapter_bounds(store: ParagraphStore, paragraph: TextParagraph) -> tuple[int, int]:
    try:
        start, end = store.chapter_range(paragraph)
    except StoreAccessError:
        raise
    except Exception as e:
        raise StoreAccessError(f"Cannot read chapter of paragraph {paragraph}: {e}") from e
    return start, end


def plan_range(
    target: TextParagraph,
    store: ParagraphStore,
    single_paragraph_mode: bool = False,
    min_length: int = MIN_TEXT_LENGTH,
) -> ParagraphRange:
    """Compute the batch containing ``target``.

    Args:
        target: Paragraph that needs an AI call.
        store: Read-only paragraph accessor.
        single_paragraph_mode: Always batch the target paragraph alone.
        min_length: Characters a window accumulates before it closes.

    Returns:
        Range inside the target's chapter. An empty chapter yields the
        chapter's own bounds.

    Raises:
        StoreAccessError: The accessor failed; skip this paragraph.
    """
    if single_paragraph_mode or target.kind == ParagraphKind.unknown:
        return ParagraphRange(target.kind, target.number, target.number + 1)

    chapter_start, chapter_end = _chapter_bounds(store, target)
    i = chapter_start
    while i < chapter_end:
        length = 0
        j = i
        while j < chapter_end and length < min_length:
            length += _text_length(store, target.with_number(j))
            j += 1
        if j > target.number:
            return ParagraphRange(target.kind, i, j)
        i = j
    return ParagraphRange(target.kind, chapter_start, chapter_end)


def range_text(paragraph_range: ParagraphRange, store: ParagraphStore) -> str:
    """Join the texts of a range into the string sent to the backend.

    Raises:
        StoreAccessError: The accessor failed.
    """
    texts = []
    for paragraph in paragraph_range.paragraphs():
        try:
            texts.append(store.paragraph_text(paragraph) or "")
        except Exception as e:
            raise StoreAccessError(f"Cannot read paragraph {paragraph}: {e}") from e
    return PARAGRAPH_JOINER.join(texts)


def paragraph_offset(paragraph: TextParagraph, paragraph_range: ParagraphRange, store: ParagraphStore) -> int:
    """Character offset of ``paragraph`` inside ``range_text(paragraph_range)``.

    Returns -1 when the paragraph lies outside the range.
    """
    if paragraph not in paragraph_range:
        return -1
    offset = 0
    for n in range(paragraph_range.start, paragraph.number):
        offset += _text_length(store, paragraph.with_number(n)) + len(PARAGRAPH_JOINER)
    return offset
