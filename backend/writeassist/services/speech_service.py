"""Chapter-wise text-to-speech of a whole document.

The body text is cut at real headings (outline level above 0). Every
chunk becomes one audio file named ``NN_<heading>``, or ``NN_Intro`` for
text before the first heading, in a fresh output directory.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .ai_service import AiService
from .collaborators import OutlinedText, ParagraphKind, TextParagraph

logger = logging.getLogger(__name__)

AUDIO_DIRNAME = "audioOut"
INTRO_NAME = "Intro"

_NON_WORD = re.compile(r"\W")


@dataclass(frozen=True)
class SpeechChunk:
    """Consecutive body paragraphs ``[start, end)`` spoken into one file."""
    name: str
    text: str
    start: int
    end: int


def chunk_filename(index: int, heading: str | None) -> str:
    label = _NON_WORD.sub("_", heading) if heading else INTRO_NAME
    return f"{index:02d}_{label}"


def plan_speech_chunks(document: OutlinedText) -> list[SpeechChunk]:
    """Split the body text at real headings.

    A chunk starts at a heading (or at paragraph 0) and runs up to the
    next heading. Every paragraph is followed by a newline.
    """
    size = document.paragraph_count(ParagraphKind.text)
    chunks: list[SpeechChunk] = []
    start = 0
    while start < size:
        heading = None
        if document.heading_level(start) > 0:
            heading = document.paragraph_text(TextParagraph(ParagraphKind.text, start))
        end = start + 1
        while end < size and document.heading_level(end) <= 0:
            end += 1
        text = "".join(
            document.paragraph_text(TextParagraph(ParagraphKind.text, n)) + "\n"
            for n in range(start, end)
        )
        chunks.append(SpeechChunk(chunk_filename(len(chunks), heading), text, start, end))
        start = end
    return chunks


def prepare_audio_dir(path: Path) -> Path:
    """Create an empty output directory.

    An existing directory is renamed to the first free ``<path>.<n>``.
    """
    if path.exists():
        n = 1
        while path.with_name(f"{path.name}.{n}").exists():
            n += 1
        rotated = path.with_name(f"{path.name}.{n}")
        path.rename(rotated)
        logger.info(f"Moved previous audio output to {rotated}")
    path.mkdir(parents=True)
    return path


def read_document_aloud(
    service: AiService,
    document: OutlinedText,
    base_dir: Path,
    dirname: str = AUDIO_DIRNAME,
) -> list[str]:
    """Convert a document to one audio file per chapter.

    Stops at the first chunk that fails.

    Returns:
        Written file paths, in document order.
    """
    audio_dir = prepare_audio_dir(Path(base_dir) / dirname)
    written: list[str] = []
    for chunk in plan_speech_chunks(document):
        filename = service.submit_speech_request(chunk.text, str(audio_dir / chunk.name))
        if filename is None:
            logger.error(
                f"Speech output failed at {chunk.name}, stopping",
                extra={"paragraph": chunk.start},
            )
            break
        written.append(filename)
    return written
