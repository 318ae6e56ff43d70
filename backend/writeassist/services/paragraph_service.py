"""Paragraph rewrites and whole-document translation.

Both run through the request queue and replace paragraphs in place via
the document editor.
"""

from __future__ import annotations

import logging
from typing import Optional

from writeassist.llm.errors import StoreAccessError

from .ai_service import AiService
from .collaborators import DocumentEditor, ParagraphKind, TextParagraph
from .instructions import (
    TRANSLATE_TEMPERATURE,
    AiCommand,
    get_instruction,
    get_temperature,
    is_one_paragraph,
    translate_instruction,
)

logger = logging.getLogger(__name__)

# Seed for paragraph commands and translations
COMMAND_SEED = 1


def _read(editor: DocumentEditor, paragraph: TextParagraph) -> str:
    try:
        return editor.paragraph_text(paragraph) or ""
    except Exception as e:
        raise StoreAccessError(f"Cannot read paragraph {paragraph}: {e}") from e


def change_paragraph(
    service: AiService,
    editor: DocumentEditor,
    doc_id: str,
    paragraph: TextParagraph,
    command: AiCommand,
    locale: str = "en",
    custom_instruction: Optional[str] = None,
    replace: bool = True,
) -> Optional[str]:
    """Run a text command on one paragraph.

    Args:
        service: AI service to submit through.
        editor: Document access.
        doc_id: Document holding the paragraph.
        paragraph: Target paragraph.
        command: Which rewrite to run.
        locale: Language of the paragraph.
        custom_instruction: Instruction for ``AiCommand.general``.
        replace: Write a non-empty answer back into the paragraph.

    Returns:
        The answer, or None if the paragraph is empty or the request failed.

    Raises:
        StoreAccessError: The paragraph could not be read.
        ValueError: ``general`` without an instruction.
    """
    text = _read(editor, paragraph)
    if not text.strip():
        return None

    instruction = get_instruction(command, locale, custom=custom_instruction)
    output = service.submit_text_request(
        instruction,
        text,
        temperature=get_temperature(command),
        seed=COMMAND_SEED,
        locale=locale,
        only_one_paragraph=is_one_paragraph(command),
        priority=True,
    )
    logger.debug(
        "Paragraph command answered",
        extra={"doc_id": doc_id, "paragraph": paragraph.number, "command": command.value},
    )
    if replace and output:
        editor.replace_paragraph_text(doc_id, paragraph, output)
    return output


def translate_document(
    service: AiService,
    editor: DocumentEditor,
    doc_id: str,
    language: str,
) -> int:
    """Translate every body paragraph of a document in order.

    Empty paragraphs and failed requests leave the paragraph unchanged.

    Returns:
        Number of paragraphs replaced.
    """
    instruction = translate_instruction(language)
    count = editor.paragraph_count(ParagraphKind.text)
    replaced = 0
    logger.info(f"Translating {count} paragraphs of {doc_id} to {language}")
    for number in range(count):
        paragraph = TextParagraph(ParagraphKind.text, number)
        text = _read(editor, paragraph)
        if not text.strip():
            continue
        output = service.submit_text_request(
            instruction,
            text,
            temperature=TRANSLATE_TEMPERATURE,
            seed=COMMAND_SEED,
            locale=language,
            only_one_paragraph=True,
        )
        if output is None:
            logger.warning(f"Translation of paragraph {number} failed, keeping original")
            continue
        editor.replace_paragraph_text(doc_id, paragraph, output)
        replaced += 1
    return replaced
