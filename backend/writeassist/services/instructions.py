"""Instruction catalog for the AI text commands.

Each command maps to an English instruction and a default temperature.
The target language is appended to every instruction so the model
answers in the language of the text.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class AiCommand(str, Enum):
    """Text commands offered on a paragraph."""
    correct_grammar = "correct_grammar"
    improve_style = "improve_style"
    reformulate = "reformulate"
    expand = "expand"
    general = "general"


# ==============================================================================
# Instructions
# ==============================================================================

CORRECT_INSTRUCTION = "Output the corrected text"
STYLE_INSTRUCTION = "Rephrase the following text to improve its style"
REFORMULATE_INSTRUCTION = "Reformulate the following text"
EXPAND_INSTRUCTION = "Expand the following text"

TRANSLATE_INSTRUCTION = "Print the translation of the following text in "
TRANSLATE_INSTRUCTION_POST = " (without comments)"

DEFAULT_LANGUAGE = "en"

# ==============================================================================
# Temperatures
# ==============================================================================

CORRECT_TEMPERATURE = 0.0
REFORMULATE_TEMPERATURE = 0.5
EXPAND_TEMPERATURE = 0.7
TRANSLATE_TEMPERATURE = 0.0
GENERAL_TEMPERATURE = 0.7

_INSTRUCTIONS: dict[AiCommand, str] = {
    AiCommand.correct_grammar: CORRECT_INSTRUCTION,
    AiCommand.improve_style: STYLE_INSTRUCTION,
    AiCommand.reformulate: REFORMULATE_INSTRUCTION,
    AiCommand.expand: EXPAND_INSTRUCTION,
}

_TEMPERATURES: dict[AiCommand, float] = {
    AiCommand.correct_grammar: CORRECT_TEMPERATURE,
    AiCommand.improve_style: CORRECT_TEMPERATURE,
    AiCommand.reformulate: REFORMULATE_TEMPERATURE,
    AiCommand.expand: EXPAND_TEMPERATURE,
    AiCommand.general: GENERAL_TEMPERATURE,
}

# Commands whose answer must stay a single paragraph
_ONE_PARAGRAPH = {AiCommand.correct_grammar, AiCommand.improve_style, AiCommand.reformulate}


def language_of(locale: Optional[str]) -> str:
    """Language part of a locale tag ("de-DE" -> "de"), "en" when missing."""
    if not locale:
        return DEFAULT_LANGUAGE
    language = locale.replace("_", "-").split("-")[0].strip()
    return language or DEFAULT_LANGUAGE


def get_instruction(command: AiCommand, locale: Optional[str] = None, custom: Optional[str] = None) -> str:
    """Build the instruction for a command.

    Args:
        command: Text command.
        locale: Locale of the text; defaults to English.
        custom: User-entered instruction, required for ``AiCommand.general``.

    Returns:
        Instruction with the language suffix, e.g.
        ``"Output the corrected text (language: de)"``.

    Raises:
        ValueError: ``general`` without a custom instruction.
    """
    if command == AiCommand.general:
        if not custom or not custom.strip():
            raise ValueError("General command needs an instruction")
        base = custom.strip()
    else:
        base = _INSTRUCTIONS[command]
    return f"{base} (language: {language_of(locale)})"


def get_temperature(command: AiCommand) -> float:
    return _TEMPERATURES[command]


def is_one_paragraph(command: AiCommand) -> bool:
    return command in _ONE_PARAGRAPH


def translate_instruction(language: str) -> str:
    """Instruction used to translate a document into ``language``."""
    return f"{TRANSLATE_INSTRUCTION}{language}{TRANSLATE_INSTRUCTION_POST}"
