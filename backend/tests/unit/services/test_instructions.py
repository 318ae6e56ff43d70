"""Tests for the instruction catalog."""

import pytest

from writeassist.services.instructions import (
    AiCommand,
    get_instruction,
    get_temperature,
    is_one_paragraph,
    language_of,
    translate_instruction,
)


class TestGetInstruction:
    def test_appends_language(self):
        assert get_instruction(AiCommand.correct_grammar, "de-DE") == "Output the corrected text (language: de)"

    def test_defaults_to_english(self):
        assert get_instruction(AiCommand.expand, None).endswith("(language: en)")

    def test_general_uses_custom_text(self):
        assert get_instruction(AiCommand.general, "fr", custom=" Make it rhyme ") == "Make it rhyme (language: fr)"

    def test_general_requires_text(self):
        with pytest.raises(ValueError):
            get_instruction(AiCommand.general, "en")


class TestCatalog:
    @pytest.mark.parametrize(
        "command,temperature",
        [
            (AiCommand.correct_grammar, 0.0),
            (AiCommand.reformulate, 0.5),
            (AiCommand.expand, 0.7),
            (AiCommand.general, 0.7),
        ],
    )
    def test_temperatures(self, command, temperature):
        assert get_temperature(command) == temperature

    def test_expand_may_span_paragraphs(self):
        assert is_one_paragraph(AiCommand.correct_grammar)
        assert not is_one_paragraph(AiCommand.expand)

    def test_translate_instruction(self):
        assert translate_instruction("fr") == "Print the translation of the following text in fr (without comments)"

    @pytest.mark.parametrize("locale,language", [("pt_BR", "pt"), ("", "en"), ("nl", "nl")])
    def test_language_of(self, locale, language):
        assert language_of(locale) == language
