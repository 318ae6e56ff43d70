"""Output normalization for text answers.

Backends echo prompts inconsistently, so the cleanup is heuristic. Each
stage is a separate function and ``normalize_output`` runs them in order:

1. strip one layer of surrounding braces the input did not have
2. normalize line endings and trim
3. (one-paragraph mode) isolate the answer paragraph and drop echoed
   instruction prefixes
4. undo the ``input -> answer`` arrow annotation
"""

import re

PARAGRAPH_SEPARATOR = "\r"
ARROW = "->"

_CLAUSE_SPLIT = re.compile(r"[-.:!?]")


def _split(text: str, sep: str) -> list[str]:
    """Split and drop trailing empty parts (leading ones are kept)."""
    parts = text.split(sep)
    while len(parts) > 1 and parts[-1] == "":
        parts.pop()
    return parts


def strip_wrapping_braces(out: str, original: str) -> str:
    """Remove one layer of ``{}`` if the original input was not wrapped."""
    if out.startswith("{") and out.endswith("}") and len(out) >= 2:
        if not (original.startswith("{") and original.endswith("}")):
            return out[1:-1]
    return out


def normalize_line_endings(out: str) -> str:
    """Fold line breaks to the paragraph separator, unescape quotes, trim."""
    out = out.replace("\n", PARAGRAPH_SEPARATOR)
    out = out.replace(PARAGRAPH_SEPARATOR * 2, PARAGRAPH_SEPARATOR)
    return out.replace('\\"', '"').strip()


def first_clause(instruction: str) -> str:
    """Return the instruction up to its first sentence punctuation."""
    return _CLAUSE_SPLIT.split(instruction)[0].strip()


def _restates(part: str, clause: str) -> bool:
    return bool(clause) and part.startswith(clause)


def isolate_answer_paragraph(out: str, original: str, instruction: str) -> str:
    """Keep the single paragraph that holds the answer.

    A first paragraph ending with ``:`` or restating the instruction is a
    preamble; the answer is then the second paragraph. A remaining
    ``label: answer`` prefix is dropped as well, unless the text before the
    colon is the start of the original input (the colon is then part of
    the answer).
    """
    clause = first_clause(instruction)
    parts = _split(out, PARAGRAPH_SEPARATOR)
    first_part = parts[0].strip()
    if len(parts) > 1 and (first_part.endswith(":") or _restates(first_part, clause)):
        out = parts[1].strip()
    else:
        out = first_part
    out = strip_wrapping_braces(out, original)

    if ":" in out and (":" not in original or _restates(out.strip(), clause)):
        parts = _split(out, ":")
        head = parts[0].strip()
        if len(parts) > 1 and not (head and original.strip().startswith(head)):
            n = 1
            if len(parts) > 2 and out.strip().startswith(instruction.strip()):
                # whole instruction echoed, including its own colon
                n = 2
            out = ":".join(parts[n:])
            out = strip_wrapping_braces(out.strip(), original)
    return out


def strip_arrow_annotation(out: str, original: str) -> str:
    """Drop an echoed ``original -> answer`` prefix."""
    if ARROW in out and ARROW not in original and out.startswith(original):
        return out.split(ARROW, 1)[1].strip()
    return out


def normalize_output(
    out: str,
    original: str,
    instruction: str,
    only_one_paragraph: bool = False,
) -> str:
    """Clean a raw model answer.

    Args:
        out: Text extracted from the backend response.
        original: Input text that was sent (or the instruction when no text was sent).
        instruction: Instruction that was sent.
        only_one_paragraph: Reduce the answer to a single paragraph.

    Returns:
        The cleaned answer.
    """
    out = strip_wrapping_braces(out, original)
    out = normalize_line_endings(out)
    if only_one_paragraph:
        out = isolate_answer_paragraph(out, original, instruction)
    out = strip_arrow_annotation(out, original)
    return out
