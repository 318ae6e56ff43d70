"""Text handler: grammar, style and free-form instructions."""

import logging
import time
from typing import Optional

from ..models import RequestCategory, RequestEntry
from ..normalizer import normalize_output
from ..protocol import build_request, parse_text_response
from .base import CategoryHandler

logger = logging.getLogger(__name__)


class TextHandler(CategoryHandler):
    """Sends text instructions in the configured dialect and cleans the answer."""

    @property
    def category(self) -> RequestCategory:
        return RequestCategory.text

    def run(self, entry: RequestEntry) -> Optional[str]:
        if entry.instruction is None or entry.text is None:
            return None
        instruction = entry.instruction.strip()
        text: Optional[str] = entry.text.strip()
        if entry.only_one_paragraph and (not instruction or not text):
            return ""
        if not instruction:
            if not text:
                return text
            # the text itself is the prompt
            instruction = text
            text = None
        elif not text:
            text = None

        original = instruction if text is None else text
        prepared = entry.model_copy(update={"instruction": instruction, "text": text})
        url, body = build_request(self._config, prepared)

        start_time = time.perf_counter()
        response = self._transport.post_json(
            url,
            self._config.api_key,
            body,
            request_id=entry.id,
            category=self.category.value,
        )
        content = parse_text_response(self._config.dialect, response.content)
        out = normalize_output(content, original, instruction, entry.only_one_paragraph)

        logger.debug(
            "Text request answered",
            extra={
                "request_id": entry.id,
                "dialect": self._config.dialect.value,
                "latency_ms": int((time.perf_counter() - start_time) * 1000),
            },
        )
        return out
