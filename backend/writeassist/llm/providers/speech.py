"""Speech handler: text-to-speech written to an audio file."""

import logging
from pathlib import Path
from typing import Optional

from ..models import RequestCategory, RequestEntry
from ..protocol import build_request, parse_speech_response
from .base import CategoryHandler

logger = logging.getLogger(__name__)


class SpeechHandler(CategoryHandler):
    """Sends text to a TTS backend and stores the returned audio."""

    @property
    def category(self) -> RequestCategory:
        return RequestCategory.speech

    def run(self, entry: RequestEntry) -> Optional[str]:
        if not entry.text or not entry.text.strip() or not entry.filename:
            return None

        url, body = build_request(self._config, entry)
        response = self._transport.post_json(
            url,
            self._config.api_key,
            body,
            request_id=entry.id,
            category=self.category.value,
        )
        audio = parse_speech_response(response.content)

        target = Path(entry.filename)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(audio)
        logger.info(f"Wrote {len(audio)} bytes of audio to {target}")
        return str(target)
