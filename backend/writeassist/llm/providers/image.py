"""Image handler: prompt-to-image generation returning the image URL."""

from typing import Optional

from ..models import RequestCategory, RequestEntry
from ..protocol import build_request, parse_image_response
from .base import CategoryHandler


class ImageHandler(CategoryHandler):
    """Sends image prompts; an exclusion list is appended as ``prompt|exclude``."""

    @property
    def category(self) -> RequestCategory:
        return RequestCategory.image

    def run(self, entry: RequestEntry) -> Optional[str]:
        if entry.instruction is None or entry.exclude is None:
            return None
        prompt = entry.instruction.strip()
        if not prompt:
            return ""
        exclude = entry.exclude.strip()
        if exclude:
            prompt = f"{prompt}|{exclude}"

        url, body = build_request(self._config, entry.model_copy(update={"instruction": prompt}))
        response = self._transport.post_json(
            url,
            self._config.api_key,
            body,
            request_id=entry.id,
            category=self.category.value,
        )
        return parse_image_response(response.content)
