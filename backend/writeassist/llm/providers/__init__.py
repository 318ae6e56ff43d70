"""Category handlers.

One handler per request category, all sharing the CategoryHandler interface.
"""

from .base import CategoryHandler
from .image import ImageHandler
from .speech import SpeechHandler
from .text import TextHandler

__all__ = [
    "CategoryHandler",
    "TextHandler",
    "ImageHandler",
    "SpeechHandler",
]
