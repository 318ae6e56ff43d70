"""AI request endpoints.

Provides endpoints for:
- POST /ai/text: Run a text instruction
- POST /ai/image: Generate an image
- POST /ai/speech: Convert text to an audio file
- POST /ai/check: Grammar-check the batch around one paragraph
- POST /ai/translate: Translate a list of paragraphs

Endpoints are plain functions: FastAPI runs them in its threadpool while
they block on the request queue.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from writeassist.api.exceptions import AiUnavailableError, ValidationError
from writeassist.api.response import success_response
from writeassist.llm.models import (
    DEFAULT_IMAGE_SIZE,
    DEFAULT_IMAGE_STEP,
    DEFAULT_TEXT_TEMPERATURE,
    RequestCategory,
)
from writeassist.services.ai_service import AiService, get_ai_service
from writeassist.services.collaborators import InMemoryDocument, ParagraphKind, TextParagraph
from writeassist.services.paragraph_service import translate_document

router = APIRouter(prefix="/ai", tags=["AI"])


class TextRequest(BaseModel):
    """Request body for a text instruction."""

    instruction: str
    text: str = ""
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = DEFAULT_TEXT_TEMPERATURE
    seed: Annotated[int, Field(ge=0)] = 0
    locale: str = "en"
    only_one_paragraph: bool = False
    priority: bool = False


class ImageRequest(BaseModel):
    """Request body for image generation."""

    prompt: Annotated[str, Field(min_length=1)]
    exclude: str = ""
    step: Annotated[int, Field(ge=1)] = DEFAULT_IMAGE_STEP
    seed: Annotated[int, Field(ge=0)] = 0
    size: int = DEFAULT_IMAGE_SIZE


class SpeechRequest(BaseModel):
    """Request body for text-to-speech."""

    text: Annotated[str, Field(min_length=1)]
    filename: Annotated[str, Field(min_length=1)]


class CheckRequest(BaseModel):
    """Request body for a grammar check.

    ``headings`` maps paragraph index to outline level; chapters start at
    every heading.
    """

    paragraphs: Annotated[list[str], Field(min_length=1)]
    paragraph: Annotated[int, Field(ge=0)]
    headings: dict[int, int] = Field(default_factory=dict)
    locale: str = "en"
    single_paragraph_mode: bool = False
    doc_id: str = "api"


class CheckResponse(BaseModel):
    """Result of a grammar check."""

    start: int
    end: int
    original: str
    corrected: Optional[str]
    changed: bool


class TranslateRequest(BaseModel):
    """Request body for a document translation."""

    paragraphs: Annotated[list[str], Field(min_length=1)]
    language: Annotated[str, Field(min_length=2)]


def _require(service: AiService, category: RequestCategory, result: Optional[str]) -> str:
    if result is None:
        raise AiUnavailableError(
            category.value,
            detail=service.last_message,
            disabled=not service.is_enabled(category),
        )
    return result


@router.post("/text")
def run_text(request: TextRequest, service: AiService = Depends(get_ai_service)) -> dict:
    """Run an instruction on a text and return the cleaned answer."""
    output = service.submit_text_request(
        request.instruction,
        request.text,
        temperature=request.temperature,
        seed=request.seed,
        locale=request.locale,
        only_one_paragraph=request.only_one_paragraph,
        priority=request.priority,
    )
    return success_response({"output": _require(service, RequestCategory.text, output)})


@router.post("/image")
def run_image(request: ImageRequest, service: AiService = Depends(get_ai_service)) -> dict:
    """Generate an image and return its URL."""
    url = service.submit_image_request(
        request.prompt,
        exclude=request.exclude,
        step=request.step,
        seed=request.seed,
        size=request.size,
    )
    return success_response({"url": _require(service, RequestCategory.image, url)})


@router.post("/speech")
def run_speech(request: SpeechRequest, service: AiService = Depends(get_ai_service)) -> dict:
    """Convert text to speech and return the written audio file."""
    filename = service.submit_speech_request(request.text, request.filename)
    return success_response({"filename": _require(service, RequestCategory.speech, filename)})


@router.post("/check")
def run_check(request: CheckRequest, service: AiService = Depends(get_ai_service)) -> dict:
    """Grammar-check the batch of paragraphs around ``paragraph``."""
    if request.paragraph >= len(request.paragraphs):
        raise ValidationError(
            f"Paragraph {request.paragraph} out of range (document has {len(request.paragraphs)})"
        )
    document = InMemoryDocument(
        request.doc_id,
        request.paragraphs,
        headings=request.headings,
        locale=request.locale,
    )
    result = service.check_paragraph(
        document.doc_id,
        document,
        TextParagraph(ParagraphKind.text, request.paragraph),
        locale=request.locale,
        single_paragraph_mode=request.single_paragraph_mode,
    )
    _require(service, RequestCategory.text, result.corrected)
    return success_response(
        CheckResponse(
            start=result.paragraph_range.start,
            end=result.paragraph_range.end,
            original=result.original,
            corrected=result.corrected,
            changed=result.changed,
        )
    )


@router.post("/translate")
def run_translate(request: TranslateRequest, service: AiService = Depends(get_ai_service)) -> dict:
    """Translate paragraphs in order; failed paragraphs stay untranslated."""
    if not service.is_enabled(RequestCategory.text):
        raise AiUnavailableError(RequestCategory.text.value, disabled=True)
    document = InMemoryDocument("translate", request.paragraphs, locale=request.language)
    replaced = translate_document(service, document, document.doc_id, request.language)
    return success_response({"paragraphs": document.paragraphs, "translated": replaced})
