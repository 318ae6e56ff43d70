"""Health check endpoint."""

from fastapi import APIRouter, Depends

from writeassist.api.response import success_response
from writeassist.llm.models import RequestCategory
from writeassist.services.ai_service import AiService, get_ai_service

router = APIRouter(tags=["System"])


@router.get("/health")
def health_check(service: AiService = Depends(get_ai_service)) -> dict:
    """Return system health and which AI categories are enabled."""
    return success_response({
        "status": "ok",
        "enabled": {category.value: service.is_enabled(category) for category in RequestCategory},
    })
