"""FastAPI application setup."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from writeassist.api.exceptions import AiUnavailableError, ValidationError
from writeassist.api.response import error_response
from writeassist.api.routes import ai, health
from writeassist.llm.errors import AiError, StoreAccessError
from writeassist.llm.transport import debug_enabled
from writeassist.services.ai_service import reset_ai_service

logging.basicConfig(
    level=logging.DEBUG if debug_enabled() else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    yield
    # Shutdown
    reset_ai_service()


app = FastAPI(
    title="WriteAssist AI API",
    description="Queued access to text, image and speech AI backends",
    version="1.0.0",
    lifespan=lifespan,
)


# Exception handlers
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=error_response("VALIDATION_ERROR", exc.message),
    )


@app.exception_handler(StoreAccessError)
async def store_access_handler(request: Request, exc: StoreAccessError) -> JSONResponse:
    """Handle unreadable paragraphs."""
    return JSONResponse(
        status_code=400,
        content=error_response("PARAGRAPH_UNAVAILABLE", str(exc)),
    )


@app.exception_handler(AiUnavailableError)
async def ai_unavailable_handler(request: Request, exc: AiUnavailableError) -> JSONResponse:
    """Handle requests that produced no result."""
    code = "AI_DISABLED" if exc.disabled else "AI_SERVICE_ERROR"
    return JSONResponse(
        status_code=503,
        content=error_response(code, str(exc)),
    )


@app.exception_handler(AiError)
async def ai_error_handler(request: Request, exc: AiError) -> JSONResponse:
    """Handle AI backend errors."""
    return JSONResponse(
        status_code=503,
        content=error_response("AI_SERVICE_ERROR", "AI service is temporarily unavailable. Please try again."),
    )


# Register routes
app.include_router(health.router)
app.include_router(ai.router, prefix="/api")
