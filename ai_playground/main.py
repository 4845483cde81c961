"""
AI Playground Gateway Application Entry Point

Builds the FastAPI app: playground routes, CORS for the browser UI and
the handlers that turn errors raised before streaming into `{"error": ...}`
responses.
"""

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ai_playground.api import playground_router
from ai_playground.common.errors import AppError
from ai_playground.config import get_settings
from ai_playground.logging_config import setup_logging

logger = logging.getLogger(__name__)

# Initialize logging configuration
setup_logging()

settings = get_settings()

app = FastAPI(
    title=settings.APP_NAME,
    description="Streaming chat playground for Anthropic, Gemini and OpenRouter",
    version="0.1.0",
)

# CORS for the browser playground
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Trace-ID", "X-Provider"],
)


# Global Exception Handler
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """
    Handle application custom exceptions

    Details (provider, trace id) are only included when DEBUG is on.
    """
    logger.info(
        "Request failed: path=%s status=%s kind=%s error=%s",
        request.url.path,
        exc.status_code,
        exc.kind.value,
        exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(include_details=get_settings().DEBUG),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Handle uncaught exceptions

    Stack traces are logged but never returned to clients.
    """
    logger.error(
        "Uncaught exception: %s\nPath: %s\nTraceback:\n%s",
        str(exc),
        request.url.path,
        traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


# Health Check Endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health Check

    Liveness probe, never touches an upstream.
    """
    return {"status": "healthy"}


app.include_router(playground_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ai_playground.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
