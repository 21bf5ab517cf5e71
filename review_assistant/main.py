"""
FastAPI entrypoint for the Code Review Assistant.

This module initializes the FastAPI application and registers all routes.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from review_assistant import __version__
from review_assistant.api import health, review
from review_assistant.config import settings
from review_assistant.dependencies import get_conversation_store, get_dispatcher
from review_assistant.observability.errors import capture_exception, setup_error_tracking
from review_assistant.observability.logging import setup_logging
from review_assistant.observability.metrics import setup_metrics

logger = logging.getLogger(__name__)

EVICTION_INTERVAL_SECONDS = 60


async def evict_idle_sessions() -> None:
    """Periodically drop session actors nobody has used for a while."""
    dispatcher = get_dispatcher()
    while True:
        await asyncio.sleep(EVICTION_INTERVAL_SECONDS)
        dispatcher.evict_idle(settings.SESSION_IDLE_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Initialize observability and storage on startup; stop background
    work on shutdown.
    """
    setup_logging(settings)
    setup_error_tracking(settings)
    setup_metrics(settings)

    await asyncio.to_thread(get_conversation_store().initialize)
    eviction_task = asyncio.create_task(evict_idle_sessions())

    logger.info(
        "Code Review Assistant starting",
        extra={"environment": settings.ENVIRONMENT, "llm_provider": settings.LLM_PROVIDER},
    )
    try:
        yield
    finally:
        eviction_task.cancel()
        logger.info("Code Review Assistant shutting down")


app = FastAPI(
    title="Code Review Assistant",
    description="AI-powered code review with follow-up conversation",
    version=__version__,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Register routes
app.include_router(health.router, prefix="/api/health", tags=["health"])
app.include_router(review.router, prefix="/api", tags=["review"])


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed payloads are rejected before any agent sees them."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Missing or invalid fields",
            "details": [
                {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
                for err in exc.errors()
            ],
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    capture_exception(exc, tags={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal Server Error"},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "review_assistant.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
    )
