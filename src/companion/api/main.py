"""
FastAPI application for the Companion conversational assistant.
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from src.companion.api import chat_endpoints
from src.companion.api.chat_endpoints import router as chat_router
from src.companion.api.health import router as health_router
from src.companion.config import get_settings
from src.companion.processors.orchestrator import ConversationOrchestrator
from src.companion.services.redis_store import RedisConversationRepository
from src.companion.services.repository import InMemoryCareRepository
from src.companion.utils.structured_logging import setup_structured_logging

logger = logging.getLogger(__name__)


def build_orchestrator() -> ConversationOrchestrator:
    """Wire the orchestrator and its repository from settings."""
    settings = get_settings()
    repository = InMemoryCareRepository(settings.timezone, settings.max_stored_chat_turns)
    if settings.use_redis_conversation_store:
        repository = RedisConversationRepository(
            records=repository,
            redis_url=settings.redis_url,
            max_chat_turns=settings.max_stored_chat_turns
        )
    return ConversationOrchestrator.init(settings, repository)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Set up the orchestrator on startup and drain background work on shutdown."""
    settings = get_settings()
    setup_structured_logging(settings.log_level, settings.log_format)
    logger.info("Starting Companion assistant...")

    try:
        orchestrator = build_orchestrator()
        chat_endpoints._orchestrator = orchestrator
        logger.info(f"Orchestrator ready (llm_enabled={orchestrator.llm_enabled})")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        raise

    yield

    logger.info("Shutting down Companion assistant...")
    try:
        await orchestrator.shutdown()
        if isinstance(orchestrator.repository, RedisConversationRepository):
            await orchestrator.repository.close()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")
    finally:
        chat_endpoints._orchestrator = None


app = FastAPI(
    title="Companion",
    description="Conversational assistant for elderly users of municipal care services",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add request processing time to headers."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000
    response.headers["X-Process-Time"] = f"{process_time:.2f}ms"
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Missing or empty fields are a plain 400."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "message": "userId y message son requeridos",
            "fields": [".".join(str(part) for part in error["loc"]) for error in exc.errors()],
        }
    )


app.include_router(chat_router)
app.include_router(health_router)
app.mount("/metrics", make_asgi_app())


@app.get("/")
async def root():
    return {
        "service": "Companion",
        "version": "1.0.0",
        "endpoints": {
            "chat": "/api/chat/ai",
            "health": "/health",
            "ready": "/health/ready",
            "metrics": "/metrics",
        },
    }
