#!/usr/bin/env python3
"""
Companion assistant entry point.

Runs startup checks and then starts the FastAPI server.
"""

import asyncio
import logging
import sys

from src.companion.config import get_settings
from src.companion.services.redis_store import RedisConversationRepository
from src.companion.services.repository import InMemoryCareRepository
from src.companion.utils.structured_logging import setup_structured_logging

logger = logging.getLogger(__name__)


async def startup_checks() -> bool:
    """Check configuration and, when enabled, the Redis conversation store."""
    settings = get_settings()
    logger.info(f"Environment: {settings.environment}")

    if settings.llm_enabled:
        logger.info(f"Language model enabled: {settings.openai_model}")
    else:
        logger.warning("OPENAI_API_KEY not set, replies will come from the offline responder")

    if settings.use_redis_conversation_store:
        logger.info("Testing Redis connection...")
        store = RedisConversationRepository(InMemoryCareRepository(), redis_url=settings.redis_url)
        try:
            if not await store.ping():
                logger.error("Redis connection failed")
                return False
        finally:
            await store.close()

    logger.info("Startup checks completed successfully")
    return True


def start_server():
    """Start the FastAPI server."""
    import uvicorn

    settings = get_settings()
    logger.info(f"Starting server on {settings.host}:{settings.port}")
    uvicorn.run(
        "src.companion.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info" if settings.environment == "development" else "warning"
    )


async def main():
    """Main startup function."""
    settings = get_settings()
    setup_structured_logging(settings.log_level, settings.log_format)
    if not await startup_checks():
        logger.error("Startup checks failed")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
    start_server()
