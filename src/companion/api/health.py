"""
Health check endpoints for monitoring.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from src.companion.api.chat_endpoints import get_orchestrator
from src.companion.processors.orchestrator import ConversationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    """Liveness probe."""
    return {
        "status": "ok",
        "service": "companion",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check(orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    """Readiness probe: the repository must answer; the LLM is optional."""
    repository_ok = await orchestrator.repository.ping()
    checks = {
        "repository": "healthy" if repository_ok else "unhealthy",
        "llm": "configured" if orchestrator.llm_enabled else "offline",
    }

    if not repository_ok:
        logger.warning("Readiness check failed: repository unreachable")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "not_ready", "checks": checks}
        )

    return {
        "status": "ready",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
        "pending_background_tasks": orchestrator.task_runner.pending,
    }
