"""
AI chat endpoint.
"""

import logging
import time
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, status

from src.companion.models import AIChatRequest, AIChatResponse, ChatContext
from src.companion.processors.activity_tagging import detect_health_alert, detect_topic
from src.companion.processors.orchestrator import ConversationOrchestrator
from src.companion.utils.error_handler import CompanionErrorHandler, ServiceError
from src.companion.utils.structured_logging import LoggingContext, log_chat_request

logger = logging.getLogger(__name__)

# Set by the application lifespan
_orchestrator: ConversationOrchestrator = None


def get_orchestrator() -> ConversationOrchestrator:
    """Get orchestrator instance."""
    if _orchestrator is None:
        raise RuntimeError("Conversation orchestrator not initialized")
    return _orchestrator


router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("/ai", response_model=AIChatResponse, response_model_by_alias=True)
async def chat_with_assistant(
    request: AIChatRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
) -> AIChatResponse:
    """
    Answer one utterance from an elderly user.

    The reply is produced by the conversation orchestrator, which never
    fails for a known user; storage errors on the activity feed are logged.
    """
    start = time.perf_counter()
    repository = orchestrator.repository

    with LoggingContext(request_id=str(uuid4()), user_id=request.user_id):
        try:
            user = await repository.get_user(request.user_id)
        except ServiceError as e:
            raise CompanionErrorHandler.to_http_exception(e)
        except Exception as e:
            raise CompanionErrorHandler.to_http_exception(CompanionErrorHandler.handle_repository_error(e))

        if user is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"message": "Usuario no encontrado"}
            )

        context = ChatContext(user=user, message_history=request.message_history)
        reply = await orchestrator.generate_response(request.message, context)
        response_time = int((time.perf_counter() - start) * 1000)

        topic = detect_topic(request.message)
        alert = detect_health_alert(request.message)
        try:
            await repository.create_activity(user.id, "chat", f"Conversación con asistente IA - {topic}")
            if alert:
                logger.warning(f"Health alert for user {user.id}: {alert}")
                await repository.create_activity(user.id, "health_alert", f"Alerta de salud detectada: {alert}")
        except Exception as e:
            logger.warning(f"Failed to record chat activity for user {user.id}: {e}")

        log_chat_request(user.id, response_time, topic, alert)
        return AIChatResponse(response=reply, response_time=response_time)
