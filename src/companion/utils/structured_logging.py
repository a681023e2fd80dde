"""
Structured logging for the assistant.

Module code logs through stdlib ``logging``; this module routes those
records through structlog and adds the turn-level fields the service
cares about. A chat request binds ``request_id`` and ``user_id`` for its
duration, and every answered turn emits one ``turn_answered`` event with
the route that produced the reply.
"""

import logging
import sys
from typing import Optional

import structlog


def setup_structured_logging(log_level: str = "INFO", log_format: str = "json"):
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: Logging level name
        log_format: ``json`` for production, anything else renders for a console
    """
    renderer = (
        structlog.processors.JSONRenderer(ensure_ascii=False) if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=shared + [
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Plain logging.getLogger(__name__) records get the same fields and renderer
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # The OpenAI SDK logs every request through httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    structlog.contextvars.bind_contextvars(service="companion")


class LoggingContext:
    """Binds request_id and user_id to every log line inside a chat request."""

    def __init__(self, request_id: str, user_id: Optional[str] = None):
        self.bindings = {"request_id": request_id}
        if user_id:
            self.bindings["user_id"] = str(user_id)
        self._tokens = None

    def __enter__(self):
        self._tokens = structlog.contextvars.bind_contextvars(**self.bindings)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        structlog.contextvars.reset_contextvars(**self._tokens)


def log_turn(
    route: str,
    user_id: str,
    duration_ms: float,
    llm_enabled: bool,
    tool_rounds: int = 0,
    completions: int = 0,
    fallback_reason: Optional[str] = None
):
    """
    Emit the summary event for one answered turn.

    Args:
        route: emergency, quick_rule, llm or offline
        user_id: Conversing user
        duration_ms: Time spent producing the reply
        llm_enabled: Whether a language model is configured
        tool_rounds: Tool rounds executed by the completion loop
        completions: Completion API calls made
        fallback_reason: Why the offline responder answered, if it did
    """
    fields = {
        "route": route,
        "user_id": user_id,
        "duration_ms": round(duration_ms),
        "llm_enabled": llm_enabled,
        "tool_rounds": tool_rounds,
        "completions": completions,
    }
    if fallback_reason:
        fields["fallback_reason"] = fallback_reason
    structlog.get_logger("companion.turns").info("turn_answered", **fields)


def log_turn_failure(error: BaseException, stage: str, user_id: str, fallback_reason: str):
    """Log a turn failure that the offline responder recovered from."""
    structlog.get_logger("companion.turns").error(
        "turn_failed",
        stage=stage,
        user_id=user_id,
        error_type=type(error).__name__,
        error_message=str(error),
        fallback_reason=fallback_reason,
        exc_info=error,
    )


def log_chat_request(user_id: str, response_time_ms: int, topic: str, health_alert: Optional[str] = None):
    """Emit the per-request event written by the chat endpoint."""
    structlog.get_logger("companion.api").info(
        "chat_request",
        user_id=user_id,
        response_time_ms=response_time_ms,
        topic=topic,
        health_alert=health_alert,
    )
