"""
Conversational response orchestrator.

One call answers one user turn:

1. Emergency check, always first.
2. Offline responder when no language model is configured.
3. Quick rules for cheap deterministic replies.
4. Context assembly and the tool-calling completion loop.
5. Dosage safety override on whatever text was chosen.

After the reply is fixed the chat turns are stored, the interaction is
logged and the summary and memory updaters are scheduled in the background.
"""

import asyncio
import logging
import random
import time
from typing import Optional

from src.companion.clients.llm_client import CompletionClient
from src.companion.config import Settings, get_settings
from src.companion.models import ChatContext, ChatTurn
from src.companion.processors.completion_loop import CompletionLoop
from src.companion.processors.context_assembler import ContextAssembler
from src.companion.processors.offline_fallback import offline_reply
from src.companion.processors.quick_rules import QuickRuleResponder
from src.companion.safety.emergency import check_emergency, match_emergency, with_emergency_contact
from src.companion.safety.post_processor import enforce_safety
from src.companion.services.memory_updater import MemoryUpdater
from src.companion.services.repository import CareRepository, InMemoryCareRepository
from src.companion.services.task_runner import BackgroundTaskRunner
from src.companion.services.tool_router import ToolRouter
from src.companion.utils.error_handler import ServiceError
from src.companion.utils.metrics import fallback_counter, safety_override_counter, turn_counter
from src.companion.utils.structured_logging import log_turn, log_turn_failure

logger = logging.getLogger(__name__)

CHAT_LOG_PREVIEW_CHARS = 240


class ConversationOrchestrator:
    """Produces the assistant reply for a single user turn."""

    def __init__(
        self,
        settings: Settings,
        repository: CareRepository,
        client: Optional[CompletionClient] = None,
        task_runner: Optional[BackgroundTaskRunner] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize with injected collaborators.

        Args:
            settings: Service settings
            repository: Storage for records and conversation state
            client: Completion client; None means offline mode
            task_runner: Runner for post-turn work
            rng: Random source shared by exercises, fallbacks and updaters
        """
        self.settings = settings
        self.repository = repository
        self.client = client
        self.task_runner = task_runner or BackgroundTaskRunner(settings.updater_timeout_seconds)
        self.rng = rng or random.Random()

        self.quick_rules = QuickRuleResponder(rng=self.rng, timezone=settings.timezone)
        self.assembler = ContextAssembler(
            repository,
            history_token_budget=settings.history_token_budget,
            top_memories_limit=settings.top_memories_limit,
            profile_string_limit=settings.profile_string_limit
        )
        self.router = ToolRouter(repository)
        self.loop = CompletionLoop(client, self.router, settings) if client else None
        self.updater = MemoryUpdater(client, repository, settings, self.rng) if client else None

    @classmethod
    def init(
        cls,
        settings: Optional[Settings] = None,
        repository: Optional[CareRepository] = None
    ) -> "ConversationOrchestrator":
        """Build an orchestrator with default collaborators from settings."""
        settings = settings or get_settings()
        if repository is None:
            repository = InMemoryCareRepository(settings.timezone, settings.max_stored_chat_turns)
        client = CompletionClient(settings) if settings.llm_enabled else None
        if client is None:
            logger.warning("No OpenAI API key configured, every turn will use the offline responder")
        return cls(settings, repository, client)

    @property
    def llm_enabled(self) -> bool:
        return self.client is not None

    async def generate_response(self, message: str, context: ChatContext) -> str:
        """
        Answer one user utterance.

        Args:
            message: The user's utterance
            context: Conversing user and prior turns

        Returns:
            Reply text; never raises for a valid context
        """
        start = time.perf_counter()
        profile = context.user

        emergency = check_emergency(message)
        if emergency:
            label = match_emergency(message)
            logger.warning(f"Emergency utterance detected for user {profile.id}: {label}")
            safety_override_counter.labels(kind="emergency").inc()
            self._log_interaction_later(profile.id, "EMERGENCY", label or "")
            self._finish_turn("emergency", profile.id, start)
            return with_emergency_contact(emergency, profile.emergency_contact)

        if not self.llm_enabled:
            self._finish_turn("offline", profile.id, start, fallback_reason="no_llm")
            return enforce_safety(offline_reply(message, context, self.rng, self.settings.timezone), profile)

        quick = self.quick_rules.reply(message, profile)
        if quick:
            self._log_interaction_later(profile.id, "QUICK_RULE", quick)
            self._finish_turn("quick_rule", profile.id, start)
            return enforce_safety(quick, profile)

        try:
            assembled = await self.assembler.assemble(message, profile, context.message_history)
            result = await self.loop.run(assembled.messages, profile.id)
        except ServiceError as e:
            log_turn_failure(e, "completion", profile.id, fallback_reason=e.category.value)
            self._finish_turn("offline", profile.id, start, fallback_reason=e.category.value)
            return enforce_safety(offline_reply(message, context, self.rng, self.settings.timezone), profile)
        except Exception as e:
            log_turn_failure(e, "completion", profile.id, fallback_reason="internal")
            self._finish_turn("offline", profile.id, start, fallback_reason="internal")
            return enforce_safety(offline_reply(message, context, self.rng, self.settings.timezone), profile)

        final_text = result.text
        route, reason = "llm", None
        if not final_text:
            route, reason = "offline", "empty_completion"
            final_text = offline_reply(message, context, self.rng, self.settings.timezone)
        final_text = enforce_safety(final_text, profile)

        await self._record_turn(profile.id, message, final_text)
        self._schedule_updates(profile.id, assembled.summary, message, final_text)

        self._finish_turn(
            route, profile.id, start,
            tool_rounds=result.tool_rounds,
            completions=result.completions,
            fallback_reason=reason
        )
        return final_text

    def _finish_turn(
        self,
        route: str,
        user_id: str,
        start: float,
        tool_rounds: int = 0,
        completions: int = 0,
        fallback_reason: Optional[str] = None
    ):
        turn_counter.labels(route=route).inc()
        if fallback_reason:
            fallback_counter.labels(reason=fallback_reason).inc()
        log_turn(
            route,
            user_id,
            (time.perf_counter() - start) * 1000,
            llm_enabled=self.llm_enabled,
            tool_rounds=tool_rounds,
            completions=completions,
            fallback_reason=fallback_reason
        )

    async def _record_turn(self, user_id: str, user_text: str, assistant_text: str):
        """Store both chat turns and log the exchange; failures are only logged."""
        async def append_both():
            # User turn first so stored history keeps its order
            await self.repository.append_chat_turn(user_id, ChatTurn(role="user", content=user_text))
            await self.repository.append_chat_turn(user_id, ChatTurn(role="assistant", content=assistant_text))

        results = await asyncio.gather(
            append_both(),
            self.repository.create_activity(
                user_id, "chat", f"AI: CHAT_MESSAGE - {assistant_text[:CHAT_LOG_PREVIEW_CHARS]}"[:500]
            ),
            return_exceptions=True
        )
        for outcome in results:
            if isinstance(outcome, Exception):
                logger.warning(f"Post-turn write failed for user {user_id}: {outcome}")

    def _schedule_updates(self, user_id: str, summary: Optional[str], user_text: str, assistant_text: str):
        self.task_runner.submit(
            "rolling_summary",
            self.updater.maybe_update_rolling_summary(user_id, summary, user_text, assistant_text)
        )
        self.task_runner.submit(
            "memory_extraction",
            self.updater.extract_and_upsert_memories(user_id, user_text, assistant_text)
        )

    def _log_interaction_later(self, user_id: str, action: str, detail: str):
        description = f"AI: {action} - {detail}"[:500]
        self.task_runner.submit(
            "log_interaction",
            self.repository.create_activity(user_id, "chat", description)
        )

    async def shutdown(self):
        await self.task_runner.drain(timeout=self.settings.updater_timeout_seconds)
