"""
Tool-calling completion loop.

    INITIAL --(tool calls)--> AWAITING_TOOLS --> TOOL_EXECUTED --(tool calls)--> AWAITING_TOOLS
       |                           |                  |
       +------(text)---------------+--(round bound)---+-------(text)-------> FINAL

Tool rounds are bounded by ``max_tool_rounds``. When the bound is hit the
text of the last completion is used even if it asked for more tools.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from src.companion.clients.llm_client import CompletionClient, CompletionMessage
from src.companion.config import Settings
from src.companion.services.tool_router import ToolRouter

logger = logging.getLogger(__name__)


class LoopState(Enum):
    INITIAL = "initial"
    AWAITING_TOOLS = "awaiting_tools"
    TOOL_EXECUTED = "tool_executed"
    FINAL = "final"


@dataclass
class LoopResult:
    text: str
    tool_rounds: int
    completions: int
    transcript: List[Dict[str, Any]] = field(default_factory=list)


class CompletionLoop:
    """Runs completions, executing requested tools between them."""

    def __init__(self, client: CompletionClient, router: ToolRouter, settings: Settings):
        self.client = client
        self.router = router
        self.settings = settings
        self.max_tool_rounds = settings.max_tool_rounds

    async def _complete(self, transcript: List[Dict[str, Any]], first: bool) -> CompletionMessage:
        extra = {}
        if first:
            extra = {
                "presence_penalty": self.settings.chat_presence_penalty,
                "frequency_penalty": self.settings.chat_frequency_penalty,
            }
        return await self.client.complete(
            transcript,
            tools=self.router.schemas,
            temperature=self.settings.chat_temperature,
            max_tokens=self.settings.chat_max_tokens,
            purpose="chat",
            tool_choice="auto",
            **extra
        )

    async def _execute_tools(self, reply: CompletionMessage, transcript: List[Dict[str, Any]], user_id: str):
        # The assistant tool-call message must precede its results
        transcript.append(reply.to_transcript())
        for call in reply.tool_calls:
            content = await self.router.execute_to_content(call.name, call.arguments, user_id)
            transcript.append({"role": "tool", "tool_call_id": call.id, "content": content})

    async def run(self, messages: List[Dict[str, Any]], user_id: str) -> LoopResult:
        """
        Drive the loop to a final completion.

        Args:
            messages: Assembled prompt messages
            user_id: Conversing user, passed to every tool call

        Returns:
            LoopResult with the final text, possibly empty

        Raises:
            CompletionError: When a completion fails after its retries
        """
        transcript = list(messages)
        state = LoopState.INITIAL
        reply = CompletionMessage()
        rounds = 0
        completions = 0

        while state is not LoopState.FINAL:
            if state is LoopState.INITIAL:
                reply = await self._complete(transcript, first=True)
                completions += 1
                state = LoopState.AWAITING_TOOLS if reply.tool_calls else LoopState.FINAL

            elif state is LoopState.AWAITING_TOOLS:
                if rounds >= self.max_tool_rounds:
                    logger.info(f"Tool round limit {self.max_tool_rounds} reached for user {user_id}")
                    state = LoopState.FINAL
                    continue
                await self._execute_tools(reply, transcript, user_id)
                rounds += 1
                state = LoopState.TOOL_EXECUTED

            elif state is LoopState.TOOL_EXECUTED:
                reply = await self._complete(transcript, first=False)
                completions += 1
                state = LoopState.AWAITING_TOOLS if reply.tool_calls else LoopState.FINAL

        if not reply.tool_calls:
            transcript.append(reply.to_transcript())
        return LoopResult(text=reply.text, tool_rounds=rounds, completions=completions, transcript=transcript)
