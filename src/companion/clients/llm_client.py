"""
Completion API client.

Thin wrapper over ``openai.AsyncOpenAI`` chat completions that adds bounded
retry with linear backoff, a per-call timeout, metrics, and a
provider-neutral result type.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from openai import AsyncOpenAI

from src.companion.config import Settings, get_settings
from src.companion.utils.error_handler import CompanionErrorHandler, CompletionError
from src.companion.utils.metrics import track_llm_request

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str = "{}"


@dataclass
class CompletionMessage:
    """Assistant message returned by one completion call."""

    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)

    @property
    def text(self) -> str:
        return (self.content or "").strip()

    def to_transcript(self) -> Dict[str, Any]:
        """Render as an assistant message that can be sent back to the API."""
        message: Dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ]
        return message

    @classmethod
    def from_openai(cls, message: Any) -> "CompletionMessage":
        calls = []
        for call in getattr(message, "tool_calls", None) or []:
            function = getattr(call, "function", None)
            if function is None:
                continue
            calls.append(ToolCall(id=call.id, name=function.name, arguments=function.arguments or "{}"))
        return cls(content=getattr(message, "content", None), tool_calls=calls)


class CompletionClient:
    """Chat completions with retry, backoff and timeout."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        """
        Initialize the client.

        Args:
            settings: Service settings, defaults to the cached instance
            client: Pre-built OpenAI client, mainly for tests
        """
        self.settings = settings or get_settings()
        self.model = self.settings.openai_model
        self.timeout_seconds = self.settings.openai_timeout_seconds
        self.max_attempts = max(1, self.settings.llm_retry_attempts)
        self.backoff_ms = self.settings.llm_retry_backoff_ms
        self.client = client or AsyncOpenAI(
            api_key=self.settings.openai_api_key,
            timeout=httpx.Timeout(self.timeout_seconds, connect=5.0),
            max_retries=0
        )

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.6,
        max_tokens: int = 450,
        json_mode: bool = False,
        purpose: str = "chat",
        **extra: Any
    ) -> CompletionMessage:
        """
        Request one completion.

        Args:
            messages: Conversation in API format
            tools: Tool schemas offered to the model
            temperature: Sampling temperature
            max_tokens: Reply length limit
            json_mode: Ask for a JSON object response
            purpose: Label for logs and metrics
            **extra: Further API parameters, e.g. penalties

        Returns:
            CompletionMessage with text and any tool calls

        Raises:
            CompletionError: When every attempt failed
        """
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            **extra,
        }
        if tools:
            params["tools"] = tools
            params.setdefault("tool_choice", "auto")
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with track_llm_request(purpose):
                    response = await asyncio.wait_for(
                        self.client.chat.completions.create(**params),
                        timeout=self.timeout_seconds
                    )
                if not response.choices:
                    return CompletionMessage()
                return CompletionMessage.from_openai(response.choices[0].message)
            except Exception as e:
                last_error = CompanionErrorHandler.handle_llm_error(e)
                logger.warning(
                    f"Completion attempt {attempt}/{self.max_attempts} for {purpose} failed: "
                    f"{last_error.message} ({last_error.category.value})"
                )
                if not last_error.recoverable or attempt == self.max_attempts:
                    break
                await asyncio.sleep(self.backoff_ms * attempt / 1000)

        raise CompletionError(
            f"Completion for {purpose} failed: {last_error.message}",
            category=last_error.category,
            details=last_error.details,
            recoverable=False
        )
