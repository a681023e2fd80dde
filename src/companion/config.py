"""
Configuration settings for the Companion conversational service
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra environment variables
    )

    # Service configuration
    port: int = Field(default=8002, description="Service port")
    host: str = Field(default="0.0.0.0", description="Service host")
    environment: str = Field(default="development", description="Environment")

    # Redis configuration (conversation state store)
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )
    use_redis_conversation_store: bool = Field(
        default=False,
        description="Keep summaries, chat turns and memories in Redis"
    )
    max_stored_chat_turns: int = Field(default=50, description="Chat turns kept per user")

    # OpenAI configuration; no key means every turn uses the offline responder
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o", description="Chat completion model")
    openai_timeout_seconds: float = Field(default=30.0, description="Per-request LLM timeout")

    # Chat completion parameters
    chat_temperature: float = Field(default=0.6, description="Temperature for replies")
    chat_max_tokens: int = Field(default=450, description="Max tokens for replies")
    chat_presence_penalty: float = Field(default=0.2, description="Presence penalty on the first round")
    chat_frequency_penalty: float = Field(default=0.2, description="Frequency penalty on the first round")
    max_tool_rounds: int = Field(default=2, ge=0, description="Tool-calling rounds per turn")

    # Retry configuration for every LLM call
    llm_retry_attempts: int = Field(default=2, ge=1, description="Attempts per LLM call")
    llm_retry_backoff_ms: int = Field(default=300, ge=0, description="Backoff unit, multiplied by attempt")

    # Context assembly
    history_token_budget: int = Field(default=2800, description="Token budget for recent history")
    top_memories_limit: int = Field(default=12, description="Memories injected into the prompt")
    profile_string_limit: int = Field(default=200, description="Max length of any profile string")
    timezone: str = Field(default="Europe/Madrid", description="Timezone for date/time replies")

    # Post-turn updaters
    summary_trigger_chars: int = Field(default=600, description="Turn length that forces a summary update")
    summary_random_probability: float = Field(
        default=0.2, ge=0.0, le=1.0,
        description="Chance of refreshing the summary on a short turn"
    )
    summary_temperature: float = Field(default=0.2)
    summary_max_tokens: int = Field(default=220)
    extraction_temperature: float = Field(default=0.1)
    extraction_max_tokens: int = Field(default=400)
    updater_timeout_seconds: float = Field(default=45.0, description="Timeout for background updater tasks")

    # Logging configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json or console)")

    @property
    def llm_enabled(self) -> bool:
        return bool(self.openai_api_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
