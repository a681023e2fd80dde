"""
Chat-related data models for the assistant and its HTTP surface.
"""

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .profile_models import UserProfile


class ChatTurn(BaseModel):
    """One message exchanged in a conversation."""

    role: Literal["user", "assistant"] = Field(..., description="Who wrote the message")
    content: str = Field(..., description="Message text")


class ChatContext(BaseModel):
    """Per-call input bundle: the acting user and prior turns, oldest first."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user: UserProfile
    message_history: List[ChatTurn] = Field(default_factory=list)


class AIChatRequest(BaseModel):
    """Request body for the AI chat endpoint."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "userId": "5f1c2d9e-1111-4a4a-9b9b-222233334444",
                "message": "¿Qué tengo que tomar hoy?",
                "messageHistory": [
                    {"role": "user", "content": "Buenos días"},
                    {"role": "assistant", "content": "¡Buenos días, María! ¿Cómo has dormido?"}
                ]
            }
        },
    )

    user_id: str = Field(..., min_length=1, description="Elderly user identifier")
    message: str = Field(..., min_length=1, max_length=10000, description="User utterance")
    message_history: List[ChatTurn] = Field(default_factory=list)

    @field_validator("message")
    @classmethod
    def validate_message_content(cls, v):
        """Validate message content is not just whitespace."""
        if not v.strip():
            raise ValueError("Message content cannot be empty or only whitespace")
        return v.strip()


class AIChatResponse(BaseModel):
    """Response body for the AI chat endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    response: str
    response_time: int = Field(..., description="Milliseconds spent producing the reply")
