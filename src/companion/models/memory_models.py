"""
Structured memory models for facts extracted from conversation.
"""

import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

INITIAL_CONFIDENCE = 0.6
CONFIDENCE_STEP = 0.1
DEFAULT_STORED_IMPORTANCE = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MemoryType(str, Enum):
    """Kinds of facts the assistant remembers."""
    PREFERENCE = "PREFERENCE"
    ROUTINE = "ROUTINE"
    CONTACT = "CONTACT"
    FACT = "FACT"
    GOAL = "GOAL"
    HEALTH_NOTE = "HEALTH_NOTE"


def compute_content_hash(memory_type: str, content: str) -> str:
    """Deterministic dedup key over (type, normalized content)."""
    normalized = f"{memory_type or ''}|{content.strip().lower()}"
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class MemoryItem(BaseModel):
    """One memory as produced by the extractor, before storage."""

    type: MemoryType
    content: str = Field(..., min_length=1)
    importance: Optional[int] = Field(default=None, ge=1, le=5)
    expires_at: Optional[datetime] = None

    @field_validator("content")
    @classmethod
    def strip_content(cls, v):
        if not v.strip():
            raise ValueError("Memory content cannot be empty")
        return v.strip()

    @field_validator("expires_at")
    @classmethod
    def expires_at_is_aware(cls, v):
        return _ensure_aware(v)

    @property
    def content_hash(self) -> str:
        return compute_content_hash(self.type.value, self.content)


class Memory(BaseModel):
    """A stored memory row, unique per (user_id, content_hash)."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    type: MemoryType
    content: str
    importance: int = Field(default=DEFAULT_STORED_IMPORTANCE, ge=1, le=5)
    confidence: float = Field(default=INITIAL_CONFIDENCE, ge=0.0, le=1.0)
    last_reinforced_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    source: str = "ai"
    content_hash: str

    @field_validator("last_reinforced_at", "created_at", "expires_at")
    @classmethod
    def timestamps_are_aware(cls, v):
        return _ensure_aware(v)

    @classmethod
    def from_item(cls, user_id: str, item: MemoryItem, now: Optional[datetime] = None) -> "Memory":
        now = now or utcnow()
        return cls(
            user_id=user_id,
            type=item.type,
            content=item.content,
            importance=item.importance or DEFAULT_STORED_IMPORTANCE,
            confidence=INITIAL_CONFIDENCE,
            last_reinforced_at=now,
            created_at=now,
            expires_at=item.expires_at,
            content_hash=item.content_hash,
        )

    def reinforce(self, item: MemoryItem, now: Optional[datetime] = None) -> "Memory":
        """Return the memory after re-extraction of the same fact."""
        return self.model_copy(update={
            "confidence": min(1.0, round(self.confidence + CONFIDENCE_STEP, 6)),
            "importance": max(self.importance, item.importance or DEFAULT_STORED_IMPORTANCE),
            "last_reinforced_at": now or utcnow(),
            "expires_at": item.expires_at or self.expires_at,
        })

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and self.expires_at <= (now or utcnow())

    def score(self, now: Optional[datetime] = None) -> float:
        """Retrieval rank: importance first, then confidence, then recency."""
        now = now or utcnow()
        days_since = (now - self.last_reinforced_at).total_seconds() / 86400
        recency_boost = max(0.0, 0.3 - 0.3 * days_since / 30)
        return self.importance * 0.6 + self.confidence * 0.3 + recency_boost * 0.1


def rank_memories(memories: List[Memory], limit: int, now: Optional[datetime] = None) -> List[Memory]:
    """Drop expired memories and return the ``limit`` best scored ones."""
    now = now or utcnow()
    live = [m for m in memories if not m.is_expired(now)]
    live.sort(key=lambda m: (m.score(now), m.last_reinforced_at), reverse=True)
    return live[:limit]


def parse_memory_items(payload: Any) -> List[MemoryItem]:
    """
    Turn an extractor payload into validated items.

    Unknown types, empty content and malformed entries are skipped.
    Importance is clamped to [1, 5] and defaults to 4.
    """
    if not isinstance(payload, dict):
        return []
    raw_items = payload.get("memories") or []
    if not isinstance(raw_items, list):
        return []

    items: List[MemoryItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        content = raw.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        memory_type = str(raw.get("type", "")).strip().upper()
        if memory_type not in MemoryType.__members__:
            continue
        items.append(MemoryItem(
            type=MemoryType(memory_type),
            content=content,
            importance=_clamp_importance(raw.get("importance")),
            expires_at=_parse_datetime(raw.get("expires_at")),
        ))
    return items


def _clamp_importance(value: Any) -> int:
    try:
        importance = int(value) if value is not None else 4
    except (TypeError, ValueError):
        importance = 4
    return min(5, max(1, importance))


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return _ensure_aware(parsed)
