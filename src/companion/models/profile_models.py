"""
User profile models consumed by the conversational assistant.

The profile record is owned by the care repository. Two of its fields,
``preferences`` and ``personality_traits``, are free-form JSON written by
family members and professionals, so they are treated as untrusted input:
every string is capped before it can reach a prompt and the blobs are
validated into typed views with explicit defaults.
"""

import json
from datetime import date
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_STRING_LIMIT = 200


class CognitiveLevel(str, Enum):
    """Cognitive level recorded by the care professional."""
    NORMAL = "normal"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"

    @classmethod
    def parse(cls, value: Optional[str]) -> "CognitiveLevel":
        try:
            return cls((value or "normal").strip().lower())
        except ValueError:
            return cls.NORMAL


def cap_strings(value: Any, limit: int = DEFAULT_STRING_LIMIT) -> Any:
    """Recursively truncate every string inside a JSON-like value."""
    if isinstance(value, str):
        return value[:limit]
    if isinstance(value, dict):
        return {key: cap_strings(item, limit) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [cap_strings(item, limit) for item in value]
    return value


def safe_parse_json(raw: Any, fallback: Any = None, limit: int = DEFAULT_STRING_LIMIT) -> Any:
    """
    Parse a JSON blob, tolerating malformed input.

    Args:
        raw: JSON text, an already decoded value, or None
        fallback: Value returned when raw is empty or not valid JSON
        limit: Max length applied to every string in the result

    Returns:
        The decoded value with strings capped, or ``fallback``
    """
    if fallback is None:
        fallback = {}
    if not raw:
        return fallback
    try:
        value = json.loads(raw) if isinstance(raw, (str, bytes, bytearray)) else raw
    except (TypeError, ValueError):
        return fallback
    return cap_strings(value, limit)


def _as_string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(item) for item in value if isinstance(item, (str, int, float)) and str(item).strip()]
    return []


def _as_optional_string(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


class _SafeView(BaseModel):
    """Typed view over an untrusted JSON blob."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    list_fields: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def from_raw(cls, raw: Any, limit: int = DEFAULT_STRING_LIMIT):
        """Build the view from raw JSON, never raising on bad input."""
        data = safe_parse_json(raw, {}, limit)
        if not isinstance(data, dict):
            data = {}

        values: Dict[str, Any] = {}
        for name, field in cls.model_fields.items():
            key = field.alias or name
            present = key in data or name in data
            if not present:
                continue
            item = data.get(key, data.get(name))
            if name in cls.list_fields:
                values[name] = _as_string_list(item)
            else:
                values[name] = _as_optional_string(item)
        return cls(**values)


class SafePreferences(_SafeView):
    """Sanitized view of ``UserProfile.preferences``."""

    list_fields: ClassVar[Tuple[str, ...]] = ("likes", "dislikes", "hobbies", "favorite_foods")

    likes: List[str] = Field(default_factory=list)
    dislikes: List[str] = Field(default_factory=list)
    hobbies: List[str] = Field(default_factory=list)
    favorite_foods: List[str] = Field(default_factory=list)
    preferred_call_time: Optional[str] = None
    previous_profession: Optional[str] = None
    favorite_music: Optional[str] = None


class SafeTraits(_SafeView):
    """Sanitized view of ``UserProfile.personality_traits``."""

    list_fields: ClassVar[Tuple[str, ...]] = ("concerns", "strengths")

    mood: Optional[str] = None
    communication_style: Optional[str] = None
    cognitive_notes: Optional[str] = None
    concerns: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)


class UserProfile(BaseModel):
    """Subset of the elderly user's record read by the assistant."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(..., description="Repository identifier of the elderly user")
    first_name: str = Field(default="", description="Given name, used to address the user")
    last_name: str = Field(default="")
    age: Optional[int] = Field(default=None, ge=0, le=130)
    birth_date: Optional[date] = Field(default=None, description="Used for number exercises")
    cognitive_level: Optional[str] = Field(default="normal", description="normal|mild|moderate|severe")

    # Biographical information for reminiscence
    birth_place: Optional[str] = None
    childhood_home: Optional[str] = None
    childhood_memories: Optional[str] = None
    family_background: Optional[str] = None
    siblings: Optional[str] = None
    parents: Optional[str] = None
    significant_life: Optional[str] = None
    profession: Optional[str] = None
    hobbies: Optional[str] = None
    favorite_memories: Optional[str] = None

    # Emergency contact
    emergency_contact: Optional[str] = Field(default=None, description="Combined name and phone text")
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None

    # Untrusted JSON blobs, kept raw and only read through the safe views
    preferences: Any = None
    personality_traits: Any = None

    @property
    def cognitive(self) -> CognitiveLevel:
        return CognitiveLevel.parse(self.cognitive_level)

    @property
    def birth_year(self) -> Optional[int]:
        return self.birth_date.year if self.birth_date else None

    def safe_preferences(self, limit: int = DEFAULT_STRING_LIMIT) -> SafePreferences:
        return SafePreferences.from_raw(self.preferences, limit)

    def safe_traits(self, limit: int = DEFAULT_STRING_LIMIT) -> SafeTraits:
        return SafeTraits.from_raw(self.personality_traits, limit)

    def safe_field(self, name: str, limit: int = DEFAULT_STRING_LIMIT) -> Optional[str]:
        """Read a free-text field capped to ``limit`` characters."""
        value = getattr(self, name, None)
        if value is None:
            return None
        return str(value)[:limit]
