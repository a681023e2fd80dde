"""
Data models for the Companion assistant.
"""

from .chat_models import AIChatRequest, AIChatResponse, ChatContext, ChatTurn
from .memory_models import Memory, MemoryItem, MemoryType, compute_content_hash, parse_memory_items, rank_memories
from .profile_models import CognitiveLevel, SafePreferences, SafeTraits, UserProfile, safe_parse_json
from .reminder_models import Activity, Reminder, ReminderCompletion, ReminderDraft

__all__ = [
    # Conversation
    "ChatTurn",
    "ChatContext",
    "AIChatRequest",
    "AIChatResponse",
    # Profile
    "UserProfile",
    "CognitiveLevel",
    "SafePreferences",
    "SafeTraits",
    "safe_parse_json",
    # Memory
    "Memory",
    "MemoryItem",
    "MemoryType",
    "compute_content_hash",
    "parse_memory_items",
    "rank_memories",
    # Records
    "Reminder",
    "ReminderDraft",
    "ReminderCompletion",
    "Activity",
]
