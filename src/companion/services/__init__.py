"""
Service layer implementations.
"""

from .memory_updater import MemoryUpdater
from .redis_store import RedisConversationRepository
from .repository import CareRepository, InMemoryCareRepository
from .task_runner import BackgroundTaskRunner
from .tool_router import TOOL_SCHEMAS, ToolRouter

__all__ = [
    "CareRepository",
    "InMemoryCareRepository",
    "RedisConversationRepository",
    "MemoryUpdater",
    "BackgroundTaskRunner",
    "ToolRouter",
    "TOOL_SCHEMAS",
]
