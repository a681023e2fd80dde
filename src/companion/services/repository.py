"""
Care repository interface and its in-memory implementation.

The repository owns users, reminders, activities and the per-user
conversation state (rolling summary, chat turns and memories). The
assistant only ever reaches storage through this interface.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional

from src.companion.models import (
    Activity,
    ChatTurn,
    Memory,
    MemoryItem,
    Reminder,
    ReminderCompletion,
    ReminderDraft,
    UserProfile,
    rank_memories,
)
from src.companion.models.memory_models import utcnow
from src.companion.utils.error_handler import RepositoryError
from src.companion.utils.formatting import local_now

logger = logging.getLogger(__name__)


class CareRepository(ABC):
    """Storage operations used by the assistant."""

    # Reminders
    @abstractmethod
    async def get_today_reminders(self, user_id: str) -> List[Reminder]:
        ...

    @abstractmethod
    async def get_upcoming_reminders(self, user_id: str, days: int = 14) -> List[Reminder]:
        ...

    @abstractmethod
    async def get_reminders(self, user_id: str) -> List[Reminder]:
        ...

    @abstractmethod
    async def create_reminder(self, user_id: str, draft: ReminderDraft) -> Reminder:
        ...

    @abstractmethod
    async def mark_reminder_complete(
        self,
        reminder_id: str,
        user_id: str,
        completed_by: str,
        notes: Optional[str] = None
    ) -> ReminderCompletion:
        ...

    # Users and activity log
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        ...

    @abstractmethod
    async def create_activity(self, user_id: str, activity_type: str, description: str) -> Activity:
        ...

    # Conversation state
    @abstractmethod
    async def get_conversation_summary(self, user_id: str) -> Optional[str]:
        ...

    @abstractmethod
    async def save_conversation_summary(self, user_id: str, summary: str) -> None:
        ...

    @abstractmethod
    async def get_top_memories(self, user_id: str, limit: int = 12) -> List[Memory]:
        ...

    @abstractmethod
    async def upsert_memories(self, user_id: str, items: List[MemoryItem]) -> List[Memory]:
        ...

    @abstractmethod
    async def append_chat_turn(self, user_id: str, turn: ChatTurn) -> None:
        ...

    async def ping(self) -> bool:
        """Readiness check; in-process stores are always reachable."""
        return True


def _upcoming_sort_key(reminder: Reminder):
    # Undated reminders sort before dated ones, then by time of day
    return (reminder.reminder_date or "", reminder.reminder_time)


def _scheduled_today(reminder_time: str, now: datetime) -> Optional[datetime]:
    try:
        hours, minutes = (int(part) for part in reminder_time.split(":")[:2])
    except ValueError:
        return None
    return now.replace(hour=hours, minute=minutes, second=0, microsecond=0)


class InMemoryCareRepository(CareRepository):
    """
    Complete process-local repository.

    Used for local runs and tests. All mutations go through a single
    asyncio lock, which makes memory upserts atomic per (user, hash).
    """

    def __init__(self, timezone: str = "Europe/Madrid", max_chat_turns: int = 50):
        self.timezone = timezone
        self.max_chat_turns = max_chat_turns
        self.users: Dict[str, UserProfile] = {}
        self.reminders: Dict[str, Reminder] = {}
        self.completions: List[ReminderCompletion] = []
        self.activities: List[Activity] = []
        self.summaries: Dict[str, str] = {}
        self.memories: Dict[str, Dict[str, Memory]] = defaultdict(dict)
        self.chat_turns: Dict[str, Deque[ChatTurn]] = defaultdict(lambda: deque(maxlen=self.max_chat_turns))
        self._lock = asyncio.Lock()

    # Seeding helpers for local runs and tests
    def add_user(self, profile: UserProfile) -> UserProfile:
        self.users[profile.id] = profile
        return profile

    def add_reminder(self, reminder: Reminder) -> Reminder:
        self.reminders[reminder.id] = reminder
        return reminder

    def _today(self) -> str:
        return local_now(self.timezone).date().isoformat()

    async def get_reminders(self, user_id: str) -> List[Reminder]:
        return [r for r in self.reminders.values() if r.user_id == user_id]

    async def get_today_reminders(self, user_id: str) -> List[Reminder]:
        today = self._today()
        return [
            r for r in self.reminders.values()
            if r.user_id == user_id and r.is_active
            and (r.reminder_date == today or not r.reminder_date)
        ]

    async def get_upcoming_reminders(self, user_id: str, days: int = 14) -> List[Reminder]:
        today = local_now(self.timezone).date()
        start, end = today.isoformat(), (today + timedelta(days=days)).isoformat()
        upcoming = [
            r for r in self.reminders.values()
            if r.user_id == user_id and r.is_active
            and (not r.reminder_date or start <= r.reminder_date <= end)
        ]
        return sorted(upcoming, key=_upcoming_sort_key)

    async def create_reminder(self, user_id: str, draft: ReminderDraft) -> Reminder:
        reminder = Reminder(
            user_id=user_id,
            type=draft.type,
            title=draft.title,
            description=draft.description,
            reminder_date=draft.reminder_date,
            reminder_time=draft.reminder_time,
            recurrence=draft.recurrence,
            is_active=True,
            created_by=user_id,
        )
        async with self._lock:
            self.reminders[reminder.id] = reminder
        return reminder

    async def mark_reminder_complete(
        self,
        reminder_id: str,
        user_id: str,
        completed_by: str,
        notes: Optional[str] = None
    ) -> ReminderCompletion:
        reminder = self.reminders.get(reminder_id)
        if reminder is None or reminder.user_id != user_id:
            raise RepositoryError(
                f"Reminder {reminder_id} not found",
                details={"reminder_id": reminder_id, "user_id": user_id}
            )

        now = local_now(self.timezone)
        scheduled = _scheduled_today(reminder.reminder_time, now)
        minutes_late = int((now - scheduled).total_seconds() // 60) if scheduled else 0
        completion = ReminderCompletion(
            reminder_id=reminder_id,
            user_id=user_id,
            completed_by=completed_by,
            notes=notes,
            scheduled_for=scheduled,
            completed_at=now,
            was_late=minutes_late > 0,
            minutes_late=minutes_late if minutes_late > 0 else None,
        )
        async with self._lock:
            self.completions.append(completion)
        return completion

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        return self.users.get(user_id)

    async def create_activity(self, user_id: str, activity_type: str, description: str) -> Activity:
        activity = Activity(user_id=user_id, activity_type=activity_type, description=description[:500])
        async with self._lock:
            self.activities.append(activity)
        return activity

    async def get_conversation_summary(self, user_id: str) -> Optional[str]:
        return self.summaries.get(user_id)

    async def save_conversation_summary(self, user_id: str, summary: str) -> None:
        async with self._lock:
            self.summaries[user_id] = summary

    async def get_top_memories(self, user_id: str, limit: int = 12) -> List[Memory]:
        return rank_memories(list(self.memories[user_id].values()), limit)

    async def upsert_memories(self, user_id: str, items: List[MemoryItem]) -> List[Memory]:
        stored: List[Memory] = []
        async with self._lock:
            bucket = self.memories[user_id]
            for item in items:
                now = utcnow()
                existing = bucket.get(item.content_hash)
                memory = existing.reinforce(item, now) if existing else Memory.from_item(user_id, item, now)
                bucket[item.content_hash] = memory
                stored.append(memory)
        logger.debug(f"Upserted {len(stored)} memories for user {user_id}")
        return stored

    async def append_chat_turn(self, user_id: str, turn: ChatTurn) -> None:
        async with self._lock:
            self.chat_turns[user_id].append(turn)

    async def get_chat_turns(self, user_id: str) -> List[ChatTurn]:
        return list(self.chat_turns.get(user_id, ()))
