"""
Redis-backed conversation state.

Rolling summaries, chat turns and memories live in Redis so several
service instances can share them. Users, reminders and activities stay
with the records repository this store wraps.

Keys:
    companion:summary:{user_id}   string
    companion:turns:{user_id}     list of ChatTurn JSON, newest last
    companion:memories:{user_id}  hash content_hash -> Memory JSON
"""

import logging
from typing import List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

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
from src.companion.services.repository import CareRepository
from src.companion.utils.error_handler import CompanionErrorHandler

logger = logging.getLogger(__name__)

KEY_PREFIX = "companion"
MAX_UPSERT_ATTEMPTS = 5


class RedisConversationRepository(CareRepository):
    """Conversation state in Redis; records delegated to another repository."""

    def __init__(
        self,
        records: CareRepository,
        redis_url: Optional[str] = None,
        client: Optional[redis.Redis] = None,
        max_chat_turns: int = 50
    ):
        """
        Initialize the store.

        Args:
            records: Repository that owns users, reminders and activities
            redis_url: Connection URL, used when no client is given
            client: Pre-built client, mainly for tests
            max_chat_turns: Turns kept per user
        """
        self.records = records
        self.redis_url = redis_url
        self.max_chat_turns = max_chat_turns
        self._redis: Optional[redis.Redis] = client

    async def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30
                )
                await self._redis.ping()
                logger.info("Redis connection established")
            except RedisError as e:
                self._redis = None
                logger.error(f"Failed to connect to Redis: {e}")
                raise CompanionErrorHandler.handle_repository_error(e)
        return self._redis

    @staticmethod
    def _key(kind: str, user_id: str) -> str:
        return f"{KEY_PREFIX}:{kind}:{user_id}"

    async def close(self):
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def ping(self) -> bool:
        try:
            conn = await self._get_redis()
            return bool(await conn.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    # Conversation state

    async def get_conversation_summary(self, user_id: str) -> Optional[str]:
        try:
            conn = await self._get_redis()
            return await conn.get(self._key("summary", user_id))
        except RedisError as e:
            raise CompanionErrorHandler.handle_repository_error(e)

    async def save_conversation_summary(self, user_id: str, summary: str) -> None:
        try:
            conn = await self._get_redis()
            await conn.set(self._key("summary", user_id), summary)
        except RedisError as e:
            raise CompanionErrorHandler.handle_repository_error(e)

    async def append_chat_turn(self, user_id: str, turn: ChatTurn) -> None:
        key = self._key("turns", user_id)
        try:
            conn = await self._get_redis()
            async with conn.pipeline(transaction=True) as pipe:
                pipe.rpush(key, turn.model_dump_json())
                pipe.ltrim(key, -self.max_chat_turns, -1)
                await pipe.execute()
        except RedisError as e:
            raise CompanionErrorHandler.handle_repository_error(e)

    async def get_chat_turns(self, user_id: str) -> List[ChatTurn]:
        try:
            conn = await self._get_redis()
            raw_turns = await conn.lrange(self._key("turns", user_id), 0, -1)
        except RedisError as e:
            raise CompanionErrorHandler.handle_repository_error(e)
        return [ChatTurn.model_validate_json(raw) for raw in raw_turns]

    async def get_top_memories(self, user_id: str, limit: int = 12) -> List[Memory]:
        try:
            conn = await self._get_redis()
            raw_memories = await conn.hvals(self._key("memories", user_id))
        except RedisError as e:
            raise CompanionErrorHandler.handle_repository_error(e)

        memories = []
        for raw in raw_memories:
            try:
                memories.append(Memory.model_validate_json(raw))
            except ValueError as e:
                logger.warning(f"Skipping unreadable memory for user {user_id}: {e}")
        return rank_memories(memories, limit)

    async def upsert_memories(self, user_id: str, items: List[MemoryItem]) -> List[Memory]:
        """
        Insert or reinforce memories in one optimistic transaction.

        The hash is watched while current rows are read; a concurrent
        writer aborts the transaction and the whole batch is retried.
        """
        if not items:
            return []

        key = self._key("memories", user_id)
        hashes = [item.content_hash for item in items]
        try:
            conn = await self._get_redis()
            for attempt in range(1, MAX_UPSERT_ATTEMPTS + 1):
                async with conn.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(key)
                        current = await pipe.hmget(key, hashes)

                        stored = {}
                        for item, raw in zip(items, current):
                            # A batch may repeat a fact; reinforce what this batch already wrote
                            existing = stored.get(item.content_hash)
                            if existing is None and raw:
                                existing = Memory.model_validate_json(raw)
                            now = utcnow()
                            stored[item.content_hash] = (
                                existing.reinforce(item, now) if existing
                                else Memory.from_item(user_id, item, now)
                            )

                        pipe.multi()
                        pipe.hset(key, mapping={h: m.model_dump_json() for h, m in stored.items()})
                        await pipe.execute()
                        return list(stored.values())
                    except WatchError:
                        logger.debug(f"Memory upsert conflict for user {user_id}, attempt {attempt}")
                        continue
        except RedisError as e:
            raise CompanionErrorHandler.handle_repository_error(e)

        raise CompanionErrorHandler.handle_repository_error(
            RedisError(f"Memory upsert for user {user_id} kept conflicting")
        )

    # Records, delegated

    async def get_today_reminders(self, user_id: str) -> List[Reminder]:
        return await self.records.get_today_reminders(user_id)

    async def get_upcoming_reminders(self, user_id: str, days: int = 14) -> List[Reminder]:
        return await self.records.get_upcoming_reminders(user_id, days)

    async def get_reminders(self, user_id: str) -> List[Reminder]:
        return await self.records.get_reminders(user_id)

    async def create_reminder(self, user_id: str, draft: ReminderDraft) -> Reminder:
        return await self.records.create_reminder(user_id, draft)

    async def mark_reminder_complete(
        self,
        reminder_id: str,
        user_id: str,
        completed_by: str,
        notes: Optional[str] = None
    ) -> ReminderCompletion:
        return await self.records.mark_reminder_complete(reminder_id, user_id, completed_by, notes)

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        return await self.records.get_user(user_id)

    async def create_activity(self, user_id: str, activity_type: str, description: str) -> Activity:
        return await self.records.create_activity(user_id, activity_type, description)
