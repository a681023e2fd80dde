"""
Unit tests for the Redis conversation store.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import RedisError, WatchError

from src.companion.models import ChatTurn, Memory, MemoryItem, MemoryType
from src.companion.services.redis_store import MAX_UPSERT_ATTEMPTS, RedisConversationRepository
from src.companion.utils.error_handler import ErrorCategory, ServiceError


@pytest.fixture
def pipe():
    pipeline = MagicMock()
    pipeline.__aenter__.return_value = pipeline
    pipeline.__aexit__.return_value = False
    pipeline.watch = AsyncMock()
    pipeline.hmget = AsyncMock(return_value=[None])
    pipeline.execute = AsyncMock(return_value=[1])
    return pipeline


@pytest.fixture
def conn(pipe):
    client = AsyncMock()
    client.pipeline = MagicMock(return_value=pipe)
    return client


@pytest.fixture
def records():
    return AsyncMock()


@pytest.fixture
def store(records, conn):
    return RedisConversationRepository(records, client=conn, max_chat_turns=50)


def _written(pipe):
    mapping = pipe.hset.call_args.kwargs["mapping"]
    return {h: Memory.model_validate_json(raw) for h, raw in mapping.items()}


class TestConversationState:
    """Test summaries and chat turns."""

    async def test_summary_roundtrip_keys(self, store, conn):
        conn.get.return_value = "Le gusta la jardinería."

        await store.save_conversation_summary("user-1", "Le gusta la jardinería.")
        summary = await store.get_conversation_summary("user-1")

        conn.set.assert_awaited_once_with("companion:summary:user-1", "Le gusta la jardinería.")
        conn.get.assert_awaited_once_with("companion:summary:user-1")
        assert summary == "Le gusta la jardinería."

    async def test_append_turn_trims_list(self, store, pipe):
        await store.append_chat_turn("user-1", ChatTurn(role="user", content="Hola"))

        pushed_key, payload = pipe.rpush.call_args.args
        assert pushed_key == "companion:turns:user-1"
        assert json.loads(payload) == {"role": "user", "content": "Hola"}
        pipe.ltrim.assert_called_once_with("companion:turns:user-1", -50, -1)
        pipe.execute.assert_awaited_once()

    async def test_get_turns(self, store, conn):
        conn.lrange.return_value = [
            ChatTurn(role="user", content="Hola").model_dump_json(),
            ChatTurn(role="assistant", content="¡Hola!").model_dump_json(),
        ]
        turns = await store.get_chat_turns("user-1")
        assert [t.role for t in turns] == ["user", "assistant"]

    async def test_redis_failure_is_classified(self, store, conn):
        conn.get.side_effect = RedisError("connection reset")
        with pytest.raises(ServiceError) as exc_info:
            await store.get_conversation_summary("user-1")
        assert exc_info.value.category == ErrorCategory.REDIS
        assert exc_info.value.recoverable

    async def test_ping(self, store, conn):
        conn.ping.return_value = True
        assert await store.ping() is True
        conn.ping.side_effect = RedisError("down")
        assert await store.ping() is False


class TestMemoryUpsert:
    """Test optimistic memory upserts."""

    async def test_new_memory_is_written(self, store, pipe):
        item = MemoryItem(type=MemoryType.FACT, content="Nació en Zaragoza", importance=5)

        result = await store.upsert_memories("user-1", [item])

        pipe.watch.assert_awaited_once_with("companion:memories:user-1")
        pipe.multi.assert_called_once()
        written = _written(pipe)
        assert list(written) == [item.content_hash]
        assert written[item.content_hash].confidence == pytest.approx(0.6)
        assert result[0].importance == 5

    async def test_existing_memory_is_reinforced(self, store, pipe):
        item = MemoryItem(type=MemoryType.FACT, content="Nació en Zaragoza", importance=3)
        existing = Memory.from_item("user-1", MemoryItem(type=MemoryType.FACT, content="Nació en Zaragoza",
                                                         importance=5))
        pipe.hmget.return_value = [existing.model_dump_json()]

        await store.upsert_memories("user-1", [item])

        written = _written(pipe)[item.content_hash]
        assert written.id == existing.id
        assert written.confidence == pytest.approx(0.7)
        assert written.importance == 5

    async def test_repeated_item_in_one_batch(self, store, pipe):
        item = MemoryItem(type=MemoryType.PREFERENCE, content="Boleros")
        pipe.hmget.return_value = [None, None]

        result = await store.upsert_memories("user-1", [item, item])

        assert len(result) == 1
        assert result[0].confidence == pytest.approx(0.7)

    async def test_conflict_is_retried(self, store, pipe):
        pipe.execute.side_effect = [WatchError("changed"), [1]]
        item = MemoryItem(type=MemoryType.CONTACT, content="Su hija se llama Ana")

        result = await store.upsert_memories("user-1", [item])

        assert len(result) == 1
        assert pipe.execute.await_count == 2

    async def test_persistent_conflict_raises(self, store, pipe):
        pipe.execute.side_effect = WatchError("changed")
        item = MemoryItem(type=MemoryType.CONTACT, content="Su hija se llama Ana")

        with pytest.raises(ServiceError):
            await store.upsert_memories("user-1", [item])

        assert pipe.execute.await_count == MAX_UPSERT_ATTEMPTS

    async def test_empty_batch_touches_nothing(self, store, conn):
        assert await store.upsert_memories("user-1", []) == []
        conn.pipeline.assert_not_called()

    async def test_top_memories_skip_unreadable_rows(self, store, conn):
        good = Memory.from_item("user-1", MemoryItem(type=MemoryType.FACT, content="Fue maestra", importance=4))
        conn.hvals.return_value = [good.model_dump_json(), "not json"]

        memories = await store.get_top_memories("user-1")

        assert [m.content for m in memories] == ["Fue maestra"]


class TestRecordDelegation:
    """Test that record operations go to the wrapped repository."""

    async def test_delegates(self, store, records):
        records.get_today_reminders.return_value = []
        assert await store.get_today_reminders("user-1") == []
        records.get_today_reminders.assert_awaited_once_with("user-1")

        await store.mark_reminder_complete("r1", "user-1", "user-1", "ok")
        records.mark_reminder_complete.assert_awaited_once_with("r1", "user-1", "user-1", "ok")
