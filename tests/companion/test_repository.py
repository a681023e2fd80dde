"""
Unit tests for the in-memory care repository and memory models.
"""

import asyncio
from datetime import timedelta

import pytest

from src.companion.models import ChatTurn, Memory, MemoryItem, MemoryType, compute_content_hash, rank_memories
from src.companion.models.memory_models import utcnow
from src.companion.services.repository import InMemoryCareRepository
from src.companion.utils.error_handler import RepositoryError


class TestMemoryModels:
    """Test hashing, scoring and ranking."""

    def test_content_hash_normalizes_case_and_whitespace(self):
        assert compute_content_hash("FACT", "  Nació en Zaragoza ") == compute_content_hash("FACT", "nació en zaragoza")
        assert compute_content_hash("FACT", "x") != compute_content_hash("PREFERENCE", "x")

    def test_score_prefers_importance(self):
        now = utcnow()
        low = Memory(user_id="u", type=MemoryType.FACT, content="a", importance=2, confidence=1.0,
                     last_reinforced_at=now, content_hash="a")
        high = Memory(user_id="u", type=MemoryType.FACT, content="b", importance=5, confidence=0.6,
                      last_reinforced_at=now - timedelta(days=60), content_hash="b")
        assert high.score(now) > low.score(now)

    def test_recency_boost_fades_after_thirty_days(self):
        now = utcnow()
        fresh = Memory(user_id="u", type=MemoryType.FACT, content="a", last_reinforced_at=now, content_hash="a")
        stale = Memory(user_id="u", type=MemoryType.FACT, content="a", last_reinforced_at=now - timedelta(days=45),
                       content_hash="a")
        assert fresh.score(now) == pytest.approx(3 * 0.6 + 0.6 * 0.3 + 0.3 * 0.1)
        assert stale.score(now) == pytest.approx(3 * 0.6 + 0.6 * 0.3)

    def test_ties_broken_by_latest_reinforcement(self):
        now = utcnow()
        older = Memory(user_id="u", type=MemoryType.FACT, content="a", last_reinforced_at=now - timedelta(days=40),
                       content_hash="a")
        newer = Memory(user_id="u", type=MemoryType.FACT, content="b", last_reinforced_at=now - timedelta(days=35),
                       content_hash="b")
        assert older.score(now) == newer.score(now)
        assert rank_memories([older, newer], 12, now) == [newer, older]

    def test_expired_memories_are_hidden(self):
        now = utcnow()
        expired = Memory(user_id="u", type=MemoryType.GOAL, content="a", expires_at=now - timedelta(hours=1),
                         content_hash="a")
        live = Memory(user_id="u", type=MemoryType.GOAL, content="b", expires_at=now + timedelta(days=1),
                      content_hash="b")
        assert rank_memories([expired, live], 12, now) == [live]


class TestInMemoryRepository:
    """Test storage semantics."""

    async def test_duplicate_extraction_stores_one_memory(self, repository):
        item = MemoryItem(type=MemoryType.FACT, content="Le gusta el café con leche", importance=4)

        await repository.upsert_memories("user-1", [item])
        await repository.upsert_memories("user-1", [MemoryItem(type=MemoryType.FACT,
                                                               content="le gusta el café con leche ",
                                                               importance=3)])

        memories = await repository.get_top_memories("user-1")
        assert len(memories) == 1
        assert memories[0].confidence == pytest.approx(0.7)
        assert memories[0].importance == 4

    async def test_confidence_is_capped(self, repository):
        item = MemoryItem(type=MemoryType.PREFERENCE, content="Boleros")
        for _ in range(8):
            await repository.upsert_memories("user-1", [item])
        memories = await repository.get_top_memories("user-1")
        assert memories[0].confidence == 1.0

    async def test_new_memory_defaults(self, repository):
        stored = await repository.upsert_memories("user-1", [MemoryItem(type=MemoryType.ROUTINE, content="Pasea a las 10")])
        assert stored[0].importance == 3
        assert stored[0].confidence == pytest.approx(0.6)
        assert stored[0].source == "ai"

    async def test_expiry_only_replaced_when_given(self, repository):
        expires = utcnow() + timedelta(days=3)
        await repository.upsert_memories("user-1", [MemoryItem(type=MemoryType.GOAL, content="Ir a la boda",
                                                               expires_at=expires)])
        stored = await repository.upsert_memories("user-1", [MemoryItem(type=MemoryType.GOAL, content="Ir a la boda")])
        assert stored[0].expires_at == expires

    async def test_concurrent_upserts_do_not_duplicate(self, repository):
        item = MemoryItem(type=MemoryType.CONTACT, content="Su hija se llama Ana")
        await asyncio.gather(*(repository.upsert_memories("user-1", [item]) for _ in range(5)))
        memories = await repository.get_top_memories("user-1")
        assert len(memories) == 1
        assert memories[0].confidence == pytest.approx(1.0)

    async def test_top_memories_limit(self, repository):
        items = [MemoryItem(type=MemoryType.FACT, content=f"hecho {i}", importance=(i % 5) + 1) for i in range(20)]
        await repository.upsert_memories("user-1", items)
        top = await repository.get_top_memories("user-1", 12)
        assert len(top) == 12
        assert top[0].importance == 5

    async def test_chat_turns_are_capped(self):
        repo = InMemoryCareRepository(max_chat_turns=50)
        for i in range(60):
            await repo.append_chat_turn("user-1", ChatTurn(role="user", content=str(i)))
        turns = await repo.get_chat_turns("user-1")
        assert len(turns) == 50
        assert turns[0].content == "10" and turns[-1].content == "59"

    async def test_summary_is_replaced(self, repository):
        await repository.save_conversation_summary("user-1", "primero")
        await repository.save_conversation_summary("user-1", "segundo")
        assert await repository.get_conversation_summary("user-1") == "segundo"
        assert await repository.get_conversation_summary("user-2") is None

    async def test_mark_unknown_reminder(self, repository):
        with pytest.raises(RepositoryError):
            await repository.mark_reminder_complete("missing", "user-1", "user-1")

    async def test_activity_description_is_truncated(self, repository):
        activity = await repository.create_activity("user-1", "chat", "x" * 900)
        assert len(activity.description) == 500
