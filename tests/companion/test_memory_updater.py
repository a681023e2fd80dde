"""
Unit tests for summary refresh and memory extraction.
"""

import json
import random
from unittest.mock import AsyncMock

import pytest

from src.companion.clients.llm_client import CompletionMessage
from src.companion.models import MemoryType, parse_memory_items
from src.companion.services.memory_updater import MemoryUpdater, strip_code_fences, summary_prompt
from src.companion.utils.error_handler import CompletionError


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def updater(client, repository, settings):
    return MemoryUpdater(client, repository, settings, random.Random(1))


class TestRollingSummary:
    """Test the rolling summary updater."""

    async def test_long_turn_triggers_update(self, updater, client, repository):
        client.complete.return_value = CompletionMessage(content=" María habló de Zaragoza. ")

        summary = await updater.maybe_update_rolling_summary("user-1", None, "a" * 400, "b" * 300)

        assert summary == "María habló de Zaragoza."
        assert await repository.get_conversation_summary("user-1") == "María habló de Zaragoza."
        kwargs = client.complete.await_args.kwargs
        assert kwargs["temperature"] == 0.2 and kwargs["max_tokens"] == 220
        prompt = client.complete.await_args.args[0][1]["content"]
        assert prompt.startswith("Resumen previo:\n(vacío)")

    async def test_short_turn_skips_update(self, updater, client):
        assert await updater.maybe_update_rolling_summary("user-1", "prev", "hola", "hola") is None
        client.complete.assert_not_awaited()

    async def test_random_trigger(self, client, repository, settings):
        settings.summary_random_probability = 1.0
        client.complete.return_value = CompletionMessage(content="Nuevo resumen")
        updater = MemoryUpdater(client, repository, settings, random.Random(1))

        assert await updater.maybe_update_rolling_summary("user-1", "prev", "hola", "hola") == "Nuevo resumen"

    async def test_empty_result_keeps_previous(self, updater, client, repository):
        await repository.save_conversation_summary("user-1", "anterior")
        client.complete.return_value = CompletionMessage(content="   ")

        await updater.maybe_update_rolling_summary("user-1", "anterior", "a" * 700, "")

        assert await repository.get_conversation_summary("user-1") == "anterior"

    async def test_completion_failure_is_swallowed(self, updater, client):
        client.complete.side_effect = CompletionError("down")
        assert await updater.maybe_update_rolling_summary("user-1", None, "a" * 700, "") is None

    def test_prompt_includes_previous_summary(self):
        prompt = summary_prompt("Le gusta el mar.", "Hola", "¡Hola!")
        assert "Resumen previo:\nLe gusta el mar." in prompt
        assert "USUARIO: Hola\nASISTENTE: ¡Hola!" in prompt
        assert prompt.endswith("Devuelve SOLO el resumen actualizado.")


class TestMemoryExtraction:
    """Test structured memory extraction."""

    async def test_childhood_fact_is_stored(self, updater, client, repository):
        client.complete.return_value = CompletionMessage(content=json.dumps({"memories": [
            {"type": "FACT", "content": "Pasó su infancia en un pueblo de Teruel", "importance": 5},
        ]}))

        items = await updater.extract_and_upsert_memories(
            "user-1", "De pequeña vivía en un pueblo de Teruel", "¡Qué bonito recuerdo!"
        )

        assert len(items) == 1
        stored = await repository.get_top_memories("user-1")
        assert stored[0].type == MemoryType.FACT
        assert stored[0].importance >= 4
        kwargs = client.complete.await_args.kwargs
        assert kwargs["json_mode"] is True
        assert kwargs["temperature"] == 0.1 and kwargs["max_tokens"] == 400

    async def test_code_fenced_json(self, updater, client):
        client.complete.return_value = CompletionMessage(
            content='```json\n{"memories": [{"type": "PREFERENCE", "content": "Le gustan los boleros"}]}\n```'
        )
        items = await updater.extract_and_upsert_memories("user-1", "Me gustan los boleros", "¡Qué bien!")
        assert items[0].importance == 4

    @pytest.mark.parametrize("content", ["no es json", "", None, "[1, 2]", '{"memories": "nada"}'])
    async def test_malformed_output_stores_nothing(self, updater, client, repository, content):
        client.complete.return_value = CompletionMessage(content=content)
        assert await updater.extract_and_upsert_memories("user-1", "hola", "hola") == []
        assert await repository.get_top_memories("user-1") == []

    async def test_completion_failure_is_swallowed(self, updater, client):
        client.complete.side_effect = CompletionError("down")
        assert await updater.extract_and_upsert_memories("user-1", "hola", "hola") == []


class TestMemoryItemParsing:
    """Test parsing of extractor payloads."""

    def test_filters_and_clamps(self):
        items = parse_memory_items({"memories": [
            {"type": "fact", "content": "Tiene tres nietos", "importance": 9},
            {"type": "GOSSIP", "content": "Descartado"},
            {"type": "ROUTINE", "content": "   "},
            {"type": "GOAL", "content": "Viajar a Roma", "importance": "alta", "expires_at": "2027-01-01T00:00:00Z"},
            "no es un objeto",
        ]})

        assert [item.type for item in items] == [MemoryType.FACT, MemoryType.GOAL]
        assert items[0].importance == 5
        assert items[1].importance == 4
        assert items[1].expires_at.year == 2027

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'
