"""
Unit tests for the tool router.
"""

import json
from unittest.mock import AsyncMock

import pytest

from src.companion.models import Reminder, UserProfile
from src.companion.services.repository import InMemoryCareRepository
from src.companion.services.tool_router import TOOL_NAMES, TOOL_SCHEMAS, ToolRouter, parse_arguments
from src.companion.utils.formatting import local_now


@pytest.fixture
def seeded_repository(repository):
    today = local_now().date().isoformat()
    repository.add_reminder(Reminder(
        id="r-med", user_id="user-1", type="medicine", title="Sintrom", reminder_time="09:00",
        reminder_date=today, recurrence="daily",
    ))
    repository.add_reminder(Reminder(
        id="r-app", user_id="user-1", type="appointment", title="Cardiólogo", reminder_time="11:30",
    ))
    repository.add_reminder(Reminder(
        id="r-other", user_id="user-9", type="medicine", title="Ajeno", reminder_time="08:00",
    ))
    return repository


@pytest.fixture
def router(seeded_repository):
    return ToolRouter(seeded_repository)


class TestToolSchemas:
    """Test the tool definitions offered to the model."""

    def test_exact_tool_set(self):
        assert sorted(TOOL_NAMES) == sorted([
            "get_today_reminders",
            "get_upcoming_reminders",
            "get_user_medications",
            "get_emergency_contact",
            "create_reminder",
            "mark_reminder_complete",
            "log_interaction",
        ])

    def test_schemas_are_strict(self):
        for schema in TOOL_SCHEMAS:
            assert schema["type"] == "function"
            assert schema["function"]["parameters"]["additionalProperties"] is False


class TestToolRouter:
    """Test tool execution for the conversing user."""

    async def test_user_id_is_injected(self):
        repo = AsyncMock()
        repo.get_today_reminders.return_value = []
        router = ToolRouter(repo)

        result = await router.execute("get_today_reminders", "{}", "user-1")

        assert result == []
        repo.get_today_reminders.assert_awaited_once_with("user-1")

    async def test_other_user_is_refused(self):
        repo = AsyncMock()
        router = ToolRouter(repo)

        result = await router.execute("get_user_medications", {"elderlyUserId": "user-9"}, "user-1")

        assert result == {"error": "forbidden_user"}
        repo.get_reminders.assert_not_awaited()

    async def test_same_user_is_accepted(self, router):
        result = await router.execute("get_user_medications", '{"elderlyUserId": "user-1"}', "user-1")
        assert result == ["Sintrom a las 09:00"]

    async def test_unknown_tool(self, router):
        assert await router.execute("order_pizza", "{}", "user-1") == {"error": "tool_not_found"}

    @pytest.mark.parametrize("raw_args", ["{not json", "[1, 2]", "\"user-1\""])
    async def test_malformed_arguments_run_for_conversing_user(self, router, raw_args):
        result = await router.execute("get_user_medications", raw_args, "user-1")
        assert result == ["Sintrom a las 09:00"]

    def test_parse_arguments_fallback(self):
        assert parse_arguments("{not json") == {}
        assert parse_arguments("[1, 2]") == {}
        assert parse_arguments(None) == {}
        assert parse_arguments('{"days": 3}') == {"days": 3}

    async def test_today_reminders_shape(self, router):
        result = await router.execute("get_today_reminders", None, "user-1")
        by_id = {item["id"]: item for item in result}
        assert set(by_id) == {"r-med", "r-app"}
        assert by_id["r-med"] == {
            "id": "r-med", "type": "medicine", "title": "Sintrom", "time": "09:00",
            "description": None, "isCompleted": False,
        }

    async def test_upcoming_reminders_shape(self, router):
        result = await router.execute("get_upcoming_reminders", {"days": 7}, "user-1")
        assert [item["id"] for item in result] == ["r-app", "r-med"]
        assert set(result[0]) == {"id", "type", "title", "date", "time", "description", "recurrence"}

    async def test_emergency_contact(self, router):
        result = await router.execute("get_emergency_contact", {}, "user-1")
        assert result == {"name": "Contacto de emergencia", "phone": "Ana 600123123"}

    async def test_emergency_contact_absent(self):
        repo = InMemoryCareRepository()
        repo.add_user(UserProfile(id="user-3", first_name="Pilar"))
        assert await ToolRouter(repo).execute("get_emergency_contact", {}, "user-3") is None

    async def test_create_reminder(self, router, seeded_repository):
        args = {"reminder": {
            "type": "appointment", "title": "Dentista",
            "reminderDate": "2026-11-02", "reminderTime": "10:15",
        }}
        result = await router.execute("create_reminder", json.dumps(args), "user-1")

        assert result["success"] is True
        assert result["reminder"]["title"] == "Dentista"
        assert result["reminder"]["date"] == "2026-11-02"
        stored = seeded_repository.reminders[result["reminder"]["id"]]
        assert stored.user_id == "user-1" and stored.recurrence == "none"

    async def test_create_reminder_invalid(self, router):
        args = {"reminder": {"type": "party", "title": "", "reminderDate": "mañana", "reminderTime": "10"}}
        result = await router.execute("create_reminder", args, "user-1")
        assert result == {"success": False, "error": "No se pudo crear el recordatorio"}

    async def test_mark_complete_uses_conversing_user(self, router, seeded_repository):
        result = await router.execute("mark_reminder_complete", {"reminderId": "r-med", "notes": "hecho"}, "user-1")

        assert result["success"] is True
        assert result["message"] == "Recordatorio marcado como completado"
        completion = seeded_repository.completions[-1]
        assert completion.id == result["completionId"]
        assert completion.user_id == "user-1" and completion.completed_by == "user-1"
        assert completion.notes == "hecho"

    async def test_mark_complete_of_foreign_reminder_fails(self, router):
        result = await router.execute("mark_reminder_complete", {"reminderId": "r-other"}, "user-1")
        assert result == {"success": False, "error": "No se pudo completar el recordatorio"}

    async def test_log_interaction(self, router, seeded_repository):
        result = await router.execute("log_interaction", {"action": "ORIENTATION", "detail": "hora"}, "user-1")
        assert result == {"ok": True}
        assert seeded_repository.activities[-1].description == "AI: ORIENTATION - hora"

    async def test_repository_failure_becomes_empty_result(self):
        repo = AsyncMock()
        repo.get_upcoming_reminders.side_effect = RuntimeError("db down")
        result = await ToolRouter(repo).execute("get_upcoming_reminders", {}, "user-1")
        assert result == []
        repo.get_upcoming_reminders.assert_awaited_once_with("user-1", 14)

    async def test_content_is_json(self, router):
        content = await router.execute_to_content("get_user_medications", "{}", "user-1")
        assert json.loads(content) == ["Sintrom a las 09:00"]
