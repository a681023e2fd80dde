"""
Tools the language model may call, and the router that executes them.

Every tool acts on the conversing user. A missing ``elderlyUserId`` is
filled in with that user; a different one is refused before any storage
access. Storage failures become error-shaped results, never exceptions.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from src.companion.models import ReminderDraft
from src.companion.services.repository import CareRepository
from src.companion.utils.error_handler import ToolExecutionError
from src.companion.utils.metrics import tool_call_counter

logger = logging.getLogger(__name__)

USER_ID_ARG = "elderlyUserId"
DEFAULT_UPCOMING_DAYS = 14
MAX_UPCOMING_DAYS = 90


def _function(name: str, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
                "additionalProperties": False,
            },
        },
    }


_USER_ID_PROPERTY = {USER_ID_ARG: {"type": "string", "description": "ID del usuario mayor"}}

TOOL_SCHEMAS: List[Dict[str, Any]] = [
    _function(
        "get_today_reminders",
        "Obtiene recordatorios de hoy para la persona mayor (citas y medicación).",
        dict(_USER_ID_PROPERTY),
        [USER_ID_ARG],
    ),
    _function(
        "get_upcoming_reminders",
        "Obtiene todos los recordatorios próximos (próximas 2 semanas) del usuario.",
        {
            **_USER_ID_PROPERTY,
            "days": {"type": "number", "description": "Número de días hacia adelante (por defecto 14)"},
        },
        [USER_ID_ARG],
    ),
    _function(
        "get_user_medications",
        "Lista medicaciones actuales del usuario mayor.",
        dict(_USER_ID_PROPERTY),
        [USER_ID_ARG],
    ),
    _function(
        "get_emergency_contact",
        "Devuelve el contacto de emergencia del usuario mayor (nombre y teléfono).",
        dict(_USER_ID_PROPERTY),
        [USER_ID_ARG],
    ),
    _function(
        "create_reminder",
        "Crea un nuevo recordatorio para el usuario mayor (medicación, cita o actividad).",
        {
            **_USER_ID_PROPERTY,
            "reminder": {
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "enum": ["medicine", "appointment", "activity"],
                        "description": "Tipo de recordatorio",
                    },
                    "title": {"type": "string", "description": "Título del recordatorio"},
                    "description": {"type": "string", "description": "Descripción detallada"},
                    "reminderDate": {"type": "string", "description": "Fecha (YYYY-MM-DD)"},
                    "reminderTime": {"type": "string", "description": "Hora (HH:mm)"},
                    "recurrence": {
                        "type": "string",
                        "enum": ["none", "daily", "weekly", "monthly"],
                        "description": "Frecuencia de repetición",
                    },
                },
                "required": ["type", "title", "reminderDate", "reminderTime"],
            },
        },
        ["reminder"],
    ),
    _function(
        "mark_reminder_complete",
        "Marca un recordatorio como completado.",
        {
            "reminderId": {"type": "string", "description": "ID del recordatorio"},
            "notes": {"type": "string", "description": "Notas opcionales sobre el cumplimiento"},
        },
        ["reminderId"],
    ),
    _function(
        "log_interaction",
        "Registra un evento de interacción del asistente con el usuario.",
        {
            **_USER_ID_PROPERTY,
            "action": {"type": "string", "description": "p.ej. CHAT_MESSAGE, MEMORY_EXERCISE, ORIENTATION"},
            "detail": {"type": "string"},
        },
        [USER_ID_ARG, "action"],
    ),
]

TOOL_NAMES = [schema["function"]["name"] for schema in TOOL_SCHEMAS]

ToolHandler = Callable[[Dict[str, Any], str], Awaitable[Any]]


def parse_arguments(raw_args: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """
    Decode model-supplied tool arguments.

    Malformed JSON, or JSON that is not an object, yields an empty dict so
    the tool still runs for the conversing user.
    """
    if raw_args is None or raw_args == "":
        return {}
    if isinstance(raw_args, dict):
        return dict(raw_args)
    try:
        args = json.loads(raw_args)
    except (TypeError, ValueError) as e:
        logger.warning(f"Malformed tool arguments, using empty object: {e}")
        return {}
    if not isinstance(args, dict):
        logger.warning(f"Tool arguments are a {type(args).__name__}, using empty object")
        return {}
    return args


def _days(value: Any) -> int:
    try:
        days = int(value) if value is not None else DEFAULT_UPCOMING_DAYS
    except (TypeError, ValueError):
        return DEFAULT_UPCOMING_DAYS
    return min(MAX_UPCOMING_DAYS, max(0, days))


class ToolRouter:
    """Executes tool calls against the care repository."""

    def __init__(self, repository: CareRepository):
        self.repository = repository
        self._handlers: Dict[str, ToolHandler] = {
            "get_today_reminders": self._get_today_reminders,
            "get_upcoming_reminders": self._get_upcoming_reminders,
            "get_user_medications": self._get_user_medications,
            "get_emergency_contact": self._get_emergency_contact,
            "create_reminder": self._create_reminder,
            "mark_reminder_complete": self._mark_reminder_complete,
            "log_interaction": self._log_interaction,
        }

    @property
    def schemas(self) -> List[Dict[str, Any]]:
        return TOOL_SCHEMAS

    async def execute(
        self,
        name: str,
        raw_args: Union[str, Dict[str, Any], None],
        user_id: str
    ) -> Any:
        """
        Run one tool call for the conversing user.

        Args:
            name: Tool name requested by the model
            raw_args: JSON text or decoded arguments
            user_id: The conversing user

        Returns:
            JSON-serialisable result; errors are returned, not raised
        """
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning(f"Model requested unknown tool '{name}'")
            tool_call_counter.labels(tool="unknown", status="not_found").inc()
            return {"error": "tool_not_found"}

        args = parse_arguments(raw_args)
        try:
            self._scope_to_user(args, user_id)
        except ToolExecutionError as e:
            logger.warning(f"Refused tool call {name} for user {user_id}: {e.message}")
            tool_call_counter.labels(tool=name, status=e.code).inc()
            return {"error": e.code}

        result = await handler(args, user_id)
        tool_call_counter.labels(tool=name, status="ok").inc()
        return result

    async def execute_to_content(self, name: str, raw_args: Any, user_id: str) -> str:
        """Run a tool call and serialise the result for a tool message."""
        result = await self.execute(name, raw_args, user_id)
        return json.dumps(result, ensure_ascii=False, default=str)

    @staticmethod
    def _scope_to_user(args: Dict[str, Any], user_id: str):
        requested = args.get(USER_ID_ARG)
        if requested in (None, ""):
            args[USER_ID_ARG] = user_id
            return
        if str(requested) != str(user_id):
            raise ToolExecutionError(
                f"Tool call targeted user {requested}",
                code="forbidden_user",
                details={"requested": requested, "user_id": user_id}
            )

    # Handlers: repository failures are logged and mapped to empty results

    async def _get_today_reminders(self, args: Dict[str, Any], user_id: str) -> List[Dict[str, Any]]:
        try:
            reminders = await self.repository.get_today_reminders(user_id)
        except Exception as e:
            logger.error(f"Error getting today reminders: {e}")
            return []
        return [
            {
                "id": r.id,
                "type": r.type,
                "title": r.title,
                "time": r.reminder_time,
                "description": r.description,
                "isCompleted": r.is_completed,
            }
            for r in reminders
        ]

    async def _get_upcoming_reminders(self, args: Dict[str, Any], user_id: str) -> List[Dict[str, Any]]:
        try:
            reminders = await self.repository.get_upcoming_reminders(user_id, _days(args.get("days")))
        except Exception as e:
            logger.error(f"Error getting upcoming reminders: {e}")
            return []
        return [
            {
                "id": r.id,
                "type": r.type,
                "title": r.title,
                "date": r.reminder_date,
                "time": r.reminder_time,
                "description": r.description,
                "recurrence": r.recurrence,
            }
            for r in reminders
        ]

    async def _get_user_medications(self, args: Dict[str, Any], user_id: str) -> List[str]:
        try:
            reminders = await self.repository.get_reminders(user_id)
        except Exception as e:
            logger.error(f"Error getting medications: {e}")
            return []
        return [f"{r.title} a las {r.reminder_time}" for r in reminders if r.type == "medicine"]

    async def _get_emergency_contact(self, args: Dict[str, Any], user_id: str) -> Optional[Dict[str, str]]:
        try:
            user = await self.repository.get_user(user_id)
        except Exception as e:
            logger.error(f"Error getting emergency contact: {e}")
            return None
        if user and user.emergency_contact:
            return {"name": "Contacto de emergencia", "phone": user.emergency_contact}
        return None

    async def _create_reminder(self, args: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        try:
            draft = ReminderDraft.model_validate(args.get("reminder") or {})
            reminder = await self.repository.create_reminder(user_id, draft)
        except ValidationError as e:
            logger.warning(f"Rejected reminder from model: {e.error_count()} invalid fields")
            return {"success": False, "error": "No se pudo crear el recordatorio"}
        except Exception as e:
            logger.error(f"Error creating reminder: {e}")
            return {"success": False, "error": "No se pudo crear el recordatorio"}
        return {
            "success": True,
            "reminder": {
                "id": reminder.id,
                "title": reminder.title,
                "date": reminder.reminder_date,
                "time": reminder.reminder_time,
            },
        }

    async def _mark_reminder_complete(self, args: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        reminder_id = args.get("reminderId")
        if not reminder_id:
            return {"success": False, "error": "No se pudo completar el recordatorio"}
        try:
            completion = await self.repository.mark_reminder_complete(
                str(reminder_id), user_id, user_id, args.get("notes")
            )
        except Exception as e:
            logger.error(f"Error marking reminder complete: {e}")
            return {"success": False, "error": "No se pudo completar el recordatorio"}
        return {
            "success": True,
            "message": "Recordatorio marcado como completado",
            "completionId": completion.id,
        }

    async def _log_interaction(self, args: Dict[str, Any], user_id: str) -> Dict[str, bool]:
        action = args.get("action") or "UNKNOWN"
        detail = args.get("detail") or ""
        try:
            await self.repository.create_activity(user_id, "chat", f"AI: {action} - {detail}"[:500])
        except Exception as e:
            logger.error(f"Error logging interaction: {e}")
            return {"ok": False}
        return {"ok": True}
