"""
Post-turn learning: rolling summary refresh and structured memory extraction.

Both run as background tasks after the reply has been chosen. Neither ever
raises to the caller; malformed model output yields no update.
"""

import logging
import random
import re
from typing import List, Optional

from src.companion.clients.llm_client import CompletionClient
from src.companion.config import Settings
from src.companion.models import MemoryItem, parse_memory_items, safe_parse_json
from src.companion.services.repository import CareRepository
from src.companion.utils.error_handler import CompletionError

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "Eres un asistente que mantiene un RESUMEN BREVE en español (4–6 frases). "
    "Mantén hechos clave, gustos, planes y relaciones mencionadas. No repitas. "
    "Actualiza el resumen previo con los cambios."
)

EXTRACTION_SYSTEM_PROMPT = """Eres un extractor de MEMORIAS BIOGRÁFICAS Y CONTEXTUALES en español.
PRIORIDAD ALTA - Extrae SIEMPRE estos tipos de información:
- Recuerdos de infancia, juventud y vida pasada (importance: 5)
- Información sobre familia: hermanos, hijos, padres, cónyuge (importance: 5)
- Lugares significativos: lugar de nacimiento, donde vivió, lugares favoritos (importance: 4-5)
- Profesión anterior, trabajos, actividades laborales (importance: 4)
- Hobbies, pasatiempos y actividades que disfrutaba/disfruta (importance: 4)
- Gustos personales: comida, música, actividades (importance: 3-4)
- Rutinas actuales y hábitos diarios (importance: 3)
- Metas, deseos, planes futuros (importance: 3-4)

FORMATO DE SALIDA:
- Devuelve SOLO JSON con array "memories"
- type ∈ {PREFERENCE, ROUTINE, CONTACT, FACT, GOAL, HEALTH_NOTE}
- content: texto claro y conciso del recuerdo/información
- importance: 1-5 (usa 5 para recuerdos biográficos importantes)
- expires_at: ISO date si es temporal (opcional)

NO INCLUYAS datos clínicos sensibles ni diagnósticos médicos.

EJEMPLOS:
Usuario: "De pequeño me encantaba jugar en el campo con mis hermanos"
→ {"type": "FACT", "content": "Pasaba tiempo jugando en el campo con sus hermanos durante la infancia", "importance": 5}

Usuario: "Trabajé 30 años como carpintero"
→ {"type": "FACT", "content": "Trabajó como carpintero durante 30 años", "importance": 5}"""

CODE_FENCE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


def strip_code_fences(raw: str) -> str:
    return CODE_FENCE.sub("", raw or "").strip()


def summary_prompt(previous: Optional[str], user_text: str, assistant_text: str) -> str:
    return (
        f"Resumen previo:\n{previous or '(vacío)'}\n\n"
        f"Nueva interacción:\nUSUARIO: {user_text}\nASISTENTE: {assistant_text}\n\n"
        "Devuelve SOLO el resumen actualizado."
    )


def extraction_prompt(user_text: str, assistant_text: str) -> str:
    return (
        f"Conversación:\nUSUARIO: {user_text}\nASISTENTE: {assistant_text}\n\n"
        "Extrae TODAS las memorias biográficas y contextuales relevantes. Responde en JSON."
    )


class MemoryUpdater:
    """Keeps the per-user summary and memory store up to date."""

    def __init__(
        self,
        client: CompletionClient,
        repository: CareRepository,
        settings: Settings,
        rng: Optional[random.Random] = None
    ):
        self.client = client
        self.repository = repository
        self.settings = settings
        self.rng = rng or random.Random()

    def should_update_summary(self, user_text: str, assistant_text: str) -> bool:
        if len(user_text) + len(assistant_text) > self.settings.summary_trigger_chars:
            return True
        return self.rng.random() < self.settings.summary_random_probability

    async def maybe_update_rolling_summary(
        self,
        user_id: str,
        previous: Optional[str],
        user_text: str,
        assistant_text: str
    ) -> Optional[str]:
        """
        Refresh the rolling summary when the turn warrants it.

        Returns:
            The new summary, or None when nothing was stored
        """
        if not self.should_update_summary(user_text, assistant_text):
            return None

        messages = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": summary_prompt(previous, user_text, assistant_text)},
        ]
        try:
            reply = await self.client.complete(
                messages,
                temperature=self.settings.summary_temperature,
                max_tokens=self.settings.summary_max_tokens,
                purpose="summary"
            )
        except CompletionError as e:
            logger.warning(f"Summary update failed for user {user_id}: {e.message}")
            return None

        summary = reply.text
        if not summary:
            return None
        await self.repository.save_conversation_summary(user_id, summary)
        logger.debug(f"Rolling summary updated for user {user_id}")
        return summary

    async def extract_and_upsert_memories(
        self,
        user_id: str,
        user_text: str,
        assistant_text: str
    ) -> List[MemoryItem]:
        """
        Extract memories from one exchange and store them.

        Returns:
            The items that were upserted
        """
        messages = [
            {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
            {"role": "user", "content": extraction_prompt(user_text, assistant_text)},
        ]
        try:
            reply = await self.client.complete(
                messages,
                temperature=self.settings.extraction_temperature,
                max_tokens=self.settings.extraction_max_tokens,
                json_mode=True,
                purpose="extraction"
            )
        except CompletionError as e:
            logger.warning(f"Memory extraction failed for user {user_id}: {e.message}")
            return []

        payload = safe_parse_json(strip_code_fences(reply.content or ""), {"memories": []})
        items = parse_memory_items(payload)
        logger.info(f"Extracted {len(items)} memories for user {user_id}")
        if items:
            await self.repository.upsert_memories(user_id, items)
        return items
