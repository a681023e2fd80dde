"""
Offline responder used when no language model is configured or reachable.

Always returns a reply. Emergencies are still detected first.
"""

import random
import re
from typing import Optional

from src.companion.models import ChatContext
from src.companion.processors.exercise_generator import generate_exercise
from src.companion.safety.emergency import check_emergency, with_emergency_contact
from src.companion.utils.formatting import date_es, time_es

EXERCISE_KEYWORDS = re.compile(r"(memoria|ejercicio|recordar)", re.IGNORECASE)
MEDICATION_KEYWORDS = re.compile(r"(medicina|medicamento|pastilla)", re.IGNORECASE)
MOOD_KEYWORDS = re.compile(r"(triste|solo|sola|mal)", re.IGNORECASE)
DATE_KEYWORDS = re.compile(r"(día|fecha|hora)", re.IGNORECASE)

GENERIC_REPLIES = (
    "{first}, me alegra conversar contigo. ¿Cómo te has sentido hoy?",
    "Es un placer hablar contigo, {first}. ¿Te apetece recordar algún momento bonito?",
    "{first}, estoy aquí para acompañarte. ¿De qué te gustaría hablar?",
)


def offline_reply(
    message: str,
    context: ChatContext,
    rng: Optional[random.Random] = None,
    timezone: str = "Europe/Madrid"
) -> str:
    """
    Produce a template reply without calling the model.

    Args:
        message: Raw user utterance
        context: Conversing user and history
        rng: Random source for exercise and greeting choice
        timezone: IANA zone used for time and date replies

    Returns:
        Non-empty reply text
    """
    rng = rng or random.Random()
    profile = context.user
    first = profile.first_name or ""

    emergency = check_emergency(message)
    if emergency:
        return with_emergency_contact(emergency, profile.emergency_contact)

    if EXERCISE_KEYWORDS.search(message):
        exercise = generate_exercise("words", profile, rng)
        return f"¡Excelente, {first}! {exercise.prompt}. ¿Puedes repetirlas? Tómate tu tiempo."

    if MEDICATION_KEYWORDS.search(message):
        return (
            f"{first}, es importante seguir tus medicamentos según las indicaciones médicas. "
            "Si tienes dudas, consulta con tu médico o familiar."
        )

    if MOOD_KEYWORDS.search(message):
        likes = profile.safe_preferences().likes
        offer = (
            f"¿Te apetece hablar de {likes[0]}?" if likes
            else "¿Quieres contarme más para ayudarte mejor?"
        )
        return f"{first}, siento que te sientas así. Estoy contigo. {offer}"

    if DATE_KEYWORDS.search(message):
        return (
            f"{first}, ahora son las {time_es(tz_name=timezone)}. "
            f"Hoy es {date_es(tz_name=timezone)}. ¿Cómo va tu día?"
        )

    return rng.choice(GENERIC_REPLIES).format(first=first)
