"""
Keyword tagging of user utterances for the caregiver activity feed.
"""

from typing import List, Optional, Tuple

# First matching row wins
TOPIC_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("medicina", "medicamento"), "Medicación"),
    (("dolor", "duele"), "Salud"),
    (("memoria", "recordar"), "Ejercicio cognitivo"),
    (("triste", "solo"), "Estado emocional"),
    (("familia", "hijo"), "Familia"),
]
DEFAULT_TOPIC = "Conversación general"

HEALTH_ALERT_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("dolor de pecho", "pecho"), "Posible dolor de pecho - contactar médico"),
    (("mareado", "mareo"), "Mareos reportados - verificar con familiar"),
    (("caí", "caída"), "Posible caída - verificar estado físico"),
    (("no puedo respirar", "falta de aire"), "Dificultad respiratoria - contactar emergencias"),
    (("confundido", "no recuerdo nada"), "Confusión severa - evaluar estado cognitivo"),
]


def _first_match(message: str, table: List[Tuple[Tuple[str, ...], str]]) -> Optional[str]:
    lowered = message.lower()
    for keywords, label in table:
        if any(keyword in lowered for keyword in keywords):
            return label
    return None


def detect_topic(message: str) -> str:
    return _first_match(message, TOPIC_KEYWORDS) or DEFAULT_TOPIC


def detect_health_alert(message: str) -> Optional[str]:
    return _first_match(message, HEALTH_ALERT_KEYWORDS)
