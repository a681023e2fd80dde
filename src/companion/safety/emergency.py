"""
Emergency utterance detection.

Runs before anything else on every turn, with or without a language model.
Any match yields the same fixed safety message.
"""

import re
from typing import List, Optional, Tuple

# (label, pattern) pairs; the label only feeds logs and metrics
EMERGENCY_PATTERNS: List[Tuple[str, "re.Pattern[str]"]] = [
    ("chest_pain", re.compile(r"dolor (de|en el) pecho", re.IGNORECASE)),
    ("breathing", re.compile(r"falta de aire|dificultad para respirar|no puedo respirar", re.IGNORECASE)),
    ("consciousness", re.compile(r"pérdida de conocimiento|perdida de conocimiento|desmay", re.IGNORECASE)),
    ("severe_confusion", re.compile(r"confusión severa|confusion severa|no sé dónde estoy|no se donde estoy", re.IGNORECASE)),
    ("one_sided_weakness", re.compile(r"debilidad repentina|lado del cuerpo", re.IGNORECASE)),
    ("suicidal", re.compile(r"suicid|me quiero morir|quiero morirme", re.IGNORECASE)),
    ("bleeding", re.compile(r"sangrado abundante|sangro mucho", re.IGNORECASE)),
]

EMERGENCY_MESSAGE = " ".join([
    "Esto puede ser una **emergencia**.",
    "🔔 Si estás solo/a, llama **112** (o el número de emergencias de tu país) **ahora**.",
    "Pide ayuda a un familiar o vecino. Voy a sugerir avisar a tu contacto de emergencia.",
    "Respira despacio. Estoy contigo.",
])


def match_emergency(text: str) -> Optional[str]:
    """Return the label of the first emergency pattern found in text."""
    if not text:
        return None
    for label, pattern in EMERGENCY_PATTERNS:
        if pattern.search(text):
            return label
    return None


def check_emergency(text: str) -> Optional[str]:
    """
    Check a user utterance for emergency signals.

    Args:
        text: Raw user utterance

    Returns:
        The fixed safety message, or None when nothing matched
    """
    return EMERGENCY_MESSAGE if match_emergency(text) else None


EMERGENCY_CONTACT_LABEL = "Contacto de emergencia"


def with_emergency_contact(message: str, emergency_contact: Optional[str], label: str = EMERGENCY_CONTACT_LABEL) -> str:
    """Append the user's emergency contact to a safety message."""
    if emergency_contact and emergency_contact.strip():
        return f"{message} {label}: {emergency_contact.strip()}."
    return message
