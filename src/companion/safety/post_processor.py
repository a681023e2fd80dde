"""
Post-processing of generated replies.

The model must never tell the user to change a treatment. Replies that read
like a dosage instruction are discarded and replaced by a fixed redirect.
"""

import logging
import re

from src.companion.models import UserProfile
from src.companion.utils.metrics import safety_override_counter

logger = logging.getLogger(__name__)

DOSAGE_DIRECTIVE = re.compile(
    r"\b(aumenta|reduce|deja|duplica|toma|suspende)\b.*\b(pastillas?|medicación|medicacion|medicamentos?|dosis)\b",
    re.IGNORECASE | re.DOTALL,
)


def is_dosage_directive(answer: str) -> bool:
    return bool(answer) and DOSAGE_DIRECTIVE.search(answer) is not None


def safe_redirect(profile: UserProfile) -> str:
    name = profile.first_name or "Perdona"
    return (
        f"{name}, prefiero que esto lo revises con tu médico o familiar. "
        "Puedo ayudarte a recordar los horarios, pero no cambiar las dosis."
    )


def enforce_safety(answer: str, profile: UserProfile) -> str:
    """
    Replace replies that look like medical dosage directives.

    Args:
        answer: Candidate reply text
        profile: The conversing user

    Returns:
        The answer unchanged, or the fixed safe redirect
    """
    if is_dosage_directive(answer):
        logger.info("Dosage directive detected in reply, substituting safe redirect")
        safety_override_counter.labels(kind="dosage").inc()
        return safe_redirect(profile)
    return answer
