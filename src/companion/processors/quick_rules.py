"""
Quick-rule responder.

Cheap, deterministic replies for the commonest utterances. Rules are tried
in order and the first pattern that matches decides the outcome, which may
be ``None`` to force the language model path.
"""

import logging
import random
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from src.companion.models import UserProfile
from src.companion.processors.exercise_generator import generate_exercise
from src.companion.utils.formatting import date_es, time_es

logger = logging.getLogger(__name__)

TIME_QUESTION = re.compile(r"(^|\s|¿)(qué hora|que hora|hora es|fecha|qué día|que día)(\s|$|\?)", re.IGNORECASE)
MOOD_KEYWORDS = re.compile(r"(triste|solo|sola|desanimado|desanimada|ansioso|ansiosa)", re.IGNORECASE)
MEDICATION_KEYWORDS = re.compile(r"(medicina|medicamento|pastilla|recordatorio|cita|doctor)", re.IGNORECASE)
EXERCISE_KEYWORDS = re.compile(r"(memoria|ejercicio|recordar|juego|jugar|entretener)", re.IGNORECASE)

# Time questions longer than this are left to the model
TIME_QUESTION_MAX_LENGTH = 30


@dataclass
class RuleContext:
    message: str
    profile: UserProfile
    rng: random.Random
    timezone: str

    @property
    def first_name(self) -> str:
        return self.profile.first_name or ""


@dataclass(frozen=True)
class QuickRule:
    name: str
    pattern: "re.Pattern[str]"
    handler: Callable[[RuleContext], Optional[str]]
    max_length: Optional[int] = None

    def matches(self, message: str) -> bool:
        if self.max_length is not None and len(message) >= self.max_length:
            return False
        return self.pattern.search(message) is not None


def _time_reply(ctx: RuleContext) -> str:
    return (
        f"{ctx.first_name}, ahora son las {time_es(tz_name=ctx.timezone)}. "
        f"Hoy es {date_es(tz_name=ctx.timezone)}. ¿Cómo te va hasta ahora?"
    )


def _mood_reply(ctx: RuleContext) -> str:
    return (
        f"{ctx.first_name}, gracias por contármelo. Es normal sentirse así a veces. "
        "Estoy contigo. ¿Te apetece que charlemos de algo que te guste "
        "o llamamos a un familiar si lo prefieres?"
    )


def _defer_to_model(ctx: RuleContext) -> None:
    # Medication and appointment questions need the reminder tools
    return None


def _exercise_reply(ctx: RuleContext) -> str:
    exercise = generate_exercise("words", ctx.profile, ctx.rng)
    return (
        f"¡Buena idea, {ctx.first_name}! {exercise.prompt}. Tómate tu tiempo... "
        "¿Quieres que te lo repita una vez más o pasamos a comprobar?"
    )


QUICK_RULES: List[QuickRule] = [
    QuickRule("time", TIME_QUESTION, _time_reply, max_length=TIME_QUESTION_MAX_LENGTH),
    QuickRule("mood", MOOD_KEYWORDS, _mood_reply),
    QuickRule("medication", MEDICATION_KEYWORDS, _defer_to_model),
    QuickRule("exercise", EXERCISE_KEYWORDS, _exercise_reply),
]


class QuickRuleResponder:
    """Applies the ordered rule table to one utterance."""

    def __init__(
        self,
        rules: Optional[List[QuickRule]] = None,
        rng: Optional[random.Random] = None,
        timezone: str = "Europe/Madrid"
    ):
        self.rules = rules if rules is not None else QUICK_RULES
        self.rng = rng or random.Random()
        self.timezone = timezone

    def match(self, message: str) -> Optional[QuickRule]:
        for rule in self.rules:
            if rule.matches(message):
                return rule
        return None

    def reply(self, message: str, profile: UserProfile) -> Optional[str]:
        """
        Answer the utterance from the rule table.

        Args:
            message: Raw user utterance
            profile: The conversing user

        Returns:
            Reply text, or None when the model should answer
        """
        rule = self.match(message)
        if rule is None:
            return None

        answer = rule.handler(RuleContext(message, profile, self.rng, self.timezone))
        logger.debug(f"Quick rule '{rule.name}' matched, reply={'yes' if answer else 'deferred'}")
        return answer


def rule_based_reply(
    message: str,
    profile: UserProfile,
    rng: Optional[random.Random] = None,
    timezone: str = "Europe/Madrid"
) -> Optional[str]:
    return QuickRuleResponder(rng=rng, timezone=timezone).reply(message, profile)
