"""
Personalized memory exercises.

Exercises are built from the user's own life where the profile allows it:
hobbies, likes, birth place, former profession, relatives, favourite foods.
When the profile is too thin, a generic deck is used instead.
"""

import random
from dataclasses import dataclass
from typing import List, Literal, Optional, Tuple

from src.companion.models import UserProfile

ExerciseKind = Literal["words", "numbers", "story"]

FALLBACK_WORDS = [
    ["CASA", "ÁRBOL", "COCHE"],
    ["FLOR", "MESA", "LIBRO"],
    ["SOL", "MAR", "ARENA"],
]
FALLBACK_NUMBERS = ["2, 5, 8", "3, 7, 9", "4, 6, 1"]
FALLBACK_STORIES = [
    ("Una persona fue al mercado, compró frutas y se encontró con alguien conocido.", "frutas"),
    ("Alguien plantó flores en el jardín en una mañana soleada.", "flores"),
    ("Una familia celebró un cumpleaños con una tarta especial.", "tarta"),
]


@dataclass(frozen=True)
class Exercise:
    kind: ExerciseKind
    prompt: str
    answer_key: str


def _first_word(text: Optional[str]) -> Optional[str]:
    if not text or not text.strip():
        return None
    return text.strip().split()[0]


def _personal_words(profile: UserProfile) -> List[str]:
    prefs = profile.safe_preferences()
    candidates = [
        prefs.hobbies[0] if prefs.hobbies else None,
        prefs.likes[0] if prefs.likes else None,
        _first_word(profile.birth_place),
        _first_word(prefs.previous_profession),
        _first_word(prefs.favorite_music),
    ]
    return [word.upper() for word in candidates if word and word.strip()]


def _personal_stories(profile: UserProfile) -> List[Tuple[str, str]]:
    prefs = profile.safe_preferences()
    name = profile.first_name or "Tú"
    relative = profile.emergency_contact_name
    stories = []

    if prefs.hobbies and relative:
        stories.append((
            f"{name} estaba {prefs.hobbies[0]} cuando {relative} llamó por teléfono "
            "para preguntar cómo estabas.",
            relative,
        ))
    if profile.birth_place:
        pastime = prefs.hobbies[0] if prefs.hobbies else "pasear"
        stories.append((
            f"Recuerdas cuando vivías en {profile.birth_place} y solías {pastime} por las tardes.",
            profile.birth_place,
        ))
    if prefs.previous_profession:
        like = prefs.likes[0] if prefs.likes else "ayudar a los demás"
        stories.append((
            f"Cuando trabajabas como {prefs.previous_profession}, siempre te gustaba {like}.",
            prefs.previous_profession,
        ))
    if prefs.favorite_foods:
        stories.append((
            f"El domingo pasado preparaste {prefs.favorite_foods[0]} para la familia "
            "y todos dijeron que estaba delicioso.",
            prefs.favorite_foods[0],
        ))
    return stories


def generate_exercise(
    kind: ExerciseKind,
    profile: UserProfile,
    rng: Optional[random.Random] = None
) -> Exercise:
    """
    Build one memory exercise for the user.

    Args:
        kind: "words", "numbers" or "story"
        profile: The user the exercise is for
        rng: Random source, injectable for deterministic tests

    Returns:
        Exercise with the prompt to say and the expected answer
    """
    rng = rng or random.Random()

    if kind == "words":
        words = _personal_words(profile)
        if len(words) < 3:
            padding = rng.choice(FALLBACK_WORDS)
            words.extend(padding[:3 - len(words)])
        words = words[:3]
        answer = ", ".join(words)
        return Exercise(
            kind=kind,
            prompt=f"Recuerda estas palabras que son importantes para ti: {answer}",
            answer_key=answer,
        )

    if kind == "numbers":
        age, birth_year = profile.age, profile.birth_year
        if age and birth_year:
            sequence = f"{age // 10}, {age % 10}, {birth_year % 10}"
        else:
            sequence = rng.choice(FALLBACK_NUMBERS)
        return Exercise(
            kind=kind,
            prompt=f"Recuerda esta secuencia de números: {sequence}",
            answer_key=sequence,
        )

    if kind == "story":
        stories = _personal_stories(profile)
        story, detail = rng.choice(stories) if stories else rng.choice(FALLBACK_STORIES)
        return Exercise(
            kind=kind,
            prompt=(
                "Voy a contarte una breve historia relacionada contigo. "
                f"Intenta recordar los detalles: {story}"
            ),
            answer_key=detail,
        )

    raise ValueError(f"Unknown exercise kind: {kind}")
