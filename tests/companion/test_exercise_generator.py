"""
Unit tests for personalized memory exercises.
"""

import random

import pytest

from src.companion.models import UserProfile
from src.companion.processors.exercise_generator import (
    FALLBACK_NUMBERS,
    FALLBACK_STORIES,
    FALLBACK_WORDS,
    generate_exercise,
)


class TestWordsExercise:
    """Test word-list exercises."""

    def test_personal_words_come_first(self, profile, rng):
        exercise = generate_exercise("words", profile, rng)
        assert exercise.kind == "words"
        assert exercise.answer_key == "PINTAR, JARDINERÍA, ZARAGOZA"
        assert exercise.answer_key in exercise.prompt

    def test_thin_profile_is_padded_from_fallback(self, rng):
        user = UserProfile(id="u", first_name="Luis", birth_place="Soria")
        exercise = generate_exercise("words", user, rng)
        words = exercise.answer_key.split(", ")
        assert len(words) == 3
        assert words[0] == "SORIA"
        assert any(words[1:] == triple[:2] for triple in FALLBACK_WORDS)

    def test_empty_profile_uses_a_fallback_triple(self, bare_profile, rng):
        exercise = generate_exercise("words", bare_profile, rng)
        assert exercise.answer_key.split(", ") in FALLBACK_WORDS


class TestNumbersExercise:
    """Test number-sequence exercises."""

    def test_sequence_from_age_and_birth_year(self, profile, rng):
        exercise = generate_exercise("numbers", profile, rng)
        assert exercise.answer_key == "7, 8, 7"

    def test_fallback_without_birth_date(self, rng):
        user = UserProfile(id="u", first_name="Luis", age=80)
        exercise = generate_exercise("numbers", user, rng)
        assert exercise.answer_key in FALLBACK_NUMBERS


class TestStoryExercise:
    """Test short-story exercises."""

    def test_personal_story_answer_is_a_profile_detail(self, profile):
        details = {"Ana", "Zaragoza", "maestra de escuela", "paella"}
        for seed in range(10):
            exercise = generate_exercise("story", profile, random.Random(seed))
            assert exercise.answer_key in details
            assert exercise.answer_key in exercise.prompt

    def test_fallback_story(self, bare_profile, rng):
        exercise = generate_exercise("story", bare_profile, rng)
        assert (exercise.prompt.split(": ", 1)[1], exercise.answer_key) in FALLBACK_STORIES

    def test_same_seed_same_exercise(self, profile):
        first = generate_exercise("story", profile, random.Random(7))
        second = generate_exercise("story", profile, random.Random(7))
        assert first == second


def test_unknown_kind_is_rejected(profile):
    with pytest.raises(ValueError):
        generate_exercise("riddle", profile)
