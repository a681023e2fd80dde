"""
Test configuration and fixtures for the Companion assistant tests.
"""

import json
import os
import random
from datetime import date

import pytest

# Keep a developer's real key out of the test run
os.environ.pop("OPENAI_API_KEY", None)

from src.companion.config import Settings
from src.companion.models import ChatContext, UserProfile
from src.companion.services.repository import InMemoryCareRepository


@pytest.fixture
def settings():
    """Settings with a fake key and no backoff delay."""
    return Settings(
        _env_file=None,
        openai_api_key="test_openai_key",
        llm_retry_backoff_ms=0,
        summary_random_probability=0.0,
    )


@pytest.fixture
def offline_settings():
    """Settings without a language model."""
    return Settings(_env_file=None, openai_api_key=None)


@pytest.fixture
def profile():
    """A fully filled-in elderly user."""
    return UserProfile(
        id="user-1",
        first_name="María",
        last_name="García",
        age=78,
        birth_date=date(1947, 3, 14),
        cognitive_level="mild",
        birth_place="Zaragoza",
        profession="maestra",
        emergency_contact="Ana 600123123",
        emergency_contact_name="Ana",
        emergency_contact_phone="600123123",
        preferences=json.dumps({
            "likes": ["jardinería", "boleros"],
            "hobbies": ["pintar"],
            "favoriteFoods": ["paella"],
            "previousProfession": "maestra de escuela",
            "favoriteMusic": "boleros",
        }),
        personality_traits={"mood": "alegre", "strengths": ["paciencia"]},
    )


@pytest.fixture
def bare_profile():
    """A user with nothing but an id and a name."""
    return UserProfile(id="user-2", first_name="José")


@pytest.fixture
def context(profile):
    return ChatContext(user=profile, message_history=[])


@pytest.fixture
def repository(profile):
    repo = InMemoryCareRepository()
    repo.add_user(profile)
    return repo


@pytest.fixture
def rng():
    return random.Random(42)
