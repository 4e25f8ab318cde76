"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta

import pytest

from rulecoach.data.rule_pack_loader import load_rule_pack
from rulecoach.db import init_db, seed_rule_pack
from rulecoach.models.checkin import AdherenceLevel, CheckIn, ContextualEvent
from rulecoach.models.profile import (
    ActivityLevel,
    AnthropometricProfile,
    Goal,
    Sex,
    TrainingBackground,
)

START = datetime(2026, 1, 5, 8, 0)


@pytest.fixture
def rule_pack():
    """The bundled v1 rule pack."""
    return load_rule_pack()


@pytest.fixture
def temp_db_path(tmp_path):
    """Create an initialized database with the bundled rule pack active."""
    db_path = tmp_path / "rulecoach.db"
    asyncio.run(init_db(db_path))
    asyncio.run(seed_rule_pack(db_path))
    return db_path


@pytest.fixture
def sample_profile():
    """80kg, 180cm, 30 year old male cutting at moderate activity."""
    return AnthropometricProfile(
        user_id="alice",
        age=30,
        sex=Sex.MALE,
        height=180,
        weight=80,
        activity_level=ActivityLevel.MODERATE,
        goal=Goal.WEIGHT_LOSS,
    )


@pytest.fixture
def cutting_profile():
    """Female profile whose initial deficit sits below the kcal cap."""
    return AnthropometricProfile(
        user_id="bea",
        age=30,
        sex=Sex.FEMALE,
        height=165,
        weight=70,
        activity_level=ActivityLevel.MODERATE,
        goal=Goal.WEIGHT_LOSS,
        training=TrainingBackground(days_per_week=3),
    )


def _make_checkin(
    weight: float,
    week: int = 1,
    user_id: str = "alice",
    energy: int = 8,
    hunger: int = 3,
    sleep: int = 8,
    stress: int = 3,
    adherence: AdherenceLevel = AdherenceLevel.HIGH,
    waist: float | None = None,
    events: tuple = (ContextualEvent.NO_EVENTS,),
) -> CheckIn:
    """Check-in recorded `week` weeks after START. Default ratings are low risk."""
    return CheckIn(
        user_id=user_id,
        weight=weight,
        energy=energy,
        hunger=hunger,
        sleep=sleep,
        stress=stress,
        adherence=adherence,
        waist=waist,
        events=events,
        recorded_at=START + timedelta(weeks=week),
        week_number=week,
    )


@pytest.fixture
def make_checkin():
    """Build check-ins one week apart from a fixed start date."""
    return _make_checkin


@pytest.fixture
def weekly():
    """Build one check-in per week from a list of weights."""

    def build(*weights, **kwargs):
        return [_make_checkin(w, week=i + 1, **kwargs) for i, w in enumerate(weights)]

    return build
