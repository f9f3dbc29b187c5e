"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests:
a fixed clock, an in-memory SQLite store and a small two-subject curriculum.
"""
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from playpath.content.catalog import ContentCatalog  # noqa: E402
from playpath.core.clock import FixedClock  # noqa: E402
from playpath.core.models import (  # noqa: E402
    AchievementCategory,
    AchievementDefinition,
    Activity,
    AgeBand,
    AttemptRecord,
    Child,
    Subject,
    SubscriptionTier,
    Tier,
)
from playpath.db.sql_store import SqlProgressStore  # noqa: E402
from playpath.progression.content_graph import ContentGraph  # noqa: E402
from playpath.progression.engine import ProgressionEngine  # noqa: E402

START = datetime(2025, 3, 3, 9, 0, tzinfo=UTC)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# ========================================
# Content
# ========================================


def build_subjects() -> list[Subject]:
    return [
        Subject("math", "Mathematics", ["m1", "m2", "m3", "m4", "m5", "m6", "m-crown"]),
        Subject("reading", "Reading", ["r1", "r2", "r3"]),
    ]


def build_activities() -> list[Activity]:
    """
    math:    m1 -> m2 -> m3 -> m4 -> m5 -> m6, crown after m2
    reading: r1 -> r2 -> r3, r3 also needs m2
    """
    return [
        Activity("m1", "math", 1, "Count to 5", Tier.EASY),
        Activity("m2", "math", 2, "Count to 10", Tier.EASY, prerequisites=["m1"]),
        Activity("m3", "math", 3, "Adding", Tier.MEDIUM, prerequisites=["m2"]),
        Activity("m4", "math", 4, "Take Away", Tier.MEDIUM, prerequisites=["m3"]),
        Activity("m5", "math", 5, "Patterns", Tier.HARD, min_age=6, prerequisites=["m4"]),
        Activity("m6", "math", 6, "Adding to 20", Tier.HARD, min_age=6, prerequisites=["m5"]),
        Activity(
            "m-crown", "math", 7, "Math Crown", Tier.HARD,
            prerequisites=["m2"], is_crown_challenge=True,
        ),
        Activity("r1", "reading", 1, "Letters", Tier.EASY),
        Activity("r2", "reading", 2, "Sounds", Tier.EASY, prerequisites=["r1"]),
        Activity("r3", "reading", 3, "Words", Tier.MEDIUM, prerequisites=["r2", "m2"]),
    ]


def build_achievements() -> list[AchievementDefinition]:
    C = AchievementCategory
    return [
        AchievementDefinition("first-step", "First Step", C.FIRST_STEPS, "first_step",
                              celebration_key="achievement.first_step"),
        AchievementDefinition("stars-3", "Three Stars", C.STARS, "star_collector", {"stars": 3}),
        AchievementDefinition("stars-10", "Ten Stars", C.STARS, "star_collector", {"stars": 10},
                              priority=1),
        AchievementDefinition("streak-2", "Two Days", C.STREAKS, "streak_keeper", {"days": 2}),
        AchievementDefinition("perfect-hard-3", "Hard Hero", C.MASTERY, "perfect_run",
                              {"count": 3, "tier": "hard"}),
        AchievementDefinition("primary-only", "Big Kid", C.SPEED, "first_step",
                              age_bands=(AgeBand.PRIMARY,)),
    ]


@pytest.fixture
def subjects():
    return build_subjects()


@pytest.fixture
def activities():
    return build_activities()


@pytest.fixture
def achievement_definitions():
    return build_achievements()


@pytest.fixture
def graph(subjects, activities):
    return ContentGraph(subjects, activities)


# ========================================
# Time and settings
# ========================================


@pytest.fixture
def clock():
    """Fixed clock at Monday 2025-03-03 09:00 UTC."""
    return FixedClock(START)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        free_activities_per_subject=3,
    )


@pytest.fixture
def make_attempt():
    """Factory for AttemptRecords; `day` and `minute` offset from START."""

    def _make(
        activity_id: str,
        stars: int = 3,
        subject_id: str | None = None,
        tier: Tier = Tier.EASY,
        day: int = 0,
        minute: int = 0,
        child_id: str = "ana",
        time_spent_seconds: int = 60,
    ) -> AttemptRecord:
        errors = {3: 0, 2: 1, 1: 3}[stars]
        return AttemptRecord(
            child_id=child_id,
            activity_id=activity_id,
            subject_id=subject_id or ("reading" if activity_id.startswith("r") else "math"),
            completed_at=START + timedelta(days=day, minutes=minute),
            stars=stars,
            error_count=errors,
            total_questions=5,
            correct_answers=5 - min(errors, 5),
            time_spent_seconds=time_spent_seconds,
            tier=tier,
        )

    return _make


# ========================================
# Children
# ========================================


@pytest.fixture
def premium_child():
    return Child("ana", "Ana", 6, SubscriptionTier.PREMIUM)


@pytest.fixture
def trial_child():
    return Child("leo", "Leo", 6, SubscriptionTier.TRIAL)


# ========================================
# Database-backed fixtures
# ========================================


@pytest.fixture
def store(subjects, activities, achievement_definitions):
    """In-memory SQLite store seeded with the small curriculum."""
    store = SqlProgressStore.from_url("sqlite:///:memory:")
    with store.transaction():
        store.save_content(subjects, activities, achievement_definitions)
    yield store
    store.engine.dispose()


@pytest.fixture
def catalog(store):
    return ContentCatalog.from_store(store)


@pytest.fixture
def engine(store, catalog, settings, clock, premium_child, trial_child):
    with store.transaction():
        store.save_child(premium_child)
        store.save_child(trial_child)
    return ProgressionEngine(store, catalog, settings, clock)
