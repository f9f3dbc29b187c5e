"""
Core Domain Models.

Canonical records shared by every progression component:
- Tier, AgeBand, SubscriptionTier: enums for content gating
- Child, Subject, Activity: profile and static curriculum data
- AttemptRecord: append-only log entry, the unit of truth for derived state
- UnlockedActivity, StreakState, EarnedAchievement: derived/persisted state
- AchievementDefinition: static achievement table row

Design:
All records are plain dataclasses keyed by string ids. Prerequisites are id
lists, not object references, so the curriculum stays data-driven.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class Tier(str, Enum):
    """Difficulty tier of an activity, and the per-subject tier of a child."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    def step_up(self) -> Tier:
        """Next harder tier, capped at Hard."""
        return _TIER_ORDER[min(self.rank + 1, len(_TIER_ORDER) - 1)]

    def step_down(self) -> Tier:
        """Next easier tier, floored at Easy."""
        return _TIER_ORDER[max(self.rank - 1, 0)]

    @property
    def display_name(self) -> str:
        return self.value.title()


_TIER_ORDER = [Tier.EASY, Tier.MEDIUM, Tier.HARD]


class AgeBand(str, Enum):
    """
    Age band of a child.

    PreK covers ages 3-4, Kindergarten age 5, Primary ages 6-8.
    """

    PREK = "prek"
    KINDERGARTEN = "kindergarten"
    PRIMARY = "primary"

    @classmethod
    def from_age(cls, age: int) -> AgeBand:
        if age <= 4:
            return cls.PREK
        if age == 5:
            return cls.KINDERGARTEN
        return cls.PRIMARY


class SubscriptionTier(str, Enum):
    """Account subscription. Trial accounts see a bounded prefix of each subject."""

    TRIAL = "trial"
    PREMIUM = "premium"

    @property
    def has_premium_access(self) -> bool:
        return self is SubscriptionTier.PREMIUM


class UnlockReason(str, Enum):
    """Why an activity is (or is not) accessible."""

    NO_PREREQUISITES = "no_prerequisites"
    PREREQUISITES_MET = "prerequisites_met"
    MASTERY = "mastery"  # crown challenge unlocked by demonstrated mastery

    # Locked statuses
    AGE_RESTRICTED = "age_restricted"
    PREMIUM_GATED = "premium-gated"
    PREREQUISITES_REQUIRED = "prerequisites_required"
    MASTERY_REQUIRED = "mastery_required"
    UNPUBLISHED = "unpublished"
    CONTENT_ERROR = "content_error"

    @property
    def is_unlocked(self) -> bool:
        return self in (
            UnlockReason.NO_PREREQUISITES,
            UnlockReason.PREREQUISITES_MET,
            UnlockReason.MASTERY,
        )


class AchievementCategory(str, Enum):
    """
    Achievement categories.

    Declaration order is the evaluation order used to break ties between
    achievements earned by the same attempt.
    """

    FIRST_STEPS = "first_steps"
    STARS = "stars"
    STREAKS = "streaks"
    MASTERY = "mastery"
    SUBJECT = "subject"
    CROWN = "crown"
    SPEED = "speed"

    @property
    def order(self) -> int:
        return list(AchievementCategory).index(self)


# ============================================================================
# Profile and Curriculum
# ============================================================================


@dataclass
class Child:
    """A child profile, as far as the progression engine is concerned."""

    id: str
    name: str
    age: int
    subscription: SubscriptionTier = SubscriptionTier.TRIAL
    preferred_language: str = "es"
    difficulty: dict[str, Tier] = field(default_factory=dict)  # subject_id -> tier

    @property
    def age_band(self) -> AgeBand:
        return AgeBand.from_age(self.age)

    def tier_for(self, subject_id: str) -> Tier:
        return self.difficulty.get(subject_id, Tier.EASY)


@dataclass
class Subject:
    id: str
    name: str
    activity_ids: list[str] = field(default_factory=list)  # curriculum sequence


@dataclass
class Activity:
    """One discrete learning exercise within a subject."""

    id: str
    subject_id: str
    sequence: int
    title: str = ""
    tier: Tier = Tier.EASY
    min_age: int = 3
    max_age: int = 8
    prerequisites: list[str] = field(default_factory=list)
    is_crown_challenge: bool = False
    published: bool = True

    def is_age_appropriate(self, age: int) -> bool:
        return self.min_age <= age <= self.max_age


# ============================================================================
# Log and Derived State
# ============================================================================


@dataclass
class AttemptRecord:
    """
    One completed activity attempt.

    Immutable once appended; every derived value is recomputed from these.
    """

    child_id: str
    activity_id: str
    subject_id: str
    completed_at: datetime
    stars: int
    error_count: int
    total_questions: int
    correct_answers: int
    time_spent_seconds: int
    tier: Tier = Tier.EASY
    session_id: str | None = None
    id: int | None = None

    @property
    def is_perfect(self) -> bool:
        return self.stars == 3


@dataclass
class UnlockedActivity:
    """UnlockState entry for one activity."""

    activity_id: str
    reason: UnlockReason
    unlocked_at: datetime


@dataclass
class StreakState:
    """Persisted daily streak for a child."""

    current: int = 0
    longest: int = 0
    started_on: date | None = None
    last_activity_on: date | None = None


@dataclass
class AchievementDefinition:
    """
    Static achievement table row.

    `criteria_type` names an entry of the criteria predicate table and
    `criteria_params` carries its thresholds.
    """

    id: str
    name: str
    category: AchievementCategory
    criteria_type: str
    criteria_params: dict[str, Any] = field(default_factory=dict)
    age_bands: tuple[AgeBand, ...] = tuple(AgeBand)
    priority: int = 0
    celebration_key: str = ""
    subject_id: str | None = None

    @property
    def sort_key(self) -> tuple[int, int, str]:
        return (self.category.order, self.priority, self.id)


@dataclass
class EarnedAchievement:
    child_id: str
    achievement_id: str
    earned_at: datetime
