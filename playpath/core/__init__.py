"""
Core Module - Shared domain models, errors and clocks.

Components:
- models: Child, Subject, Activity, AttemptRecord and derived state records
- errors: ProgressionError hierarchy
- clock: Clock protocol with system and fixed implementations

Design Principle:
Progression components import records from here rather than defining
their own copies.
"""

from playpath.core.clock import Clock, FixedClock, SystemClock, local_day
from playpath.core.errors import (
    ContentGraphError,
    InvalidInputError,
    NotFoundError,
    ProgressionError,
    StorageFailure,
)
from playpath.core.models import (
    AchievementCategory,
    AchievementDefinition,
    Activity,
    AgeBand,
    AttemptRecord,
    Child,
    EarnedAchievement,
    StreakState,
    Subject,
    SubscriptionTier,
    Tier,
    UnlockedActivity,
    UnlockReason,
)

__all__ = [
    # Models
    "AchievementCategory",
    "AchievementDefinition",
    "Activity",
    "AgeBand",
    "AttemptRecord",
    "Child",
    "EarnedAchievement",
    "StreakState",
    "Subject",
    "SubscriptionTier",
    "Tier",
    "UnlockedActivity",
    "UnlockReason",
    # Errors
    "ContentGraphError",
    "InvalidInputError",
    "NotFoundError",
    "ProgressionError",
    "StorageFailure",
    # Clock
    "Clock",
    "FixedClock",
    "SystemClock",
    "local_day",
]
