"""
Progress store interface.

The engine depends only on this protocol. Every method runs inside the
transaction opened by `transaction()` when one is active on the calling
thread; otherwise it uses a short-lived transaction of its own.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Iterable, Protocol

from playpath.core.models import (
    AchievementDefinition,
    Activity,
    AttemptRecord,
    Child,
    EarnedAchievement,
    StreakState,
    Subject,
    Tier,
    UnlockedActivity,
)


class ProgressStore(Protocol):
    """Persistence collaborator for profiles, content, the attempt log and derived state."""

    def transaction(self) -> AbstractContextManager[None]:
        """All writes inside commit together or not at all."""
        ...

    # Profiles
    def get_child(self, child_id: str) -> Child | None: ...

    def list_children(self) -> list[Child]: ...

    def save_child(self, child: Child) -> None: ...

    def set_child_tier(self, child_id: str, subject_id: str, tier: Tier) -> None: ...

    # Static content
    def load_subjects(self) -> list[Subject]: ...

    def load_activities(self) -> list[Activity]: ...

    def load_achievements(self) -> list[AchievementDefinition]: ...

    def save_content(
        self,
        subjects: Iterable[Subject],
        activities: Iterable[Activity],
        achievements: Iterable[AchievementDefinition],
    ) -> None: ...

    # Attempt log
    def append_attempt(self, attempt: AttemptRecord) -> AttemptRecord: ...

    def get_attempts(self, child_id: str, subject_id: str | None = None) -> list[AttemptRecord]: ...

    # Derived state
    def get_unlocks(self, child_id: str) -> dict[str, UnlockedActivity]: ...

    def add_unlocks(self, child_id: str, unlocks: Iterable[UnlockedActivity]) -> None: ...

    def get_streak(self, child_id: str) -> StreakState: ...

    def save_streak(self, child_id: str, state: StreakState) -> None: ...

    def get_earned_achievements(self, child_id: str) -> dict[str, EarnedAchievement]: ...

    def add_earned_achievements(self, earned: Iterable[EarnedAchievement]) -> None: ...
