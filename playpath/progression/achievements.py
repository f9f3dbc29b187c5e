"""
Achievement Evaluator.

Achievements are declarative: each definition names a `criteria_type`
from the CRITERIA predicate table plus its parameters. A predicate
returns progress in [0, 1]; the achievement is earned at 1.0.

Criteria types:
- first_step: any completed activity
- activity_count: distinct activities completed (optionally per subject)
- star_collector: best stars per activity, summed (optionally per subject)
- perfect_run: consecutive 3-star attempts (optionally per subject/tier)
- streak_keeper: longest daily streak
- subject_master: every age-appropriate activity of a subject completed
- crown_champion: crown challenges completed
- speed_learner: perfect attempts finished within a time limit

Evaluation is idempotent: earned achievements are skipped, and the
output order is the static (category, priority, id) order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Sequence

from loguru import logger

from playpath.core.clock import ensure_aware
from playpath.core.models import (
    AchievementCategory,
    AchievementDefinition,
    AttemptRecord,
    Child,
    EarnedAchievement,
    StreakState,
)
from playpath.progression.content_graph import ContentGraph


@dataclass
class AchievementContext:
    """Everything a criteria predicate may look at. Attempts are chronological."""

    child: Child
    attempts: Sequence[AttemptRecord]
    streak: StreakState
    graph: ContentGraph

    def attempts_for(self, subject_id: str | None = None, tier: str | None = None) -> list[AttemptRecord]:
        return [
            a for a in self.attempts
            if (subject_id is None or a.subject_id == subject_id)
            and (tier is None or a.tier == tier)
        ]

    def best_stars(self, subject_id: str | None = None) -> dict[str, int]:
        best: dict[str, int] = {}
        for attempt in self.attempts_for(subject_id):
            best[attempt.activity_id] = max(best.get(attempt.activity_id, 0), attempt.stars)
        return best


@dataclass
class Celebration:
    """Opaque keys handed to the presentation layer."""

    message_key: str
    asset_key: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class AwardedAchievement:
    """A newly earned achievement with its celebration payload."""

    definition: AchievementDefinition
    earned: EarnedAchievement
    celebration: Celebration


@dataclass
class AchievementProgress:
    """Read-only near-miss view of one achievement."""

    achievement_id: str
    name: str
    category: AchievementCategory
    progress: float  # 0-1
    is_earned: bool
    earned_at: datetime | None = None

    @property
    def percentage(self) -> int:
        return int(self.progress * 100)


# ============================================================================
# Criteria predicate table
# ============================================================================

Criterion = Callable[[AchievementContext, dict[str, Any]], float]


def _ratio(value: float, target: float) -> float:
    if target <= 0:
        return 1.0
    return min(1.0, value / target)


def _first_step(ctx: AchievementContext, params: dict[str, Any]) -> float:
    return 1.0 if ctx.attempts else 0.0


def _activity_count(ctx: AchievementContext, params: dict[str, Any]) -> float:
    completed = {a.activity_id for a in ctx.attempts_for(params.get("subject_id"))}
    return _ratio(len(completed), params.get("count", 1))


def _star_collector(ctx: AchievementContext, params: dict[str, Any]) -> float:
    total = sum(ctx.best_stars(params.get("subject_id")).values())
    return _ratio(total, params.get("stars", 1))


def _perfect_run(ctx: AchievementContext, params: dict[str, Any]) -> float:
    run = 0
    best = 0
    for attempt in ctx.attempts_for(params.get("subject_id"), params.get("tier")):
        run = run + 1 if attempt.is_perfect else 0
        best = max(best, run)
    return _ratio(best, params.get("count", 3))


def _streak_keeper(ctx: AchievementContext, params: dict[str, Any]) -> float:
    days = max(ctx.streak.longest, ctx.streak.current)
    return _ratio(days, params.get("days", 5))


def _subject_master(ctx: AchievementContext, params: dict[str, Any]) -> float:
    subject_id = params.get("subject_id")
    if subject_id is None:
        return 0.0
    targets = [
        a.id for a in ctx.graph.activities_for(subject_id)
        if not a.is_crown_challenge and a.is_age_appropriate(ctx.child.age)
    ]
    if not targets:
        return 0.0
    min_stars = params.get("min_stars", 1)
    best = ctx.best_stars(subject_id)
    done = sum(1 for aid in targets if best.get(aid, 0) >= min_stars)
    return _ratio(done, len(targets))


def _crown_champion(ctx: AchievementContext, params: dict[str, Any]) -> float:
    crowns = set()
    for attempt in ctx.attempts_for(params.get("subject_id")):
        activity = ctx.graph.activity(attempt.activity_id)
        if activity is not None and activity.is_crown_challenge:
            crowns.add(attempt.activity_id)
    return _ratio(len(crowns), params.get("count", 1))


def _speed_learner(ctx: AchievementContext, params: dict[str, Any]) -> float:
    limit = params.get("seconds", 60)
    fast = [a for a in ctx.attempts if a.is_perfect and a.time_spent_seconds <= limit]
    return _ratio(len(fast), params.get("count", 1))


CRITERIA: dict[str, Criterion] = {
    "first_step": _first_step,
    "activity_count": _activity_count,
    "star_collector": _star_collector,
    "perfect_run": _perfect_run,
    "streak_keeper": _streak_keeper,
    "subject_master": _subject_master,
    "crown_champion": _crown_champion,
    "speed_learner": _speed_learner,
}


# ============================================================================
# Evaluator
# ============================================================================


class AchievementEvaluator:
    """Evaluate achievement definitions against a child's history."""

    def __init__(
        self,
        definitions: Iterable[AchievementDefinition],
        criteria: dict[str, Criterion] | None = None,
    ):
        self.criteria = criteria if criteria is not None else CRITERIA
        self.definitions: list[AchievementDefinition] = []
        for definition in definitions:
            if definition.criteria_type not in self.criteria:
                logger.error(
                    f"Achievement {definition.id} has unknown criteria type "
                    f"'{definition.criteria_type}', skipping"
                )
                continue
            self.definitions.append(definition)
        self.definitions.sort(key=lambda d: d.sort_key)

    def progress_of(self, definition: AchievementDefinition, ctx: AchievementContext) -> float:
        params = dict(definition.criteria_params)
        if definition.subject_id is not None:
            params.setdefault("subject_id", definition.subject_id)
        value = self.criteria[definition.criteria_type](ctx, params)
        return max(0.0, min(1.0, value))

    def _eligible(self, definition: AchievementDefinition, child: Child) -> bool:
        return child.age_band in definition.age_bands

    def evaluate(
        self,
        ctx: AchievementContext,
        earned_ids: Iterable[str],
        now: datetime,
    ) -> list[AwardedAchievement]:
        """
        Newly earned achievements, in static order.

        Args:
            ctx: Child history (attempt just appended must be included)
            earned_ids: Achievements the child already holds
            now: Timestamp for the new EarnedAchievement records

        Returns:
            AwardedAchievement list (empty when nothing new is earned)
        """
        already = set(earned_ids)
        awarded: list[AwardedAchievement] = []
        for definition in self.definitions:
            if definition.id in already or not self._eligible(definition, ctx.child):
                continue
            if self.progress_of(definition, ctx) < 1.0:
                continue
            earned = EarnedAchievement(
                child_id=ctx.child.id,
                achievement_id=definition.id,
                earned_at=ensure_aware(now),
            )
            awarded.append(
                AwardedAchievement(
                    definition=definition,
                    earned=earned,
                    celebration=self.celebration_for(definition),
                )
            )
            already.add(definition.id)
            logger.info(f"Child {ctx.child.id} earned achievement {definition.id}")
        return awarded

    def progress(
        self,
        ctx: AchievementContext,
        earned: dict[str, EarnedAchievement],
        category: AchievementCategory | None = None,
    ) -> list[AchievementProgress]:
        """Progress ratios for every age-appropriate achievement. Read-only."""
        result = []
        for definition in self.definitions:
            if category is not None and definition.category != category:
                continue
            if not self._eligible(definition, ctx.child):
                continue
            record = earned.get(definition.id)
            result.append(
                AchievementProgress(
                    achievement_id=definition.id,
                    name=definition.name,
                    category=definition.category,
                    progress=1.0 if record else self.progress_of(definition, ctx),
                    is_earned=record is not None,
                    earned_at=record.earned_at if record else None,
                )
            )
        return result

    @staticmethod
    def celebration_for(definition: AchievementDefinition) -> Celebration:
        key = definition.celebration_key or f"achievement.{definition.id}"
        return Celebration(
            message_key=key,
            asset_key=f"celebration.{definition.category.value}",
            params={"achievement_id": definition.id, "name": definition.name},
        )
