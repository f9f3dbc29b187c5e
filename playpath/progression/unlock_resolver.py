"""
Unlock Resolver.

Decides which activities a child can access. An activity unlocks iff:
- the child's age is within [min_age, max_age]
- the subscription allows it (trial accounts: first N activities per subject)
- every prerequisite has a completed attempt

Crown challenges additionally require demonstrated mastery in the subject
(see CrownRule). Unlocking is one-way: persisted unlocks are always kept,
and crown mastery is replayed over the whole attempt log so the derived set
never shrinks as attempts accumulate.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from statistics import mean
from typing import Iterable, Sequence

from loguru import logger

from playpath.core.clock import ensure_aware
from playpath.core.errors import ContentGraphError
from playpath.core.models import (
    Activity,
    AttemptRecord,
    Child,
    Tier,
    UnlockedActivity,
    UnlockReason,
)
from playpath.progression.content_graph import ContentGraph

# Tier whose perfect runs qualify a child for crown challenges (the one below Hard)
CROWN_QUALIFYING_TIER = Tier.HARD.step_down()


@dataclass
class ActivityUnlockStatus:
    """Full unlock evaluation for one activity."""

    activity_id: str
    is_unlocked: bool
    reason: UnlockReason
    requirements: list[str] = field(default_factory=list)
    completed_requirements: list[str] = field(default_factory=list)
    progress_percentage: int = 0  # share of prerequisites completed


@dataclass
class UnlockedActivityInfo:
    """An accessible activity, as returned to the presentation layer."""

    activity: Activity
    reason: UnlockReason
    unlocked_at: datetime
    is_completed: bool = False
    is_newly_unlocked: bool = False


@dataclass
class CrownChallengeEligibility:
    """Mastery check for a subject's crown challenges."""

    subject_id: str
    is_eligible: bool
    mastery_score: float  # recent mean stars as a percentage of 3
    recent_mean: float
    best_perfect_run: int
    attempts_considered: int
    reason: str


@dataclass
class UnlockResolution:
    """Merged unlock state after one resolution pass."""

    unlocked: dict[str, UnlockedActivity]
    newly_unlocked: list[UnlockedActivity] = field(default_factory=list)
    failed_subjects: set[str] = field(default_factory=set)


class CrownRule:
    """
    Crown challenge mastery rule.

    Eligible when the last `window_size` attempts of the subject (at least
    `min_attempts` of them) average >= `mastery_threshold` stars, and the
    child has completed at least `perfect_run` consecutive 3-star attempts
    on the Medium tier.
    """

    def __init__(
        self,
        mastery_threshold: float = 2.7,
        window_size: int = 10,
        min_attempts: int = 5,
        perfect_run: int = 3,
    ):
        self.mastery_threshold = mastery_threshold
        self.window_size = window_size
        self.min_attempts = min_attempts
        self.perfect_run = perfect_run

    @classmethod
    def from_settings(cls, settings) -> CrownRule:
        return cls(**settings.get_crown_config())

    def eligibility(
        self, subject_id: str, subject_attempts: Sequence[AttemptRecord]
    ) -> CrownChallengeEligibility:
        """Eligibility as of the latest attempt."""
        ordered = _chronological(subject_attempts)
        window = [a.stars for a in ordered[-self.window_size:]]
        recent_mean = mean(window) if window else 0.0
        best_run = self._best_perfect_run(ordered)

        missing: list[str] = []
        if len(window) < self.min_attempts:
            missing.append(f"{self.min_attempts - len(window)} more activities")
        elif recent_mean < self.mastery_threshold:
            missing.append(f"{self.mastery_threshold - recent_mean:.1f} more average stars")
        if best_run < self.perfect_run:
            missing.append(
                f"{self.perfect_run - best_run} more perfect "
                f"{CROWN_QUALIFYING_TIER.display_name} activities in a row"
            )

        return CrownChallengeEligibility(
            subject_id=subject_id,
            is_eligible=not missing,
            mastery_score=round(recent_mean / 3.0 * 100, 1),
            recent_mean=round(recent_mean, 2),
            best_perfect_run=best_run,
            attempts_considered=len(window),
            reason="Excellent performance qualifies for crown challenges!"
            if not missing
            else "Need " + " and ".join(missing),
        )

    def first_satisfied_at(self, subject_attempts: Sequence[AttemptRecord]) -> datetime | None:
        """
        Replay the log and return when the rule first held, if ever.

        Used for unlocking so that a later dip in stars never re-locks a
        crown challenge that was already earned.
        """
        window: deque[int] = deque(maxlen=self.window_size)
        run = 0
        best_run = 0
        for attempt in _chronological(subject_attempts):
            window.append(attempt.stars)
            if attempt.tier == CROWN_QUALIFYING_TIER:
                run = run + 1 if attempt.is_perfect else 0
                best_run = max(best_run, run)
            if (
                len(window) >= self.min_attempts
                and mean(window) >= self.mastery_threshold
                and best_run >= self.perfect_run
            ):
                return attempt.completed_at
        return None

    def _best_perfect_run(self, ordered: list[AttemptRecord]) -> int:
        run = 0
        best = 0
        for attempt in ordered:
            if attempt.tier != CROWN_QUALIFYING_TIER:
                continue
            run = run + 1 if attempt.is_perfect else 0
            best = max(best, run)
        return best


class UnlockResolver:
    """
    Evaluate unlock rules over the prerequisite DAG.

    All inputs are explicit: the graph, the child profile and the child's
    attempt log. Results are memoized only within a single call.
    """

    def __init__(
        self,
        graph: ContentGraph,
        free_activities_per_subject: int = 5,
        crown_rule: CrownRule | None = None,
    ):
        self.graph = graph
        self.free_activities_per_subject = free_activities_per_subject
        self.crown_rule = crown_rule or CrownRule()

    @classmethod
    def from_settings(cls, graph: ContentGraph, settings) -> UnlockResolver:
        return cls(
            graph,
            free_activities_per_subject=settings.free_activities_per_subject,
            crown_rule=CrownRule.from_settings(settings),
        )

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate_subject(
        self,
        child: Child,
        attempts: Sequence[AttemptRecord],
        subject_id: str,
    ) -> dict[str, ActivityUnlockStatus]:
        """
        Evaluate every activity of a subject in prerequisite order.

        Raises:
            ContentGraphError: if the subject's prerequisite graph is broken
        """
        self.graph.ensure_valid(subject_id)

        completed = {a.activity_id for a in attempts if a.stars >= 1}
        subject_attempts = [a for a in attempts if a.subject_id == subject_id]
        free_ids = self.graph.free_prefix(subject_id, self.free_activities_per_subject)
        crown_mastered: bool | None = None

        statuses: dict[str, ActivityUnlockStatus] = {}
        for activity in self.graph.topological_order([subject_id]):
            if activity.is_crown_challenge and crown_mastered is None:
                crown_mastered = self.crown_rule.first_satisfied_at(subject_attempts) is not None
            statuses[activity.id] = self._evaluate(
                activity, child, completed, free_ids, bool(crown_mastered)
            )
        return statuses

    def status_for(
        self,
        child: Child,
        attempts: Sequence[AttemptRecord],
        activity_id: str,
    ) -> ActivityUnlockStatus | None:
        activity = self.graph.activity(activity_id)
        if activity is None:
            return None
        return self.evaluate_subject(child, attempts, activity.subject_id).get(activity_id)

    def _evaluate(
        self,
        activity: Activity,
        child: Child,
        completed: set[str],
        free_ids: set[str],
        crown_mastered: bool,
    ) -> ActivityUnlockStatus:
        requirements: list[str] = []
        done: list[str] = []
        reason: UnlockReason | None = None

        if not activity.published:
            requirements.append("Activity is not published")
            reason = UnlockReason.UNPUBLISHED

        if activity.is_age_appropriate(child.age):
            done.append("Age appropriate")
        else:
            requirements.append(f"Age must be between {activity.min_age} and {activity.max_age}")
            reason = reason or UnlockReason.AGE_RESTRICTED

        if child.subscription.has_premium_access or activity.id in free_ids:
            done.append("Included in subscription")
        else:
            requirements.append("Premium subscription required")
            reason = reason or UnlockReason.PREMIUM_GATED

        prerequisites = activity.prerequisites
        met = [pid for pid in prerequisites if pid in completed]
        for pid in prerequisites:
            title = self._title(pid)
            if pid in completed:
                done.append(f"Completed: {title}")
            else:
                requirements.append(f"Complete: {title}")
        if len(met) < len(prerequisites):
            reason = reason or UnlockReason.PREREQUISITES_REQUIRED
        progress = int(len(met) / len(prerequisites) * 100) if prerequisites else 100

        if activity.is_crown_challenge:
            if crown_mastered:
                done.append("Subject mastery demonstrated")
            else:
                requirements.append("Show mastery in this subject")
                reason = reason or UnlockReason.MASTERY_REQUIRED

        if reason is None:
            if activity.is_crown_challenge:
                reason = UnlockReason.MASTERY
            elif prerequisites:
                reason = UnlockReason.PREREQUISITES_MET
            else:
                reason = UnlockReason.NO_PREREQUISITES

        return ActivityUnlockStatus(
            activity_id=activity.id,
            is_unlocked=reason.is_unlocked,
            reason=reason,
            requirements=requirements,
            completed_requirements=done,
            progress_percentage=progress,
        )

    def _title(self, activity_id: str) -> str:
        activity = self.graph.activity(activity_id)
        return activity.title if activity and activity.title else f"Activity {activity_id}"

    # ------------------------------------------------------------------
    # Resolution (merge with persisted state)
    # ------------------------------------------------------------------

    def resolve(
        self,
        child: Child,
        attempts: Sequence[AttemptRecord],
        persisted: dict[str, UnlockedActivity],
        now: datetime,
        subject_ids: Iterable[str] | None = None,
    ) -> UnlockResolution:
        """
        Recompute unlocks for the given subjects and merge with persisted state.

        Subjects with a broken content graph keep exactly their persisted
        unlocks and are reported in `failed_subjects`.
        """
        scope = list(subject_ids) if subject_ids is not None else [s.id for s in self.graph.subjects]
        merged = dict(persisted)
        resolution = UnlockResolution(unlocked=merged)

        for subject_id in scope:
            try:
                statuses = self.evaluate_subject(child, attempts, subject_id)
            except ContentGraphError as e:
                logger.error(
                    f"Unlock resolution refused for child {child.id}, subject {subject_id}: {e}"
                )
                resolution.failed_subjects.add(subject_id)
                continue

            for activity_id, status in statuses.items():
                if not status.is_unlocked or activity_id in merged:
                    continue
                entry = UnlockedActivity(
                    activity_id=activity_id,
                    reason=status.reason,
                    unlocked_at=ensure_aware(now),
                )
                merged[activity_id] = entry
                resolution.newly_unlocked.append(entry)

        if resolution.newly_unlocked:
            logger.info(
                f"Child {child.id}: {len(resolution.newly_unlocked)} newly unlocked "
                f"({', '.join(u.activity_id for u in resolution.newly_unlocked)})"
            )
        return resolution

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def next_activity(
        self,
        subject_id: str,
        unlocked_ids: Iterable[str],
        attempted_ids: Iterable[str],
    ) -> Activity | None:
        """Lowest-sequence unlocked, unattempted, non-crown activity of a subject."""
        unlocked = set(unlocked_ids)
        attempted = set(attempted_ids)
        for activity in self.graph.activities_for(subject_id):
            if activity.is_crown_challenge:
                continue
            if activity.id in unlocked and activity.id not in attempted:
                return activity
        return None

    def crown_challenges(
        self,
        subject_id: str,
        unlocked_ids: Iterable[str],
        attempted_ids: Iterable[str] = (),
    ) -> list[Activity]:
        """Unlocked crown challenges of a subject that are not yet attempted."""
        unlocked = set(unlocked_ids)
        attempted = set(attempted_ids)
        return [
            a for a in self.graph.activities_for(subject_id)
            if a.is_crown_challenge and a.id in unlocked and a.id not in attempted
        ]

    def recovery_activity(
        self,
        subject_id: str,
        unlocked_ids: Iterable[str],
    ) -> Activity | None:
        """Lowest-friction unlocked activity: first Easy, non-crown activity of the subject."""
        unlocked = set(unlocked_ids)
        for activity in self.graph.activities_for(subject_id):
            if activity.id in unlocked and not activity.is_crown_challenge and activity.tier == Tier.EASY:
                return activity
        return None


def _chronological(attempts: Sequence[AttemptRecord]) -> list[AttemptRecord]:
    return sorted(attempts, key=lambda a: (ensure_aware(a.completed_at), a.id or 0))
