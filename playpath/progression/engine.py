"""
Progression Engine.

Single entry point invoked once per completed activity. `process_completion`
runs as one transaction:

    validate -> score -> append attempt -> difficulty -> unlocks
             -> streak -> achievements -> persist

and returns one ProgressionResult. Read-side queries recompute derived
state from the attempt log merged with what is persisted, so they stay
correct after a crash or a partial write. Unlocks are written the first
time a read serves them.

At most one completion per child is in flight at a time; different
children proceed independently.
"""

from __future__ import annotations

import threading
import weakref
from dataclasses import dataclass, field
from datetime import timedelta
from statistics import mean

from loguru import logger

from config import Settings
from playpath.content.catalog import ContentCatalog
from playpath.core.clock import Clock, SystemClock, ensure_aware
from playpath.core.errors import ContentGraphError, InvalidInputError, NotFoundError
from playpath.core.models import (
    AchievementCategory,
    Activity,
    AttemptRecord,
    Child,
    StreakState,
    Tier,
    UnlockedActivity,
    UnlockReason,
)
from playpath.db.store import ProgressStore
from playpath.progression.achievements import (
    AchievementContext,
    AchievementEvaluator,
    AchievementProgress,
    AwardedAchievement,
)
from playpath.progression.difficulty import DifficultyAdviser, DifficultyRecommendation
from playpath.progression.learning_path import LearningPath, LearningPathPlanner, MilestoneActivity
from playpath.progression.scoring import (
    CompletionOutcome,
    ScoreResult,
    ScoringCalculator,
    validate_stars,
)
from playpath.progression.streaks import StreakStatus, StreakTracker, StreakUpdate
from playpath.progression.unlock_resolver import (
    ActivityUnlockStatus,
    CrownChallengeEligibility,
    UnlockedActivityInfo,
    UnlockResolver,
)

# Unlocks younger than this, on activities not yet attempted, are flagged as new
NEW_UNLOCK_WINDOW = timedelta(days=1)


@dataclass
class CelebrationMessage:
    """Opaque keys for the completion screen."""

    message_key: str
    audio_key: str
    stars: int
    new_unlock_count: int
    streak_key: str | None = None
    achievement_keys: list[str] = field(default_factory=list)


@dataclass
class ProgressionResult:
    """Everything decided by one completed attempt."""

    attempt: AttemptRecord
    score: ScoreResult
    new_unlocks: list[UnlockedActivity]
    new_achievements: list[AwardedAchievement]
    streak_update: StreakUpdate
    difficulty_recommendation: DifficultyRecommendation
    crown_challenges: list[Activity]
    celebration: CelebrationMessage

    @property
    def stars(self) -> int:
        return self.score.stars


@dataclass
class SubjectProgress:
    subject_id: str
    total_activities: int
    completed_activities: int
    completion_percentage: float
    average_stars: float
    current_tier: Tier


@dataclass
class RebuildSummary:
    child_id: str
    unlocks_added: int
    achievements_added: int
    streak: StreakState


class ProgressionEngine:
    """
    Orchestrates scoring, difficulty, unlocks, streaks and achievements.

    Args:
        store: ProgressStore implementation
        catalog: Static content with its validated ContentGraph
        settings: Thresholds and feature switches
        clock: Time source (defaults to the system clock)
    """

    def __init__(
        self,
        store: ProgressStore,
        catalog: ContentCatalog,
        settings: Settings,
        clock: Clock | None = None,
    ):
        self.store = store
        self.catalog = catalog
        self.settings = settings
        self.clock = clock or SystemClock()

        self.scorer = ScoringCalculator()
        self.difficulty = DifficultyAdviser.from_settings(settings)
        self.resolver = UnlockResolver.from_settings(catalog.graph, settings)
        self.streaks = StreakTracker.from_settings(settings)
        self.achievements = AchievementEvaluator(catalog.achievements)
        self.planner = LearningPathPlanner.from_settings(catalog.graph, settings)

        # Entries drop out once no caller holds the lock
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, child_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(child_id, threading.Lock())

    def _require_child(self, child_id: str) -> Child:
        child = self.store.get_child(child_id)
        if child is None:
            logger.warning(f"Unknown child: {child_id}")
            raise NotFoundError("child", child_id)
        return child

    def _require_activity(self, activity_id: str) -> Activity:
        try:
            return self.catalog.require_activity(activity_id)
        except NotFoundError:
            logger.warning(f"Unknown activity: {activity_id}")
            raise

    def _require_subject(self, subject_id: str) -> None:
        try:
            self.catalog.require_subject(subject_id)
        except NotFoundError:
            logger.warning(f"Unknown subject: {subject_id}")
            raise

    # ========================================
    # Write side
    # ========================================

    def process_completion(
        self,
        child_id: str,
        activity_id: str,
        outcome: CompletionOutcome | dict,
    ) -> ProgressionResult:
        """
        Record one completed activity and apply every progression rule.

        Raises:
            InvalidInputError: malformed outcome (nothing is written)
            NotFoundError: unknown child or activity
            StorageFailure: the store failed; the transaction was rolled back
        """
        outcome = CompletionOutcome.parse(outcome)
        score = self.scorer.score(outcome)
        validate_stars(score.stars)

        with self._lock_for(child_id):
            with self.store.transaction():
                child = self._require_child(child_id)
                activity = self._require_activity(activity_id)
                now = ensure_aware(self.clock.now())
                subject_id = activity.subject_id

                attempt = self.store.append_attempt(
                    AttemptRecord(
                        child_id=child_id,
                        activity_id=activity_id,
                        subject_id=subject_id,
                        completed_at=now,
                        stars=score.stars,
                        error_count=score.error_count,
                        total_questions=outcome.total_questions,
                        correct_answers=outcome.correct_answers,
                        time_spent_seconds=outcome.time_spent_seconds,
                        tier=activity.tier,
                        session_id=outcome.session_id,
                    )
                )
                attempts = self.store.get_attempts(child_id)

                # Difficulty
                recommendation = self.difficulty.recommend(
                    subject_id,
                    child.tier_for(subject_id),
                    [a for a in attempts if a.subject_id == subject_id],
                    now,
                )
                if recommendation.changed and self.settings.apply_difficulty_changes:
                    self.store.set_child_tier(child_id, subject_id, recommendation.recommended_tier)
                    child.difficulty[subject_id] = recommendation.recommended_tier
                    logger.info(
                        f"Child {child_id} moved to {recommendation.recommended_tier.value} "
                        f"in {subject_id}"
                    )

                # Unlocks, for the subject and every subject depending on this activity
                resolution = self.resolver.resolve(
                    child,
                    attempts,
                    self.store.get_unlocks(child_id),
                    now,
                    sorted(self.catalog.graph.affected_subjects(activity_id)),
                )
                self.store.add_unlocks(child_id, resolution.newly_unlocked)

                # Streak
                streak_update = self.streaks.record(
                    self.store.get_streak(child_id), self.streaks.day_of(now)
                )
                if streak_update.counted:
                    self.store.save_streak(child_id, streak_update.state)
                if streak_update.recovery is not None:
                    suggestion = self.resolver.recovery_activity(subject_id, resolution.unlocked)
                    streak_update.recovery.suggested_activity_id = suggestion.id if suggestion else None

                # Achievements see the appended attempt, new unlocks and updated streak
                context = AchievementContext(
                    child=child,
                    attempts=attempts,
                    streak=streak_update.state,
                    graph=self.catalog.graph,
                )
                awarded = self.achievements.evaluate(
                    context, self.store.get_earned_achievements(child_id), now
                )
                self.store.add_earned_achievements(a.earned for a in awarded)

                crowns = self.resolver.crown_challenges(
                    subject_id, resolution.unlocked, (a.activity_id for a in attempts)
                )

        result = ProgressionResult(
            attempt=attempt,
            score=score,
            new_unlocks=resolution.newly_unlocked,
            new_achievements=awarded,
            streak_update=streak_update,
            difficulty_recommendation=recommendation,
            crown_challenges=crowns,
            celebration=self._celebration(score, resolution.newly_unlocked, streak_update, awarded),
        )
        logger.info(
            f"Child {child_id} completed {activity_id}: {score.stars} stars, "
            f"{len(result.new_unlocks)} unlocks, {len(awarded)} achievements, "
            f"streak {streak_update.state.current}"
        )
        return result

    @staticmethod
    def _celebration(
        score: ScoreResult,
        new_unlocks: list[UnlockedActivity],
        streak_update: StreakUpdate,
        awarded: list[AwardedAchievement],
    ) -> CelebrationMessage:
        return CelebrationMessage(
            message_key=f"celebration.stars.{score.stars}",
            audio_key=f"audio.celebration.stars.{score.stars}",
            stars=score.stars,
            new_unlock_count=len(new_unlocks),
            streak_key=streak_update.message_key,
            achievement_keys=[a.celebration.message_key for a in awarded],
        )

    def rebuild_derived_state(self, child_id: str) -> RebuildSummary:
        """
        Recompute unlocks, streak and earned achievements from the attempt log.

        Unlocks and achievements are only ever added; the streak is replaced
        by its replayed value.
        """
        with self._lock_for(child_id):
            with self.store.transaction():
                child = self._require_child(child_id)
                now = ensure_aware(self.clock.now())
                attempts = self.store.get_attempts(child_id)

                streak = self.streaks.compute_from_attempts(attempts)
                persisted_streak = self.store.get_streak(child_id)
                streak.longest = max(streak.longest, persisted_streak.longest)
                self.store.save_streak(child_id, streak)

                resolution = self.resolver.resolve(child, attempts, self.store.get_unlocks(child_id), now)
                self.store.add_unlocks(child_id, resolution.newly_unlocked)

                context = AchievementContext(child, attempts, streak, self.catalog.graph)
                awarded = self.achievements.evaluate(
                    context, self.store.get_earned_achievements(child_id), now
                )
                self.store.add_earned_achievements(a.earned for a in awarded)

        logger.info(
            f"Rebuilt derived state for child {child_id}: "
            f"+{len(resolution.newly_unlocked)} unlocks, +{len(awarded)} achievements"
        )
        return RebuildSummary(
            child_id=child_id,
            unlocks_added=len(resolution.newly_unlocked),
            achievements_added=len(awarded),
            streak=streak,
        )

    # ========================================
    # Read side
    # ========================================

    def _served_unlocks(
        self, child: Child, subject_ids: list[str] | None = None
    ) -> tuple[dict[str, UnlockedActivity], list[AttemptRecord]]:
        """
        Unlocked set as handed to the presentation layer, plus the attempt log.

        Derived unlocks are persisted the first time they are served, which
        fixes their timestamp and keeps them unlocked after profile changes.
        """
        with self._lock_for(child.id):
            with self.store.transaction():
                attempts = self.store.get_attempts(child.id)
                resolution = self.resolver.resolve(
                    child,
                    attempts,
                    self.store.get_unlocks(child.id),
                    ensure_aware(self.clock.now()),
                    subject_ids,
                )
                self.store.add_unlocks(child.id, resolution.newly_unlocked)
        return resolution.unlocked, attempts

    def get_unlocked_activities(
        self, child_id: str, subject_id: str | None = None
    ) -> list[UnlockedActivityInfo]:
        child = self._require_child(child_id)
        if subject_id is not None:
            self._require_subject(subject_id)
        scope = [subject_id] if subject_id is not None else None
        unlocked, attempts = self._served_unlocks(child, scope)

        completed = {a.activity_id for a in attempts}
        now = ensure_aware(self.clock.now())
        result = []
        for activity_id, entry in unlocked.items():
            activity = self.catalog.graph.activity(activity_id)
            if activity is None or not activity.published:
                continue
            if subject_id is not None and activity.subject_id != subject_id:
                continue
            is_completed = activity_id in completed
            result.append(
                UnlockedActivityInfo(
                    activity=activity,
                    reason=entry.reason,
                    unlocked_at=entry.unlocked_at,
                    is_completed=is_completed,
                    is_newly_unlocked=not is_completed and now - entry.unlocked_at <= NEW_UNLOCK_WINDOW,
                )
            )
        result.sort(key=lambda info: (info.activity.subject_id, info.activity.sequence, info.activity.id))
        return result

    def get_next_recommended_activity(self, child_id: str, subject_id: str) -> Activity | None:
        """Lowest-sequence unlocked, unattempted activity of the subject (crowns excluded)."""
        child = self._require_child(child_id)
        self._require_subject(subject_id)
        unlocked, attempts = self._served_unlocks(child, [subject_id])
        return self.resolver.next_activity(subject_id, unlocked, (a.activity_id for a in attempts))

    def get_learning_path(
        self, child_id: str, subject_id: str | None = None, length: int = 10
    ) -> LearningPath:
        """
        Ordered plan of up to `length` unlocked, unattempted activities.

        The target tier comes from the child's recent mean stars, scoped to
        the subject when one is given.
        """
        if length < 1:
            raise InvalidInputError(f"length must be >= 1, got {length}")
        child = self._require_child(child_id)
        if subject_id is not None:
            self._require_subject(subject_id)
        scope = [subject_id] if subject_id is not None else None
        unlocked, attempts = self._served_unlocks(child, scope)
        if subject_id is not None:
            attempts = [a for a in attempts if a.subject_id == subject_id]

        path = self.planner.plan(child_id, attempts, unlocked, subject_id, length)
        logger.debug(
            f"Learning path for child {child_id}: {len(path.steps)} steps at "
            f"{path.target_tier.value} (recent mean {path.recent_mean})"
        )
        return path

    def get_next_milestone(self, child_id: str, subject_id: str) -> MilestoneActivity | None:
        child = self._require_child(child_id)
        self._require_subject(subject_id)
        unlocked, attempts = self._served_unlocks(child, [subject_id])
        return self.planner.next_milestone(
            subject_id, child.age, unlocked, (a.activity_id for a in attempts)
        )

    def get_streak_status(self, child_id: str) -> StreakStatus:
        child = self._require_child(child_id)
        state = self.store.get_streak(child_id)
        status = self.streaks.status(state, self.streaks.day_of(self.clock.now()))
        if status.recovery is not None:
            unlocked, _ = self._served_unlocks(child)
            for subject in self.catalog.graph.subjects:
                suggestion = self.resolver.recovery_activity(subject.id, unlocked)
                if suggestion is not None:
                    status.recovery.suggested_activity_id = suggestion.id
                    break
        return status

    def get_achievement_progress(
        self, child_id: str, category: AchievementCategory | None = None
    ) -> list[AchievementProgress]:
        child = self._require_child(child_id)
        context = AchievementContext(
            child=child,
            attempts=self.store.get_attempts(child_id),
            streak=self.store.get_streak(child_id),
            graph=self.catalog.graph,
        )
        return self.achievements.progress(context, self.store.get_earned_achievements(child_id), category)

    def get_activity_unlock_status(self, child_id: str, activity_id: str) -> ActivityUnlockStatus:
        child = self._require_child(child_id)
        activity = self._require_activity(activity_id)
        unlocked, attempts = self._served_unlocks(child, [activity.subject_id])
        persisted = unlocked.get(activity_id)
        try:
            status = self.resolver.status_for(child, attempts, activity_id)
        except ContentGraphError as e:
            logger.error(f"Cannot evaluate {activity_id} for child {child_id}: {e}")
            status = ActivityUnlockStatus(
                activity_id=activity_id,
                is_unlocked=False,
                reason=UnlockReason.CONTENT_ERROR,
                requirements=[f"Content for {activity.subject_id} is unavailable"],
            )
        if persisted is not None and not status.is_unlocked:
            status.is_unlocked = True
            status.reason = persisted.reason
        return status

    def get_subject_progress(self, child_id: str, subject_id: str) -> SubjectProgress:
        child = self._require_child(child_id)
        self._require_subject(subject_id)
        targets = [
            a for a in self.catalog.graph.activities_for(subject_id)
            if a.is_age_appropriate(child.age)
        ]
        best: dict[str, int] = {}
        for attempt in self.store.get_attempts(child_id, subject_id):
            best[attempt.activity_id] = max(best.get(attempt.activity_id, 0), attempt.stars)
        completed = [best[a.id] for a in targets if best.get(a.id, 0) >= 1]
        total = len(targets)
        return SubjectProgress(
            subject_id=subject_id,
            total_activities=total,
            completed_activities=len(completed),
            completion_percentage=round(len(completed) / total * 100, 1) if total else 0.0,
            average_stars=round(mean(completed), 2) if completed else 0.0,
            current_tier=child.tier_for(subject_id),
        )

    def get_crown_challenge_eligibility(self, child_id: str, subject_id: str) -> CrownChallengeEligibility:
        self._require_child(child_id)
        self._require_subject(subject_id)
        return self.resolver.crown_rule.eligibility(
            subject_id, self.store.get_attempts(child_id, subject_id)
        )
