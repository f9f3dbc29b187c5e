"""
SQLAlchemy implementation of ProgressStore.

The active transaction session lives in a thread-local, so concurrent
completions for different children each get their own session while
store calls made inside `transaction()` all join the same unit of work.
SQLAlchemy errors surface as StorageFailure after rollback.
"""

from __future__ import annotations

import threading
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from playpath.core.clock import ensure_aware
from playpath.core.errors import StorageFailure
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
from playpath.db.database import create_db_engine, create_session_factory, init_db, session_scope
from playpath.db.models import (
    AchievementRow,
    ActivityRow,
    AttemptRow,
    ChildDifficultyRow,
    ChildRow,
    EarnedAchievementRow,
    StreakRow,
    SubjectRow,
    UnlockRow,
)


def _to_db_time(moment: datetime) -> datetime:
    """SQLite stores naive datetimes; normalize to naive UTC."""
    return ensure_aware(moment).astimezone(UTC).replace(tzinfo=None)


class SqlProgressStore:
    """ProgressStore backed by a SQLAlchemy engine."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._factory = create_session_factory(engine)
        self._local = threading.local()
        # A StaticPool hands every session the same connection, so transactions
        # from different threads must not overlap
        self._serial = threading.Lock() if isinstance(engine.pool, StaticPool) else None

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False, create_tables: bool = True) -> SqlProgressStore:
        engine = create_db_engine(database_url, echo=echo)
        if create_tables:
            init_db(engine)
        return cls(engine)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Open a transaction for this thread, or join the one already open."""
        if getattr(self._local, "session", None) is not None:
            yield
            return

        if self._serial is not None:
            self._serial.acquire()
        try:
            with session_scope(self._factory) as session:
                self._local.session = session
                try:
                    yield
                finally:
                    self._local.session = None
        except SQLAlchemyError as e:
            logger.error(f"Storage transaction failed and was rolled back: {e}")
            raise StorageFailure(f"Storage operation failed: {e}") from e
        finally:
            if self._serial is not None:
                self._serial.release()

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = getattr(self._local, "session", None)
        if session is not None:
            yield session
            return
        with self.transaction():
            yield self._local.session

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_child(self, child_id: str) -> Child | None:
        with self._session() as session:
            row = session.get(ChildRow, child_id)
            if row is None:
                return None
            tiers = session.scalars(
                select(ChildDifficultyRow).where(ChildDifficultyRow.child_id == child_id)
            ).all()
            return self._child_from_row(row, tiers)

    def list_children(self) -> list[Child]:
        with self._session() as session:
            rows = session.scalars(select(ChildRow).order_by(ChildRow.id)).all()
            result = []
            for row in rows:
                tiers = session.scalars(
                    select(ChildDifficultyRow).where(ChildDifficultyRow.child_id == row.id)
                ).all()
                result.append(self._child_from_row(row, tiers))
            return result

    def save_child(self, child: Child) -> None:
        with self._session() as session:
            session.merge(
                ChildRow(
                    id=child.id,
                    name=child.name,
                    age=child.age,
                    subscription=child.subscription.value,
                    preferred_language=child.preferred_language,
                )
            )
            session.flush()
            for subject_id, tier in child.difficulty.items():
                session.merge(ChildDifficultyRow(child_id=child.id, subject_id=subject_id, tier=tier.value))

    def set_child_tier(self, child_id: str, subject_id: str, tier: Tier) -> None:
        with self._session() as session:
            session.merge(ChildDifficultyRow(child_id=child_id, subject_id=subject_id, tier=tier.value))

    @staticmethod
    def _child_from_row(row: ChildRow, tiers: Iterable[ChildDifficultyRow]) -> Child:
        return Child(
            id=row.id,
            name=row.name,
            age=row.age,
            subscription=SubscriptionTier(row.subscription),
            preferred_language=row.preferred_language,
            difficulty={t.subject_id: Tier(t.tier) for t in tiers},
        )

    # ------------------------------------------------------------------
    # Static content
    # ------------------------------------------------------------------

    def load_subjects(self) -> list[Subject]:
        with self._session() as session:
            subjects = session.scalars(select(SubjectRow).order_by(SubjectRow.sort_order, SubjectRow.id)).all()
            activities = session.scalars(
                select(ActivityRow).order_by(ActivityRow.subject_id, ActivityRow.sequence)
            ).all()
            by_subject: dict[str, list[str]] = {}
            for activity in activities:
                by_subject.setdefault(activity.subject_id, []).append(activity.id)
            return [Subject(id=s.id, name=s.name, activity_ids=by_subject.get(s.id, [])) for s in subjects]

    def load_activities(self) -> list[Activity]:
        with self._session() as session:
            rows = session.scalars(select(ActivityRow).order_by(ActivityRow.subject_id, ActivityRow.sequence)).all()
            return [
                Activity(
                    id=r.id,
                    subject_id=r.subject_id,
                    sequence=r.sequence,
                    title=r.title,
                    tier=Tier(r.tier),
                    min_age=r.min_age,
                    max_age=r.max_age,
                    prerequisites=list(r.prerequisites or []),
                    is_crown_challenge=r.is_crown_challenge,
                    published=r.published,
                )
                for r in rows
            ]

    def load_achievements(self) -> list[AchievementDefinition]:
        with self._session() as session:
            rows = session.scalars(select(AchievementRow)).all()
            return [
                AchievementDefinition(
                    id=r.id,
                    name=r.name,
                    category=AchievementCategory(r.category),
                    criteria_type=r.criteria_type,
                    criteria_params=dict(r.criteria_params or {}),
                    age_bands=tuple(AgeBand(b) for b in r.age_bands) if r.age_bands else tuple(AgeBand),
                    priority=r.priority,
                    celebration_key=r.celebration_key,
                    subject_id=r.subject_id,
                )
                for r in rows
            ]

    def save_content(
        self,
        subjects: Iterable[Subject],
        activities: Iterable[Activity],
        achievements: Iterable[AchievementDefinition],
    ) -> None:
        """Upsert static content by id."""
        with self._session() as session:
            for order, subject in enumerate(subjects):
                session.merge(SubjectRow(id=subject.id, name=subject.name, sort_order=order))
            for a in activities:
                session.merge(
                    ActivityRow(
                        id=a.id,
                        subject_id=a.subject_id,
                        sequence=a.sequence,
                        title=a.title,
                        tier=a.tier.value,
                        min_age=a.min_age,
                        max_age=a.max_age,
                        prerequisites=list(a.prerequisites),
                        is_crown_challenge=a.is_crown_challenge,
                        published=a.published,
                    )
                )
            for d in achievements:
                session.merge(
                    AchievementRow(
                        id=d.id,
                        name=d.name,
                        category=d.category.value,
                        criteria_type=d.criteria_type,
                        criteria_params=dict(d.criteria_params),
                        age_bands=[b.value for b in d.age_bands],
                        priority=d.priority,
                        celebration_key=d.celebration_key,
                        subject_id=d.subject_id,
                    )
                )

    # ------------------------------------------------------------------
    # Attempt log
    # ------------------------------------------------------------------

    def append_attempt(self, attempt: AttemptRecord) -> AttemptRecord:
        with self._session() as session:
            row = AttemptRow(
                child_id=attempt.child_id,
                activity_id=attempt.activity_id,
                subject_id=attempt.subject_id,
                completed_at=_to_db_time(attempt.completed_at),
                stars=attempt.stars,
                error_count=attempt.error_count,
                total_questions=attempt.total_questions,
                correct_answers=attempt.correct_answers,
                time_spent_seconds=attempt.time_spent_seconds,
                tier=attempt.tier.value,
                session_id=attempt.session_id,
            )
            session.add(row)
            session.flush()
            return self._attempt_from_row(row)

    def get_attempts(self, child_id: str, subject_id: str | None = None) -> list[AttemptRecord]:
        with self._session() as session:
            stmt = select(AttemptRow).where(AttemptRow.child_id == child_id)
            if subject_id is not None:
                stmt = stmt.where(AttemptRow.subject_id == subject_id)
            rows = session.scalars(stmt.order_by(AttemptRow.completed_at, AttemptRow.id)).all()
            return [self._attempt_from_row(r) for r in rows]

    @staticmethod
    def _attempt_from_row(row: AttemptRow) -> AttemptRecord:
        return AttemptRecord(
            id=row.id,
            child_id=row.child_id,
            activity_id=row.activity_id,
            subject_id=row.subject_id,
            completed_at=ensure_aware(row.completed_at),
            stars=row.stars,
            error_count=row.error_count,
            total_questions=row.total_questions,
            correct_answers=row.correct_answers,
            time_spent_seconds=row.time_spent_seconds,
            tier=Tier(row.tier),
            session_id=row.session_id,
        )

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def get_unlocks(self, child_id: str) -> dict[str, UnlockedActivity]:
        with self._session() as session:
            rows = session.scalars(select(UnlockRow).where(UnlockRow.child_id == child_id)).all()
            return {
                r.activity_id: UnlockedActivity(
                    activity_id=r.activity_id,
                    reason=UnlockReason(r.reason),
                    unlocked_at=ensure_aware(r.unlocked_at),
                )
                for r in rows
            }

    def add_unlocks(self, child_id: str, unlocks: Iterable[UnlockedActivity]) -> None:
        """Insert new unlocks. Existing entries are never overwritten."""
        with self._session() as session:
            for unlock in unlocks:
                if session.get(UnlockRow, (child_id, unlock.activity_id)) is not None:
                    continue
                session.add(
                    UnlockRow(
                        child_id=child_id,
                        activity_id=unlock.activity_id,
                        reason=unlock.reason.value,
                        unlocked_at=_to_db_time(unlock.unlocked_at),
                    )
                )
            session.flush()

    def get_streak(self, child_id: str) -> StreakState:
        with self._session() as session:
            row = session.get(StreakRow, child_id)
            if row is None:
                return StreakState()
            return StreakState(
                current=row.current,
                longest=row.longest,
                started_on=row.started_on,
                last_activity_on=row.last_activity_on,
            )

    def save_streak(self, child_id: str, state: StreakState) -> None:
        with self._session() as session:
            session.merge(
                StreakRow(
                    child_id=child_id,
                    current=state.current,
                    longest=state.longest,
                    started_on=state.started_on,
                    last_activity_on=state.last_activity_on,
                )
            )

    def get_earned_achievements(self, child_id: str) -> dict[str, EarnedAchievement]:
        with self._session() as session:
            rows = session.scalars(
                select(EarnedAchievementRow)
                .where(EarnedAchievementRow.child_id == child_id)
                .order_by(EarnedAchievementRow.id)
            ).all()
            return {
                r.achievement_id: EarnedAchievement(
                    child_id=r.child_id,
                    achievement_id=r.achievement_id,
                    earned_at=ensure_aware(r.earned_at),
                )
                for r in rows
            }

    def add_earned_achievements(self, earned: Iterable[EarnedAchievement]) -> None:
        """Insert earned achievements, skipping any the child already holds."""
        with self._session() as session:
            for item in earned:
                exists = session.scalar(
                    select(EarnedAchievementRow.id).where(
                        EarnedAchievementRow.child_id == item.child_id,
                        EarnedAchievementRow.achievement_id == item.achievement_id,
                    )
                )
                if exists is not None:
                    continue
                session.add(
                    EarnedAchievementRow(
                        child_id=item.child_id,
                        achievement_id=item.achievement_id,
                        earned_at=_to_db_time(item.earned_at),
                    )
                )
                session.flush()
