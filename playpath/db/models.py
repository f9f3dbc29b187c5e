"""
SQLAlchemy models for progression state.

Tables:
- Static content: subjects, activities, achievements
- Profiles: children, child_difficulty
- Append-only log: attempts
- Derived state: unlocks, streaks, earned_achievements

Derived tables are caches over the attempt log and can be rebuilt from it.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ========================================
# Static content
# ========================================


class SubjectRow(Base):
    __tablename__ = "subjects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


class ActivityRow(Base):
    """
    One activity of the curriculum.

    Prerequisites are stored as a JSON list of activity ids; the graph is
    validated in memory at load time, not by foreign keys.
    """

    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, default="")
    tier: Mapped[str] = mapped_column(String(16), default="easy")
    min_age: Mapped[int] = mapped_column(Integer, default=3)
    max_age: Mapped[int] = mapped_column(Integer, default=8)
    prerequisites: Mapped[list] = mapped_column(JSON, default=list)
    is_crown_challenge: Mapped[bool] = mapped_column(Boolean, default=False)
    published: Mapped[bool] = mapped_column(Boolean, default=True)


class AchievementRow(Base):
    __tablename__ = "achievements"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    criteria_type: Mapped[str] = mapped_column(String(32), nullable=False)
    criteria_params: Mapped[dict] = mapped_column(JSON, default=dict)
    age_bands: Mapped[list] = mapped_column(JSON, default=list)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    celebration_key: Mapped[str] = mapped_column(Text, default="")
    subject_id: Mapped[str | None] = mapped_column(String(64))


# ========================================
# Profiles
# ========================================


class ChildRow(Base):
    __tablename__ = "children"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    subscription: Mapped[str] = mapped_column(String(16), default="trial")
    preferred_language: Mapped[str] = mapped_column(String(8), default="es")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())


class ChildDifficultyRow(Base):
    __tablename__ = "child_difficulty"

    child_id: Mapped[str] = mapped_column(
        ForeignKey("children.id", ondelete="CASCADE"), primary_key=True
    )
    subject_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tier: Mapped[str] = mapped_column(String(16), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())


# ========================================
# Attempt log
# ========================================


class AttemptRow(Base):
    """Append-only. Rows are never updated once written."""

    __tablename__ = "attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    child_id: Mapped[str] = mapped_column(
        ForeignKey("children.id", ondelete="CASCADE"), index=True, nullable=False
    )
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    stars: Mapped[int] = mapped_column(Integer, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    correct_answers: Mapped[int] = mapped_column(Integer, nullable=False)
    time_spent_seconds: Mapped[int] = mapped_column(Integer, default=0)
    tier: Mapped[str] = mapped_column(String(16), default="easy")
    session_id: Mapped[str | None] = mapped_column(String(64))


# ========================================
# Derived state
# ========================================


class UnlockRow(Base):
    __tablename__ = "unlocks"

    child_id: Mapped[str] = mapped_column(
        ForeignKey("children.id", ondelete="CASCADE"), primary_key=True
    )
    activity_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class StreakRow(Base):
    __tablename__ = "streaks"

    child_id: Mapped[str] = mapped_column(
        ForeignKey("children.id", ondelete="CASCADE"), primary_key=True
    )
    current: Mapped[int] = mapped_column(Integer, default=0)
    longest: Mapped[int] = mapped_column(Integer, default=0)
    started_on: Mapped[date | None] = mapped_column(Date)
    last_activity_on: Mapped[date | None] = mapped_column(Date)


class EarnedAchievementRow(Base):
    __tablename__ = "earned_achievements"
    __table_args__ = (
        UniqueConstraint("child_id", "achievement_id", name="uq_earned_child_achievement"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    child_id: Mapped[str] = mapped_column(
        ForeignKey("children.id", ondelete="CASCADE"), index=True, nullable=False
    )
    achievement_id: Mapped[str] = mapped_column(String(64), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
