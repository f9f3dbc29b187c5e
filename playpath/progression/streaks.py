"""
Streak Tracker.

Daily streak state machine:
- NoStreak -> Active(1) on the first qualifying day
- Active(n) -> Active(n+1) on the next calendar day
- Active(n) -> Broken on a gap of more than one day, reset to 1 with a
  recovery plan on the next qualifying day

Same-day attempts are deduplicated and the longest streak never shrinks.
Calendar days are taken in the configured time zone.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable

from loguru import logger

from playpath.core.clock import local_day
from playpath.core.models import StreakState, Tier

MILESTONES = (3, 5, 7, 14, 30, 60, 100)


@dataclass
class RecoveryPlan:
    """Lower-friction suggestion offered after a broken streak."""

    previous_streak: int
    suggested_tier: Tier = Tier.EASY
    suggested_activity_id: str | None = None
    message_key: str = "streak.recovery"


@dataclass
class StreakUpdate:
    """Outcome of recording one qualifying day."""

    state: StreakState
    counted: bool  # False for same-day or out-of-order attempts
    broken: bool = False
    milestone: int | None = None
    recovery: RecoveryPlan | None = None

    @property
    def message_key(self) -> str | None:
        if self.milestone:
            return f"streak.milestone.{self.milestone}"
        if self.broken:
            return "streak.restarted"
        if self.counted and self.state.current > 1:
            return "streak.extended"
        return None


@dataclass
class StreakStatus:
    """Read-side view of a child's streak."""

    current: int
    longest: int
    last_activity_on: date | None
    is_active_today: bool
    is_broken: bool
    next_milestone: int | None
    days_to_next_milestone: int | None
    recovery: RecoveryPlan | None = None


def next_milestone(current: int) -> int | None:
    for milestone in MILESTONES:
        if milestone > current:
            return milestone
    return None


class StreakTracker:
    """Pure streak computations over calendar days."""

    def __init__(self, zone: str | tzinfo = "UTC"):
        self.zone = zone

    @classmethod
    def from_settings(cls, settings) -> StreakTracker:
        return cls(settings.timezone)

    def day_of(self, moment: datetime) -> date:
        return local_day(moment, self.zone)

    def record(self, state: StreakState, day: date) -> StreakUpdate:
        """Apply one qualifying day to the state. Never mutates the input."""
        last = state.last_activity_on

        if last is not None and day <= last:
            return StreakUpdate(state=replace(state), counted=False)

        broken = False
        recovery = None
        if last is None:
            new = StreakState(current=1, longest=max(state.longest, 1), started_on=day, last_activity_on=day)
        elif day == last + timedelta(days=1):
            current = state.current + 1
            new = StreakState(
                current=current,
                longest=max(state.longest, current),
                started_on=state.started_on or day,
                last_activity_on=day,
            )
        else:
            broken = True
            recovery = RecoveryPlan(previous_streak=state.current)
            new = StreakState(current=1, longest=max(state.longest, 1), started_on=day, last_activity_on=day)
            logger.debug(f"Streak broken after {state.current} days (last active {last}, now {day})")

        milestone = new.current if new.current in MILESTONES else None
        return StreakUpdate(state=new, counted=True, broken=broken, milestone=milestone, recovery=recovery)

    def compute(self, days: Iterable[date]) -> StreakState:
        """Replay qualifying days from scratch."""
        state = StreakState()
        for day in sorted(set(days)):
            state = self.record(state, day).state
        return state

    def compute_from_attempts(self, attempts) -> StreakState:
        return self.compute(self.day_of(a.completed_at) for a in attempts if a.stars >= 1)

    def status(self, state: StreakState, today: date) -> StreakStatus:
        """
        Streak as seen on `today`.

        A streak whose last day is before yesterday is reported broken with
        current 0 and a recovery offer.
        """
        last = state.last_activity_on
        stale = last is not None and last < today - timedelta(days=1)
        current = 0 if stale else state.current
        upcoming = next_milestone(current)
        return StreakStatus(
            current=current,
            longest=state.longest,
            last_activity_on=last,
            is_active_today=last == today,
            is_broken=stale,
            next_milestone=upcoming,
            days_to_next_milestone=upcoming - current if upcoming is not None else None,
            recovery=RecoveryPlan(previous_streak=state.current) if stale else None,
        )
