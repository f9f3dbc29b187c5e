"""
Difficulty Adviser.

Recommends a per-subject tier from recent star ratings:
- Escalate one tier when the confirming attempts average >= 2.5 (cap Hard)
- De-escalate one tier when they average <= 1.5 (floor Easy)
- Hold otherwise

Confirming attempts are the last N (default 2) attempts of the subject, all
at the child's current tier. A single outlier never changes the tier, and
missing evidence always holds.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from statistics import mean
from typing import Sequence

from loguru import logger

from playpath.core.clock import ensure_aware
from playpath.core.models import AttemptRecord, Tier


@dataclass
class DifficultyRecommendation:
    """Advisory tier decision for one subject."""

    subject_id: str
    current_tier: Tier
    recommended_tier: Tier
    confidence: float  # 0-1, proportional to window fullness
    mean_stars: float | None
    changed: bool
    reason: str


class DifficultyAdviser:
    """Rule-based tier adviser over a rolling attempt window."""

    def __init__(
        self,
        window_size: int = 10,
        window_days: int = 30,
        escalate_threshold: float = 2.5,
        deescalate_threshold: float = 1.5,
        confirmation_attempts: int = 2,
    ):
        self.window_size = window_size
        self.window_days = window_days
        self.escalate_threshold = escalate_threshold
        self.deescalate_threshold = deescalate_threshold
        self.confirmation_attempts = max(2, confirmation_attempts)

    @classmethod
    def from_settings(cls, settings) -> DifficultyAdviser:
        return cls(**settings.get_difficulty_config())

    def window(self, attempts: Sequence[AttemptRecord], now: datetime) -> list[AttemptRecord]:
        """Most recent attempts inside the day window, oldest first."""
        cutoff = ensure_aware(now) - timedelta(days=self.window_days)
        recent = [a for a in attempts if ensure_aware(a.completed_at) >= cutoff]
        recent.sort(key=lambda a: (ensure_aware(a.completed_at), a.id or 0))
        return recent[-self.window_size:]

    def recommend(
        self,
        subject_id: str,
        current_tier: Tier,
        attempts: Sequence[AttemptRecord],
        now: datetime,
    ) -> DifficultyRecommendation:
        """
        Recommend a tier for the next activity in a subject.

        Args:
            subject_id: Subject being evaluated
            current_tier: Child's current tier for the subject
            attempts: The child's attempts in this subject (any order)
            now: Reference time for the day window

        Returns:
            DifficultyRecommendation (changed=False when holding)
        """
        window = self.window(attempts, now)
        confidence = round(min(1.0, len(window) / self.window_size), 3)
        mean_stars = round(mean(a.stars for a in window), 3) if window else None

        def hold(reason: str) -> DifficultyRecommendation:
            return DifficultyRecommendation(
                subject_id=subject_id,
                current_tier=current_tier,
                recommended_tier=current_tier,
                confidence=confidence,
                mean_stars=mean_stars,
                changed=False,
                reason=reason,
            )

        confirming = self._confirming_attempts(window, current_tier)
        if confirming is None:
            return hold(
                f"Need {self.confirmation_attempts} consecutive {current_tier.display_name} "
                f"attempts before changing tier"
            )

        confirming_mean = mean(a.stars for a in confirming)
        recommended = current_tier
        if confirming_mean >= self.escalate_threshold:
            recommended = current_tier.step_up()
            if recommended is current_tier:
                return hold(f"Already at {current_tier.display_name}, keep going")
            reason = f"Averaging {confirming_mean:.1f} stars at {current_tier.display_name}"
        elif confirming_mean <= self.deescalate_threshold:
            recommended = current_tier.step_down()
            if recommended is current_tier:
                return hold(f"Staying at {current_tier.display_name} to build confidence")
            reason = f"Averaging {confirming_mean:.1f} stars at {current_tier.display_name}"
        else:
            return hold(f"Averaging {confirming_mean:.1f} stars, tier is a good fit")

        logger.debug(
            f"Difficulty change for subject {subject_id}: "
            f"{current_tier.value} -> {recommended.value} ({reason})"
        )
        return DifficultyRecommendation(
            subject_id=subject_id,
            current_tier=current_tier,
            recommended_tier=recommended,
            confidence=confidence,
            mean_stars=mean_stars,
            changed=True,
            reason=reason,
        )

    def _confirming_attempts(
        self, window: list[AttemptRecord], current_tier: Tier
    ) -> list[AttemptRecord] | None:
        """Last N attempts if they are consecutive and all at the current tier."""
        if len(window) < self.confirmation_attempts:
            return None
        tail = window[-self.confirmation_attempts:]
        if any(a.tier != current_tier for a in tail):
            return None
        return tail
