"""
Learning Path Planner.

Short ordered plans built from what a child can already open:
- target tier from recent mean stars (>= 2.8 Hard, >= 2.5 Medium, else Easy)
- candidates are unlocked, unattempted, non-crown activities
- candidates at the target tier come first, then the nearest tiers

Milestones are every fifth activity of a subject's sequence; the next one
is reported with how many of its prerequisites are still to do.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from statistics import mean
from typing import Iterable, Sequence

from playpath.core.clock import ensure_aware
from playpath.core.models import Activity, AttemptRecord, Tier
from playpath.progression.content_graph import ContentGraph

# Mean assumed before a child has any attempts
DEFAULT_RECENT_MEAN = 2.0


@dataclass
class PathStep:
    activity: Activity
    position: int
    reason: str


@dataclass
class LearningPath:
    """Ordered recommendation of the next activities to play."""

    child_id: str
    subject_id: str | None
    target_tier: Tier
    recent_mean: float
    steps: list[PathStep] = field(default_factory=list)

    @property
    def activity_ids(self) -> list[str]:
        return [step.activity.id for step in self.steps]


@dataclass
class MilestoneActivity:
    activity: Activity
    is_unlocked: bool
    required_prerequisites: int
    completed_prerequisites: int

    @property
    def remaining_activities(self) -> int:
        return self.required_prerequisites - self.completed_prerequisites


class LearningPathPlanner:
    """Rule-based path and milestone selection over the content graph."""

    def __init__(
        self,
        graph: ContentGraph,
        window_size: int = 10,
        medium_threshold: float = 2.5,
        hard_threshold: float = 2.8,
        milestone_interval: int = 5,
    ):
        self.graph = graph
        self.window_size = window_size
        self.medium_threshold = medium_threshold
        self.hard_threshold = hard_threshold
        self.milestone_interval = milestone_interval

    @classmethod
    def from_settings(cls, graph: ContentGraph, settings) -> LearningPathPlanner:
        return cls(graph, **settings.get_learning_path_config())

    def target_tier(self, attempts: Sequence[AttemptRecord]) -> tuple[Tier, float]:
        """Tier suggested by the mean stars of the most recent attempts."""
        recent = sorted(attempts, key=lambda a: (ensure_aware(a.completed_at), a.id or 0))
        window = [a.stars for a in recent[-self.window_size:]]
        recent_mean = mean(window) if window else DEFAULT_RECENT_MEAN
        if recent_mean >= self.hard_threshold:
            return Tier.HARD, recent_mean
        if recent_mean >= self.medium_threshold:
            return Tier.MEDIUM, recent_mean
        return Tier.EASY, recent_mean

    def plan(
        self,
        child_id: str,
        attempts: Sequence[AttemptRecord],
        unlocked_ids: Iterable[str],
        subject_id: str | None = None,
        length: int = 10,
    ) -> LearningPath:
        """
        Order up to `length` unlocked, unattempted activities.

        Args:
            child_id: Child the path is for
            attempts: The child's attempt log (scoped to the subject when given)
            unlocked_ids: Activities the child can open
            subject_id: Limit the path to one subject
            length: Maximum number of steps
        """
        tier, recent_mean = self.target_tier(attempts)
        attempted = {a.activity_id for a in attempts}
        subject_order = {s.id: i for i, s in enumerate(self.graph.subjects)}

        candidates = []
        for activity_id in set(unlocked_ids) - attempted:
            activity = self.graph.activity(activity_id)
            if activity is None or not activity.published or activity.is_crown_challenge:
                continue
            if subject_id is not None and activity.subject_id != subject_id:
                continue
            candidates.append(activity)

        candidates.sort(
            key=lambda a: (
                abs(a.tier.rank - tier.rank),
                subject_order.get(a.subject_id, len(subject_order)),
                a.sequence,
                a.id,
            )
        )

        steps = []
        for position, activity in enumerate(candidates[:length], start=1):
            if activity.tier == tier:
                reason = f"Matches {tier.display_name} from recent stars ({recent_mean:.1f})"
            else:
                reason = f"Closest available to {tier.display_name}"
            steps.append(PathStep(activity=activity, position=position, reason=reason))

        return LearningPath(
            child_id=child_id,
            subject_id=subject_id,
            target_tier=tier,
            recent_mean=round(recent_mean, 2),
            steps=steps,
        )

    def next_milestone(
        self,
        subject_id: str,
        child_age: int,
        unlocked_ids: Iterable[str],
        completed_ids: Iterable[str],
    ) -> MilestoneActivity | None:
        """First uncompleted, age-appropriate milestone of a subject, locked or not."""
        unlocked = set(unlocked_ids)
        completed = set(completed_ids)
        for activity in self.graph.activities_for(subject_id):
            if activity.is_crown_challenge or activity.sequence % self.milestone_interval:
                continue
            if activity.id in completed or not activity.is_age_appropriate(child_age):
                continue
            required = self.graph.prerequisites_of(activity.id)
            return MilestoneActivity(
                activity=activity,
                is_unlocked=activity.id in unlocked,
                required_prerequisites=len(required),
                completed_prerequisites=len(required & completed),
            )
        return None
