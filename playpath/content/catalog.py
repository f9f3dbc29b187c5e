"""Static content bundle: subjects, activities, achievement definitions."""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from playpath.core.errors import NotFoundError
from playpath.core.models import AchievementDefinition, Activity, Subject
from playpath.db.store import ProgressStore
from playpath.progression.content_graph import ContentGraph


@dataclass
class ContentCatalog:
    subjects: list[Subject]
    activities: list[Activity]
    achievements: list[AchievementDefinition] = field(default_factory=list)
    graph: ContentGraph = field(init=False)

    def __post_init__(self) -> None:
        self.graph = ContentGraph(self.subjects, self.activities)

    @classmethod
    def from_store(cls, store: ProgressStore) -> ContentCatalog:
        catalog = cls(
            subjects=store.load_subjects(),
            activities=store.load_activities(),
            achievements=store.load_achievements(),
        )
        logger.debug(
            f"Loaded catalog: {len(catalog.subjects)} subjects, "
            f"{len(catalog.activities)} activities, {len(catalog.achievements)} achievements"
        )
        return catalog

    def require_activity(self, activity_id: str) -> Activity:
        activity = self.graph.activity(activity_id)
        if activity is None:
            raise NotFoundError("activity", activity_id)
        return activity

    def require_subject(self, subject_id: str) -> Subject:
        subject = self.graph.subject(subject_id)
        if subject is None:
            raise NotFoundError("subject", subject_id)
        return subject
