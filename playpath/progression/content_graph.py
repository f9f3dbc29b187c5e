"""
Prerequisite Content Graph.

Arena of activities keyed by id, with prerequisite edges stored as id lists.
Validated once at load time:
- Dangling prerequisite ids (unknown activity)
- Cycles (Kahn's algorithm leaves cyclic nodes unsorted)

Broken subjects are recorded rather than raised so that one bad subject
does not take the rest of the curriculum down; `strict=True` raises
ContentGraphError instead.
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Iterable

from loguru import logger

from playpath.core.errors import ContentGraphError
from playpath.core.models import Activity, Subject


class ContentGraph:
    """Validated prerequisite DAG over all activities."""

    def __init__(
        self,
        subjects: Iterable[Subject],
        activities: Iterable[Activity],
        strict: bool = False,
    ):
        self._subjects: dict[str, Subject] = {s.id: s for s in subjects}
        self._activities: dict[str, Activity] = {a.id: a for a in activities}
        self._dependents: dict[str, list[str]] = defaultdict(list)
        self._order: list[str] = []
        self.broken_subjects: dict[str, str] = {}

        self._validate()
        if strict and self.broken_subjects:
            raise ContentGraphError(self.describe_errors(), set(self.broken_subjects))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        in_degree: dict[str, int] = {aid: 0 for aid in self._activities}

        for activity in self._activities.values():
            if activity.subject_id not in self._subjects:
                self._mark_broken(
                    activity.subject_id,
                    f"activity {activity.id} references unknown subject {activity.subject_id}",
                )
            for prereq_id in activity.prerequisites:
                if prereq_id not in self._activities:
                    self._mark_broken(
                        activity.subject_id,
                        f"activity {activity.id} has dangling prerequisite {prereq_id}",
                    )
                    continue
                self._dependents[prereq_id].append(activity.id)
                in_degree[activity.id] += 1

        # Kahn's algorithm, ties broken by (subject, sequence) for stable output
        ready = deque(sorted(
            (aid for aid, degree in in_degree.items() if degree == 0),
            key=self._sort_key,
        ))
        while ready:
            current = ready.popleft()
            self._order.append(current)
            for dependent in sorted(self._dependents.get(current, []), key=self._sort_key):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)

        # Unsorted nodes sit on a cycle or downstream of one
        unsorted = sorted(
            (aid for aid, degree in in_degree.items() if degree > 0), key=self._sort_key
        )
        for aid in unsorted:
            self._mark_broken(
                self._activities[aid].subject_id,
                f"activity {aid} is on or behind a prerequisite cycle",
            )

        for subject_id, message in self.broken_subjects.items():
            logger.error(f"Content graph error in subject {subject_id}: {message}")

    def _mark_broken(self, subject_id: str, message: str) -> None:
        if subject_id in self.broken_subjects:
            self.broken_subjects[subject_id] += f"; {message}"
        else:
            self.broken_subjects[subject_id] = message

    def _sort_key(self, activity_id: str) -> tuple[str, int, str]:
        activity = self._activities[activity_id]
        return (activity.subject_id, activity.sequence, activity.id)

    def describe_errors(self) -> str:
        return "; ".join(
            f"{subject_id}: {message}" for subject_id, message in sorted(self.broken_subjects.items())
        )

    def ensure_valid(self, subject_id: str | None = None) -> None:
        """Raise ContentGraphError if the subject (or any subject) is broken."""
        if subject_id is None:
            if self.broken_subjects:
                raise ContentGraphError(self.describe_errors(), set(self.broken_subjects))
            return
        if subject_id in self.broken_subjects:
            raise ContentGraphError(
                f"{subject_id}: {self.broken_subjects[subject_id]}", {subject_id}
            )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def subjects(self) -> list[Subject]:
        return list(self._subjects.values())

    @property
    def activities(self) -> list[Activity]:
        return list(self._activities.values())

    def subject(self, subject_id: str) -> Subject | None:
        return self._subjects.get(subject_id)

    def activity(self, activity_id: str) -> Activity | None:
        return self._activities.get(activity_id)

    def is_broken(self, subject_id: str) -> bool:
        return subject_id in self.broken_subjects

    def activities_for(self, subject_id: str, published_only: bool = True) -> list[Activity]:
        """Activities of a subject in curriculum sequence."""
        items = [
            a for a in self._activities.values()
            if a.subject_id == subject_id and (a.published or not published_only)
        ]
        return sorted(items, key=lambda a: (a.sequence, a.id))

    def topological_order(self, subject_ids: Iterable[str] | None = None) -> list[Activity]:
        """Valid activities in prerequisite order, optionally scoped to subjects."""
        scope = set(subject_ids) if subject_ids is not None else None
        return [
            self._activities[aid]
            for aid in self._order
            if scope is None or self._activities[aid].subject_id in scope
        ]

    def dependents_of(self, activity_id: str) -> set[str]:
        """All activities that transitively require the given one."""
        seen: set[str] = set()
        stack = list(self._dependents.get(activity_id, []))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._dependents.get(current, []))
        return seen

    def prerequisites_of(self, activity_id: str) -> set[str]:
        """All activities the given one transitively requires."""
        seen: set[str] = set()
        activity = self._activities.get(activity_id)
        stack = list(activity.prerequisites) if activity else []
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            parent = self._activities.get(current)
            if parent is not None:
                stack.extend(parent.prerequisites)
        return seen

    def affected_subjects(self, activity_id: str) -> set[str]:
        """Subject of an activity plus subjects of everything depending on it."""
        activity = self._activities.get(activity_id)
        subjects = {activity.subject_id} if activity else set()
        subjects.update(self._activities[aid].subject_id for aid in self.dependents_of(activity_id))
        return subjects

    def free_prefix(self, subject_id: str, limit: int) -> set[str]:
        """Ids of the first `limit` published activities of a subject."""
        return {a.id for a in self.activities_for(subject_id)[:limit]}
