"""
Unit tests for the default curriculum and achievement table.
"""

from playpath.content.curriculum import default_achievements, default_curriculum
from playpath.progression.achievements import CRITERIA
from playpath.progression.content_graph import ContentGraph


class TestDefaultCurriculum:
    def test_graph_is_valid(self):
        subjects, activities = default_curriculum()
        graph = ContentGraph(subjects, activities, strict=True)

        assert {s.id for s in graph.subjects} == {"math", "reading", "concepts", "logic", "science"}

    def test_every_subject_ends_with_one_crown(self):
        subjects, activities = default_curriculum()
        graph = ContentGraph(subjects, activities)
        for subject in subjects:
            ordered = graph.activities_for(subject.id)
            assert ordered[-1].is_crown_challenge
            assert sum(a.is_crown_challenge for a in ordered) == 1

    def test_cross_subject_prerequisites(self):
        _, activities = default_curriculum()
        by_id = {a.id: a for a in activities}
        assert "math-02" in by_id["logic-04"].prerequisites


class TestDefaultAchievements:
    def test_ids_are_unique(self):
        ids = [d.id for d in default_achievements()]
        assert len(ids) == len(set(ids))

    def test_every_criteria_type_is_known(self):
        assert all(d.criteria_type in CRITERIA for d in default_achievements())

    def test_subject_master_for_each_subject(self):
        subjects, _ = default_curriculum()
        masters = {d.subject_id for d in default_achievements() if d.criteria_type == "subject_master"}
        assert masters == {s.id for s in subjects}
