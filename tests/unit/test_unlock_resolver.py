"""
Unit tests for UnlockResolver and CrownRule.

Covers the unlock rule in order (age, subscription, prerequisites,
mastery), free-tier gating, persisted-unlock merging and broken content.
"""

from datetime import UTC, datetime

from playpath.core.models import (
    Activity,
    Child,
    SubscriptionTier,
    Tier,
    UnlockedActivity,
    UnlockReason,
)
from playpath.progression.content_graph import ContentGraph
from playpath.progression.unlock_resolver import CrownRule, UnlockResolver

NOW = datetime(2025, 3, 3, 12, 0, tzinfo=UTC)


def mastery_history(make_attempt):
    """Five perfect attempts ending in three perfect Medium-tier ones in a row."""
    return [
        make_attempt("m1", 3, tier=Tier.EASY, minute=1),
        make_attempt("m2", 3, tier=Tier.EASY, minute=2),
        make_attempt("m3", 3, tier=Tier.MEDIUM, minute=3),
        make_attempt("m4", 3, tier=Tier.MEDIUM, minute=4),
        make_attempt("m3", 3, tier=Tier.MEDIUM, minute=5),
    ]


class TestUnlockRule:
    def setup_method(self):
        self.premium = Child("ana", "Ana", 6, SubscriptionTier.PREMIUM)

    def test_no_history_unlocks_entry_points(self, graph):
        resolver = UnlockResolver(graph)
        statuses = resolver.evaluate_subject(self.premium, [], "math")

        assert statuses["m1"].is_unlocked
        assert statuses["m1"].reason == UnlockReason.NO_PREREQUISITES
        assert statuses["m2"].reason == UnlockReason.PREREQUISITES_REQUIRED

    def test_completed_prerequisite_unlocks_dependent(self, graph, make_attempt):
        resolver = UnlockResolver(graph)
        statuses = resolver.evaluate_subject(self.premium, [make_attempt("m1")], "math")

        assert statuses["m2"].is_unlocked
        assert statuses["m2"].reason == UnlockReason.PREREQUISITES_MET
        assert not statuses["m3"].is_unlocked

    def test_one_star_counts_as_completed(self, graph, make_attempt):
        resolver = UnlockResolver(graph)
        statuses = resolver.evaluate_subject(self.premium, [make_attempt("m1", stars=1)], "math")
        assert statuses["m2"].is_unlocked

    def test_cross_subject_prerequisite(self, graph, make_attempt):
        resolver = UnlockResolver(graph)
        attempts = [make_attempt("r1"), make_attempt("r2")]

        before = resolver.evaluate_subject(self.premium, attempts, "reading")["r3"]
        assert not before.is_unlocked
        assert before.progress_percentage == 50

        attempts += [make_attempt("m1"), make_attempt("m2")]
        after = resolver.evaluate_subject(self.premium, attempts, "reading")["r3"]
        assert after.is_unlocked
        assert after.progress_percentage == 100

    def test_age_restricted_despite_prerequisites(self, graph, make_attempt):
        young = Child("kim", "Kim", 4, SubscriptionTier.PREMIUM)
        attempts = [make_attempt(f"m{i}", child_id="kim") for i in range(1, 5)]
        status = UnlockResolver(graph).status_for(young, attempts, "m5")

        assert not status.is_unlocked
        assert status.reason == UnlockReason.AGE_RESTRICTED
        assert "Age must be between 6 and 8" in status.requirements

    def test_unpublished_never_unlocks(self, subjects, activities):
        activities.append(Activity("m7", "math", 8, published=False))
        graph = ContentGraph(subjects, activities)
        status = UnlockResolver(graph).status_for(self.premium, [], "m7")
        assert status.reason == UnlockReason.UNPUBLISHED


class TestFreeTier:
    """A trial account only sees the first N activities of each subject."""

    def test_activity_beyond_free_prefix_is_premium_gated(self, graph, trial_child, make_attempt):
        resolver = UnlockResolver(graph, free_activities_per_subject=3)
        attempts = [make_attempt(a, child_id="leo") for a in ("m1", "m2", "m3")]
        status = resolver.status_for(trial_child, attempts, "m4")

        assert not status.is_unlocked
        assert status.reason == UnlockReason.PREMIUM_GATED
        assert status.reason.value == "premium-gated"
        assert "Premium subscription required" in status.requirements
        assert status.progress_percentage == 100

    def test_free_prefix_still_unlocks(self, graph, trial_child, make_attempt):
        resolver = UnlockResolver(graph, free_activities_per_subject=3)
        attempts = [make_attempt(a, child_id="leo") for a in ("m1", "m2")]
        assert resolver.status_for(trial_child, attempts, "m3").is_unlocked

    def test_premium_unlocks_beyond_prefix(self, graph, premium_child, make_attempt):
        resolver = UnlockResolver(graph, free_activities_per_subject=3)
        attempts = [make_attempt(a) for a in ("m1", "m2", "m3")]
        assert resolver.status_for(premium_child, attempts, "m4").is_unlocked


class TestCrownChallenges:
    def test_prerequisites_alone_do_not_unlock_crown(self, graph, premium_child, make_attempt):
        attempts = [make_attempt("m1"), make_attempt("m2", minute=1)]
        status = UnlockResolver(graph).status_for(premium_child, attempts, "m-crown")

        assert not status.is_unlocked
        assert status.reason == UnlockReason.MASTERY_REQUIRED

    def test_mastery_unlocks_crown(self, graph, premium_child, make_attempt):
        status = UnlockResolver(graph).status_for(premium_child, mastery_history(make_attempt), "m-crown")

        assert status.is_unlocked
        assert status.reason == UnlockReason.MASTERY

    def test_crown_stays_unlocked_after_later_dip(self, graph, premium_child, make_attempt):
        attempts = mastery_history(make_attempt) + [
            make_attempt("m4", 1, tier=Tier.MEDIUM, minute=10 + i) for i in range(6)
        ]
        resolver = UnlockResolver(graph)

        assert not resolver.crown_rule.eligibility("math", attempts).is_eligible
        assert resolver.status_for(premium_child, attempts, "m-crown").is_unlocked

    def test_eligibility_reports_what_is_missing(self, make_attempt):
        rule = CrownRule()
        result = rule.eligibility("math", [make_attempt("m1"), make_attempt("m2", minute=1)])

        assert not result.is_eligible
        assert result.attempts_considered == 2
        assert "3 more activities" in result.reason
        assert "3 more perfect Medium activities in a row" in result.reason

    def test_eligible_with_mastery(self, make_attempt):
        result = CrownRule().eligibility("math", mastery_history(make_attempt))

        assert result.is_eligible
        assert result.mastery_score == 100.0
        assert result.best_perfect_run == 3

    def test_easy_perfects_do_not_count_toward_run(self, make_attempt):
        attempts = [make_attempt("m1", 3, tier=Tier.EASY, minute=i) for i in range(6)]
        assert CrownRule().first_satisfied_at(attempts) is None


class TestResolve:
    def test_persisted_unlocks_are_kept(self, graph, premium_child):
        persisted = {"m6": UnlockedActivity("m6", UnlockReason.PREREQUISITES_MET, NOW)}
        resolution = UnlockResolver(graph).resolve(premium_child, [], persisted, NOW)

        assert "m6" in resolution.unlocked
        assert {u.activity_id for u in resolution.newly_unlocked} == {"m1", "r1"}

    def test_already_persisted_not_reported_as_new(self, graph, premium_child):
        persisted = {"m1": UnlockedActivity("m1", UnlockReason.NO_PREREQUISITES, NOW)}
        resolution = UnlockResolver(graph).resolve(premium_child, [], persisted, NOW, ["math"])
        assert resolution.newly_unlocked == []

    def test_broken_subject_falls_back_to_persisted(self, subjects, activities, premium_child):
        activities = [
            Activity("r1", "reading", 1, prerequisites=["r3"]) if a.id == "r1" else a
            for a in activities
        ]
        graph = ContentGraph(subjects, activities)
        persisted = {"r1": UnlockedActivity("r1", UnlockReason.NO_PREREQUISITES, NOW)}
        resolution = UnlockResolver(graph).resolve(premium_child, [], persisted, NOW)

        assert resolution.failed_subjects == {"reading"}
        assert set(resolution.unlocked) == {"r1", "m1"}


class TestSelection:
    def test_next_activity_is_lowest_unattempted(self, graph):
        resolver = UnlockResolver(graph)
        assert resolver.next_activity("math", {"m1", "m2", "m3"}, {"m1"}).id == "m2"

    def test_next_activity_skips_crown(self, graph):
        resolver = UnlockResolver(graph)
        assert resolver.next_activity("math", {"m1", "m2", "m-crown"}, {"m1", "m2"}) is None

    def test_crown_challenges_listed_separately(self, graph):
        resolver = UnlockResolver(graph)
        crowns = resolver.crown_challenges("math", {"m1", "m-crown"}, {"m1"})
        assert [a.id for a in crowns] == ["m-crown"]

    def test_recovery_activity_is_easy(self, graph):
        resolver = UnlockResolver(graph)
        assert resolver.recovery_activity("math", {"m3", "m2"}).id == "m2"
