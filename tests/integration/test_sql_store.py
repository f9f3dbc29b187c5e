"""
Integration tests for SqlProgressStore against in-memory SQLite.
"""

import threading
from datetime import UTC, date, datetime

import pytest

from playpath.core.errors import StorageFailure
from playpath.core.models import (
    Child,
    EarnedAchievement,
    StreakState,
    SubscriptionTier,
    Tier,
    UnlockedActivity,
    UnlockReason,
)
from playpath.db.models import EarnedAchievementRow

NOW = datetime(2025, 3, 3, 9, 0, tzinfo=UTC)


@pytest.fixture
def child(store):
    child = Child("ana", "Ana", 5, SubscriptionTier.PREMIUM, difficulty={"math": Tier.MEDIUM})
    with store.transaction():
        store.save_child(child)
    return child


class TestProfiles:
    def test_child_round_trip(self, store, child):
        loaded = store.get_child("ana")

        assert loaded.name == "Ana"
        assert loaded.subscription == SubscriptionTier.PREMIUM
        assert loaded.tier_for("math") == Tier.MEDIUM
        assert loaded.tier_for("reading") == Tier.EASY

    def test_set_child_tier(self, store, child):
        store.set_child_tier("ana", "math", Tier.HARD)
        assert store.get_child("ana").difficulty == {"math": Tier.HARD}

    def test_missing_child(self, store):
        assert store.get_child("nobody") is None


class TestContent:
    def test_content_round_trip(self, store):
        activities = {a.id: a for a in store.load_activities()}

        assert activities["r3"].prerequisites == ["r2", "m2"]
        assert activities["m-crown"].is_crown_challenge
        assert [s.id for s in store.load_subjects()] == ["math", "reading"]
        assert store.load_subjects()[1].activity_ids == ["r1", "r2", "r3"]

    def test_achievement_age_bands_round_trip(self, store):
        definitions = {d.id: d for d in store.load_achievements()}
        assert [b.value for b in definitions["primary-only"].age_bands] == ["primary"]
        assert definitions["stars-10"].criteria_params == {"stars": 10}


class TestDerivedState:
    def test_attempt_timestamps_come_back_aware(self, store, child, make_attempt):
        stored = store.append_attempt(make_attempt("m1"))

        assert stored.id is not None
        assert store.get_attempts("ana")[0].completed_at.tzinfo is not None
        assert store.get_attempts("ana", "reading") == []

    def test_unlocks_are_never_overwritten(self, store, child):
        store.add_unlocks("ana", [UnlockedActivity("m1", UnlockReason.NO_PREREQUISITES, NOW)])
        store.add_unlocks("ana", [UnlockedActivity("m1", UnlockReason.MASTERY, NOW)])

        assert store.get_unlocks("ana")["m1"].reason == UnlockReason.NO_PREREQUISITES

    def test_streak_round_trip(self, store, child):
        state = StreakState(current=3, longest=5, started_on=date(2025, 3, 1), last_activity_on=date(2025, 3, 3))
        store.save_streak("ana", state)
        assert store.get_streak("ana") == state

    def test_default_streak(self, store):
        assert store.get_streak("ana") == StreakState()

    def test_earned_achievements_skip_duplicates(self, store, child):
        earned = EarnedAchievement("ana", "first-step", NOW)
        store.add_earned_achievements([earned])
        store.add_earned_achievements([earned])

        assert list(store.get_earned_achievements("ana")) == ["first-step"]


class TestTransactions:
    def test_unique_constraint_surfaces_as_storage_failure(self, store, child):
        naive = NOW.replace(tzinfo=None)
        with pytest.raises(StorageFailure) as exc:
            with store.transaction():
                session = store._local.session
                session.add(EarnedAchievementRow(child_id="ana", achievement_id="x", earned_at=naive))
                session.add(EarnedAchievementRow(child_id="ana", achievement_id="x", earned_at=naive))
                session.flush()

        assert exc.value.retryable
        assert store.get_earned_achievements("ana") == {}

    def test_error_inside_transaction_rolls_back(self, store, child):
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.add_unlocks("ana", [UnlockedActivity("m1", UnlockReason.NO_PREREQUISITES, NOW)])
                raise RuntimeError("boom")

        assert store.get_unlocks("ana") == {}

    def test_nested_transactions_join(self, store, child):
        with store.transaction():
            outer = store._local.session
            with store.transaction():
                assert store._local.session is outer

    def test_in_memory_transactions_do_not_overlap(self, store, child, make_attempt):
        with store.transaction():
            store.save_child(Child("leo", "Leo", 6))
        holding = threading.Event()
        release = threading.Event()
        entered = threading.Event()

        def aborted_writer():
            try:
                with store.transaction():
                    store.append_attempt(make_attempt("m1", child_id="ana"))
                    holding.set()
                    release.wait(5)
                    raise RuntimeError("abort")
            except RuntimeError:
                pass

        def committed_writer():
            holding.wait(5)
            with store.transaction():
                entered.set()
                store.append_attempt(make_attempt("m1", child_id="leo"))

        threads = [threading.Thread(target=aborted_writer), threading.Thread(target=committed_writer)]
        for t in threads:
            t.start()
        assert holding.wait(5)
        assert not entered.wait(0.2)

        release.set()
        for t in threads:
            t.join(timeout=10)

        assert entered.is_set()
        assert store.get_attempts("ana") == []
        assert len(store.get_attempts("leo")) == 1
