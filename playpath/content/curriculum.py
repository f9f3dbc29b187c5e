"""
Default curriculum and achievement table.

Five subjects, each a linear path from Easy through Hard, closed by one
crown challenge. Some subjects borrow a prerequisite from another subject
(counting before number logic, letters before science words).
"""

from __future__ import annotations

from loguru import logger

from playpath.core.models import (
    AchievementCategory,
    AchievementDefinition,
    Activity,
    AgeBand,
    Subject,
    Tier,
)
from playpath.db.store import ProgressStore

E, M, H = Tier.EASY, Tier.MEDIUM, Tier.HARD

# subject id, name, [(title, tier, min_age)], crown title
_PATHS: list[tuple[str, str, list[tuple[str, Tier, int]], str]] = [
    (
        "math",
        "Mathematics",
        [
            ("Count to 5", E, 3),
            ("Count to 10", E, 3),
            ("Shapes Around Us", E, 3),
            ("Bigger and Smaller", M, 4),
            ("Adding Apples", M, 5),
            ("Take Away", M, 5),
            ("Number Patterns", H, 6),
            ("Adding to 20", H, 6),
        ],
        "Math Crown",
    ),
    (
        "reading",
        "Reading",
        [
            ("Letters A to E", E, 3),
            ("Letters F to M", E, 3),
            ("Letters N to Z", E, 4),
            ("Letter Sounds", M, 4),
            ("First Words", M, 5),
            ("Rhymes", M, 5),
            ("Short Sentences", H, 6),
        ],
        "Reading Crown",
    ),
    (
        "concepts",
        "Basic Concepts",
        [
            ("Colors", E, 3),
            ("Up and Down", E, 3),
            ("Day and Night", E, 3),
            ("Same and Different", M, 4),
            ("Opposites", M, 5),
            ("Sorting", H, 5),
        ],
        "Concepts Crown",
    ),
    (
        "logic",
        "Logic",
        [
            ("Match the Pairs", E, 3),
            ("What Comes Next", E, 4),
            ("Odd One Out", M, 4),
            ("Simple Mazes", M, 5),
            ("Sequences", H, 6),
        ],
        "Logic Crown",
    ),
    (
        "science",
        "Science",
        [
            ("Animals and Homes", E, 3),
            ("Plants Grow", E, 4),
            ("Weather", M, 5),
            ("Our Body", M, 5),
            ("Sink or Float", H, 6),
        ],
        "Science Crown",
    ),
]

# activity id -> extra prerequisites from another subject
_CROSS_SUBJECT = {
    "logic-04": ["math-02"],
    "science-03": ["reading-03"],
}


def default_curriculum() -> tuple[list[Subject], list[Activity]]:
    subjects: list[Subject] = []
    activities: list[Activity] = []
    for subject_id, name, path, crown_title in _PATHS:
        ids: list[str] = []
        previous: str | None = None
        for seq, (title, tier, min_age) in enumerate(path, start=1):
            activity_id = f"{subject_id}-{seq:02d}"
            prereqs = [previous] if previous else []
            prereqs += _CROSS_SUBJECT.get(activity_id, [])
            activities.append(
                Activity(
                    id=activity_id,
                    subject_id=subject_id,
                    sequence=seq,
                    title=title,
                    tier=tier,
                    min_age=min_age,
                    max_age=8,
                    prerequisites=prereqs,
                )
            )
            ids.append(activity_id)
            previous = activity_id

        crown_id = f"{subject_id}-crown"
        activities.append(
            Activity(
                id=crown_id,
                subject_id=subject_id,
                sequence=len(path) + 1,
                title=crown_title,
                tier=H,
                min_age=4,
                max_age=8,
                prerequisites=[previous] if previous else [],
                is_crown_challenge=True,
            )
        )
        ids.append(crown_id)
        subjects.append(Subject(id=subject_id, name=name, activity_ids=ids))
    return subjects, activities


def default_achievements() -> list[AchievementDefinition]:
    C = AchievementCategory
    young = (AgeBand.PREK, AgeBand.KINDERGARTEN)
    definitions = [
        AchievementDefinition("first-step", "First Step", C.FIRST_STEPS, "first_step",
                              celebration_key="achievement.first_step"),
        AchievementDefinition("explorer-5", "Explorer", C.FIRST_STEPS, "activity_count",
                              {"count": 5}, priority=1),
        AchievementDefinition("explorer-20", "Great Explorer", C.FIRST_STEPS, "activity_count",
                              {"count": 20}, priority=2),
        AchievementDefinition("stars-10", "Star Collector", C.STARS, "star_collector",
                              {"stars": 10}, celebration_key="achievement.star_collector"),
        AchievementDefinition("stars-50", "Star Champion", C.STARS, "star_collector",
                              {"stars": 50}, priority=1),
        AchievementDefinition("streak-3", "Three Days in a Row", C.STREAKS, "streak_keeper",
                              {"days": 3}),
        AchievementDefinition("streak-5", "Streak Keeper", C.STREAKS, "streak_keeper",
                              {"days": 5}, priority=1, celebration_key="achievement.streak_keeper"),
        AchievementDefinition("perfect-3", "Perfect Trio", C.MASTERY, "perfect_run",
                              {"count": 3}, celebration_key="achievement.mastery"),
        AchievementDefinition("perfect-hard-3", "Hard Hero", C.MASTERY, "perfect_run",
                              {"count": 3, "tier": "hard"}, priority=1),
        AchievementDefinition("crown-1", "Crown Champion", C.CROWN, "crown_champion",
                              {"count": 1}, celebration_key="achievement.crown"),
        AchievementDefinition("speedy-3", "Speed Learner", C.SPEED, "speed_learner",
                              {"count": 3, "seconds": 60}, age_bands=(AgeBand.PRIMARY,)),
        AchievementDefinition("speedy-little-3", "Quick Little Learner", C.SPEED, "speed_learner",
                              {"count": 3, "seconds": 120}, age_bands=young, priority=1),
    ]
    for subject_id, name, _path, _crown in _PATHS:
        definitions.append(
            AchievementDefinition(
                f"master-{subject_id}",
                f"{name} Master",
                C.SUBJECT,
                "subject_master",
                {"min_stars": 2},
                subject_id=subject_id,
                celebration_key="achievement.subject_master",
            )
        )
    return definitions


def seed_default_content(store: ProgressStore) -> tuple[int, int, int]:
    """Upsert the default curriculum. Returns (subjects, activities, achievements) counts."""
    subjects, activities = default_curriculum()
    achievements = default_achievements()
    with store.transaction():
        store.save_content(subjects, activities, achievements)
    logger.info(
        f"Seeded {len(subjects)} subjects, {len(activities)} activities, "
        f"{len(achievements)} achievements"
    )
    return len(subjects), len(activities), len(achievements)
