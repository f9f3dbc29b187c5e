"""
Progression Module - Scoring, difficulty, unlocking, achievements and streaks.

Components:
- scoring: the authoritative star rule
- difficulty: rolling-window tier adviser
- content_graph: validated prerequisite DAG
- unlock_resolver: unlock rules and crown challenge eligibility
- achievements: declarative criteria table and evaluator
- streaks: daily streak state machine
- learning_path: rule-based learning paths and milestones
- engine: ProgressionEngine, the orchestrator tying them together
  (import from playpath.progression.engine)

Design Principle:
Every component is a pure function of its explicit inputs. Only the
engine talks to the store.
"""

from playpath.progression.achievements import (
    CRITERIA,
    AchievementContext,
    AchievementEvaluator,
    AchievementProgress,
    AwardedAchievement,
)
from playpath.progression.content_graph import ContentGraph
from playpath.progression.difficulty import DifficultyAdviser, DifficultyRecommendation
from playpath.progression.learning_path import (
    LearningPath,
    LearningPathPlanner,
    MilestoneActivity,
    PathStep,
)
from playpath.progression.scoring import (
    CompletionOutcome,
    ScoreResult,
    ScoringCalculator,
    stars_for_errors,
)
from playpath.progression.streaks import (
    MILESTONES,
    RecoveryPlan,
    StreakStatus,
    StreakTracker,
    StreakUpdate,
)
from playpath.progression.unlock_resolver import (
    ActivityUnlockStatus,
    CrownChallengeEligibility,
    CrownRule,
    UnlockedActivityInfo,
    UnlockResolver,
)

__all__ = [
    # Scoring
    "CompletionOutcome",
    "ScoreResult",
    "ScoringCalculator",
    "stars_for_errors",
    # Difficulty
    "DifficultyAdviser",
    "DifficultyRecommendation",
    # Content and unlocks
    "ContentGraph",
    "ActivityUnlockStatus",
    "CrownChallengeEligibility",
    "CrownRule",
    "UnlockedActivityInfo",
    "UnlockResolver",
    # Achievements
    "CRITERIA",
    "AchievementContext",
    "AchievementEvaluator",
    "AchievementProgress",
    "AwardedAchievement",
    # Streaks
    "MILESTONES",
    "RecoveryPlan",
    "StreakStatus",
    "StreakTracker",
    "StreakUpdate",
    # Learning paths
    "LearningPath",
    "LearningPathPlanner",
    "MilestoneActivity",
    "PathStep",
]
