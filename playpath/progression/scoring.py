"""
Scoring Calculator.

The single authoritative star rule:
- 0 errors      -> 3 stars
- 1 or 2 errors -> 2 stars
- 3+ errors     -> 1 star

Every completed attempt passes; there is no fail state. Time spent only
selects encouragement copy and never changes the star rating.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, model_validator

from playpath.core.errors import InvalidInputError

MIN_STARS = 1
MAX_STARS = 3


class CompletionOutcome(BaseModel):
    """
    Raw outcome of a completed activity, as reported by the activity screen.

    Either `correct_answers` or `error_count` must be given; the other is
    derived from `total_questions`.
    """

    total_questions: int = Field(ge=1)
    correct_answers: int | None = Field(default=None, ge=0)
    error_count: int | None = Field(default=None, ge=0)
    time_spent_seconds: int = Field(default=0, ge=0)
    expected_time_seconds: int | None = Field(default=None, gt=0)
    session_id: str | None = None

    @model_validator(mode="after")
    def _reconcile_counts(self) -> CompletionOutcome:
        if self.correct_answers is None and self.error_count is None:
            raise ValueError("either correct_answers or error_count is required")
        if self.correct_answers is not None and self.correct_answers > self.total_questions:
            raise ValueError("correct_answers cannot exceed total_questions")
        if (
            self.correct_answers is not None
            and self.error_count is not None
            and self.correct_answers + self.error_count < self.total_questions
        ):
            raise ValueError("correct_answers and error_count do not cover total_questions")
        if self.correct_answers is None:
            self.correct_answers = max(0, self.total_questions - self.error_count)
        if self.error_count is None:
            self.error_count = self.total_questions - self.correct_answers
        return self

    @classmethod
    def parse(cls, raw: CompletionOutcome | dict) -> CompletionOutcome:
        """Validate raw input, converting pydantic errors to InvalidInputError."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise InvalidInputError(f"Invalid completion outcome: {e}") from e


@dataclass
class ScoreResult:
    """Star rating for one attempt."""

    stars: int
    passed: bool
    error_count: int
    accuracy: float  # 0-1
    breakdown: str
    encouragement_key: str


def stars_for_errors(error_count: int) -> int:
    """Map an error count to a 1-3 star rating."""
    if error_count < 0:
        raise InvalidInputError(f"error_count must be >= 0, got {error_count}")
    if error_count == 0:
        return 3
    if error_count <= 2:
        return 2
    return 1


def validate_stars(stars: int) -> int:
    """Reject star values outside 1-3."""
    if not MIN_STARS <= stars <= MAX_STARS:
        raise InvalidInputError(f"stars must be between {MIN_STARS} and {MAX_STARS}, got {stars}")
    return stars


class ScoringCalculator:
    """Turns a CompletionOutcome into a ScoreResult."""

    # Pace bands relative to expected time (advisory only)
    QUICK_RATIO = 0.75
    STEADY_RATIO = 1.25

    def score(self, outcome: CompletionOutcome | dict) -> ScoreResult:
        outcome = CompletionOutcome.parse(outcome)
        stars = stars_for_errors(outcome.error_count)
        accuracy = outcome.correct_answers / outcome.total_questions

        result = ScoreResult(
            stars=stars,
            passed=True,
            error_count=outcome.error_count,
            accuracy=round(accuracy, 3),
            breakdown=self._breakdown(outcome, stars),
            encouragement_key=self._encouragement_key(outcome),
        )
        logger.debug(
            f"Scored attempt: {outcome.error_count} errors -> {stars} stars "
            f"({result.encouragement_key})"
        )
        return result

    def _breakdown(self, outcome: CompletionOutcome, stars: int) -> str:
        errors = outcome.error_count
        noun = "mistake" if errors == 1 else "mistakes"
        return (
            f"{outcome.correct_answers}/{outcome.total_questions} correct, "
            f"{errors} {noun}: {stars} {'star' if stars == 1 else 'stars'}"
        )

    def _encouragement_key(self, outcome: CompletionOutcome) -> str:
        if not outcome.expected_time_seconds:
            return "encouragement.steady"
        ratio = outcome.time_spent_seconds / outcome.expected_time_seconds
        if ratio <= self.QUICK_RATIO:
            return "encouragement.quick"
        if ratio <= self.STEADY_RATIO:
            return "encouragement.steady"
        return "encouragement.took_time"
