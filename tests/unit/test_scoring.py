"""
Unit tests for the star rule and CompletionOutcome validation.
"""

import pytest

from playpath.core.errors import InvalidInputError
from playpath.progression.scoring import (
    CompletionOutcome,
    ScoringCalculator,
    stars_for_errors,
    validate_stars,
)


class TestStarTable:
    """0 errors -> 3, 1-2 errors -> 2, 3+ errors -> 1."""

    @pytest.mark.parametrize(
        "errors,expected",
        [(0, 3), (1, 2), (2, 2), (3, 1), (4, 1), (25, 1)],
    )
    def test_error_boundaries(self, errors, expected):
        assert stars_for_errors(errors) == expected

    def test_negative_errors_rejected(self):
        with pytest.raises(InvalidInputError):
            stars_for_errors(-1)

    @pytest.mark.parametrize("stars", [0, 4, -1])
    def test_out_of_range_stars_rejected(self, stars):
        with pytest.raises(InvalidInputError):
            validate_stars(stars)

    def test_valid_stars_pass_through(self):
        assert validate_stars(2) == 2


class TestCompletionOutcome:
    def test_error_count_derived_from_correct_answers(self):
        outcome = CompletionOutcome.parse({"total_questions": 5, "correct_answers": 3})
        assert outcome.error_count == 2

    def test_correct_answers_derived_from_error_count(self):
        outcome = CompletionOutcome.parse({"total_questions": 5, "error_count": 1})
        assert outcome.correct_answers == 4

    def test_errors_may_exceed_questions(self):
        """Retries on the same question count as separate mistakes."""
        outcome = CompletionOutcome.parse({"total_questions": 3, "error_count": 7})
        assert outcome.correct_answers == 0

    @pytest.mark.parametrize(
        "raw",
        [
            {"total_questions": 5},
            {"total_questions": 0, "error_count": 0},
            {"total_questions": 5, "correct_answers": 6},
            {"total_questions": 5, "error_count": -1},
            {"total_questions": 5, "correct_answers": 3, "error_count": 1},
            {"total_questions": 5, "error_count": 0, "time_spent_seconds": -5},
        ],
    )
    def test_malformed_outcomes_rejected(self, raw):
        with pytest.raises(InvalidInputError):
            CompletionOutcome.parse(raw)

    def test_invalid_input_is_a_value_error(self):
        with pytest.raises(ValueError):
            CompletionOutcome.parse({"total_questions": 5, "correct_answers": 9})


class TestScoringCalculator:
    def setup_method(self):
        self.calculator = ScoringCalculator()

    def test_perfect_attempt(self):
        result = self.calculator.score({"total_questions": 5, "correct_answers": 5})

        assert result.stars == 3
        assert result.passed is True
        assert result.accuracy == 1.0
        assert "0 mistakes" in result.breakdown

    def test_every_attempt_passes(self):
        result = self.calculator.score({"total_questions": 5, "error_count": 10})
        assert result.stars == 1
        assert result.passed is True

    def test_time_never_changes_stars(self):
        quick = self.calculator.score(
            {"total_questions": 5, "error_count": 1, "time_spent_seconds": 10, "expected_time_seconds": 60}
        )
        slow = self.calculator.score(
            {"total_questions": 5, "error_count": 1, "time_spent_seconds": 600, "expected_time_seconds": 60}
        )

        assert quick.stars == slow.stars == 2
        assert quick.encouragement_key == "encouragement.quick"
        assert slow.encouragement_key == "encouragement.took_time"

    def test_steady_when_no_expected_time(self):
        result = self.calculator.score({"total_questions": 4, "error_count": 0, "time_spent_seconds": 999})
        assert result.encouragement_key == "encouragement.steady"

    def test_accepts_parsed_outcome(self):
        outcome = CompletionOutcome(total_questions=10, correct_answers=8)
        result = self.calculator.score(outcome)
        assert result.stars == 2
        assert result.error_count == 2
        assert result.accuracy == 0.8
