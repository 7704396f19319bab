"""
Unit tests for assessment scoring and module completion rules

Tests the rounded percentage, the total-points floor, pass threshold and
required-module completion.
"""
import pytest

from carepath.services.assessment_grader import is_passing, score_percentage, total_possible_points
from carepath.services.progress_tracker import completion_percentage, required_modules_complete


class TestScorePercentage:
    """score = round(100 * earned / total), halves rounded up"""

    @pytest.mark.parametrize("earned,total,expected", [
        (10, 10, 100),
        (7, 10, 70),
        (0, 10, 0),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),  # 12.5 rounds up
        (1, 200, 1),  # 0.5 rounds up
    ])
    def test_rounding(self, earned, total, expected):
        assert score_percentage(earned, total) == expected

    def test_zero_total_does_not_divide_by_zero(self):
        assert score_percentage(0, 0) == 0


class TestTotalPoints:
    def test_sum_of_points(self):
        assert total_possible_points([5, 3, 2]) == 10

    def test_floor_of_one(self):
        assert total_possible_points([]) == 1


class TestPassing:
    def test_threshold_is_inclusive(self):
        assert is_passing(70, 70) is True
        assert is_passing(69, 70) is False

    def test_zero_passing_score(self):
        assert is_passing(0, 0) is True


class TestRequiredModules:
    """Auto-completion needs at least one required module, all completed"""

    def test_all_required_completed(self):
        assert required_modules_complete({"A", "B"}, {"A", "B"}) is True

    def test_optional_modules_are_ignored(self):
        assert required_modules_complete({"A", "B"}, {"A", "B", "C"}) is True

    def test_missing_required(self):
        assert required_modules_complete({"A", "B"}, {"A", "C"}) is False

    def test_no_required_modules_never_completes(self):
        assert required_modules_complete(set(), {"A"}) is False

    def test_completion_percentage(self):
        assert completion_percentage({"A", "B", "C"}, {"A"}) == 33
        assert completion_percentage({"A", "B"}, {"A", "B"}) == 100
        assert completion_percentage(set(), {"A"}) == 0
