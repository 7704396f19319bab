"""
Unit tests for enrollment lifecycle rules

Tests the transition table, transition validation and expected end dates.
"""
import uuid
from datetime import date

import pytest

from carepath.errors import ValidationError
from carepath.services.enrollment_manager import (
    ALLOWED_TRANSITIONS,
    EnrollmentBatchResult,
    SkippedTarget,
    compute_expected_end_date,
    is_legal_transition,
    validate_transition,
)


class TestTransitionTable:
    """assigned -> in_progress -> completed; active -> dropped; terminal states stay put"""

    @pytest.mark.parametrize("current,new", [
        ("assigned", "in_progress"),
        ("assigned", "dropped"),
        ("in_progress", "completed"),
        ("in_progress", "dropped"),
    ])
    def test_legal(self, current, new):
        assert is_legal_transition(current, new) is True
        assert validate_transition(current, new) is True

    @pytest.mark.parametrize("current,new", [
        ("completed", "in_progress"),
        ("completed", "dropped"),
        ("dropped", "in_progress"),
        ("dropped", "assigned"),
        ("assigned", "completed"),
        ("in_progress", "assigned"),
    ])
    def test_illegal_raises_validation_error(self, current, new):
        assert is_legal_transition(current, new) is False
        with pytest.raises(ValidationError) as exc_info:
            validate_transition(current, new)
        assert "status" in exc_info.value.details

    def test_same_status_is_noop(self):
        assert validate_transition("in_progress", "in_progress") is False

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            validate_transition("assigned", "paused")

    def test_terminal_states_have_no_exits(self):
        assert ALLOWED_TRANSITIONS["completed"] == frozenset()
        assert ALLOWED_TRANSITIONS["dropped"] == frozenset()


class TestExpectedEndDate:
    def test_duration_added_to_start(self):
        assert compute_expected_end_date(date(2024, 1, 1), 30) == date(2024, 1, 31)

    def test_crosses_month_boundary(self):
        assert compute_expected_end_date(date(2024, 1, 15), 60) == date(2024, 3, 15)

    def test_self_paced_has_no_end(self):
        assert compute_expected_end_date(date(2024, 1, 1), 30, is_self_paced=True) is None

    def test_no_duration_has_no_end(self):
        assert compute_expected_end_date(date(2024, 1, 1), None) is None


class TestBatchResult:
    def test_partial_counts(self):
        result = EnrollmentBatchResult(category_enrollment=None, requested_count=3)
        result.enrollments.extend([object(), object()])
        result.skipped.append(SkippedTarget(program_id=uuid.uuid4(), reason="program is inactive"))

        assert result.enrolled_count == 2
        assert result.is_partial is True
