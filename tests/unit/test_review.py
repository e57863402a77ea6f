"""
Unit Tests for clinician review input validation and status transitions
"""
import pytest

from cre.review import ReviewInput, is_allowed_review_transition, validate_review_input
from cre.states import ReviewStatus


class TestValidateReviewInput:
    def test_needs_more_info_requires_items(self):
        outcome = validate_review_input({"status": "needs_more_info"})

        assert outcome.ok is False
        assert outcome.error_code == "requested_items_required"
        assert "requested_items" in outcome.message

    def test_blank_items_do_not_count(self):
        outcome = validate_review_input(
            {"status": "needs_more_info", "requested_items": ["  ", 3, ""]}
        )
        assert outcome.ok is False

    def test_needs_more_info_with_items(self):
        outcome = validate_review_input(
            {"status": "needs_more_info", "requested_items": [" Vorbefunde hochladen ", ""]}
        )

        assert outcome.ok is True
        assert outcome.data == ReviewInput(
            status=ReviewStatus.NEEDS_MORE_INFO,
            requested_items=["Vorbefunde hochladen"],
        )

    @pytest.mark.parametrize("status", ["approved", "rejected"])
    def test_terminal_statuses_require_notes(self, status):
        outcome = validate_review_input({"status": status, "review_notes": "   "})

        assert outcome.ok is False
        assert outcome.error_code == "review_notes_required"

    def test_approved_with_notes(self):
        outcome = validate_review_input({"status": "approved", "review_notes": "Plausibel."})
        assert outcome.ok is True
        assert outcome.data.review_notes == "Plausibel."

    def test_unknown_status(self):
        outcome = validate_review_input({"status": "archived"})

        assert outcome.ok is False
        assert outcome.error_code == "invalid_status"

    def test_non_object(self):
        assert validate_review_input("approved").error_code == "invalid_input"


class TestReviewTransitions:
    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            (None, "draft", True),
            (None, "in_review", True),
            (None, "approved", False),
            ("draft", "in_review", True),
            ("draft", "approved", False),
            ("in_review", "needs_more_info", True),
            ("in_review", "approved", True),
            ("in_review", "rejected", True),
            ("needs_more_info", "in_review", True),
            ("needs_more_info", "approved", False),
            ("approved", "in_review", False),
            ("rejected", "rejected", False),
        ],
    )
    def test_transition_graph(self, current, target, allowed):
        assert is_allowed_review_transition(current, target) is allowed

    def test_unknown_values(self):
        assert is_allowed_review_transition("bogus", "in_review") is False
        assert is_allowed_review_transition("draft", "bogus") is False
