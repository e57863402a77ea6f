# cre/review/workflow.py
"""
Clinician review input validation and the allowed status transitions.

The review status gates what the follow-up consumes: `needs_more_info`
carries the requested items that become clinician questions.
"""
from __future__ import annotations

from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field

from cre.states import ReviewStatus
from cre.utils.validation import ValidationOutcome


class ReviewInput(BaseModel):
    status: ReviewStatus
    review_notes: Optional[str] = None
    requested_items: List[str] = Field(default_factory=list)


ALLOWED_REVIEW_TRANSITIONS: Dict[Optional[ReviewStatus], FrozenSet[ReviewStatus]] = {
    None: frozenset({ReviewStatus.DRAFT, ReviewStatus.IN_REVIEW}),
    ReviewStatus.DRAFT: frozenset({ReviewStatus.DRAFT, ReviewStatus.IN_REVIEW}),
    ReviewStatus.IN_REVIEW: frozenset(
        {
            ReviewStatus.IN_REVIEW,
            ReviewStatus.NEEDS_MORE_INFO,
            ReviewStatus.APPROVED,
            ReviewStatus.REJECTED,
        }
    ),
    ReviewStatus.NEEDS_MORE_INFO: frozenset(
        {ReviewStatus.NEEDS_MORE_INFO, ReviewStatus.IN_REVIEW}
    ),
    ReviewStatus.APPROVED: frozenset(),
    ReviewStatus.REJECTED: frozenset(),
}


def _status(value: Any) -> Optional[ReviewStatus]:
    if value is None or isinstance(value, ReviewStatus):
        return value
    try:
        return ReviewStatus(value)
    except ValueError:
        return None


def validate_review_input(payload: Any) -> ValidationOutcome:
    if not isinstance(payload, dict):
        return ValidationOutcome.failure("invalid_input", "Review input must be an object.")

    status = _status(payload.get("status"))
    if status is None:
        allowed = ", ".join(s.value for s in ReviewStatus)
        return ValidationOutcome.failure(
            "invalid_status",
            f"status must be one of: {allowed}.",
        )

    notes = payload.get("review_notes")
    notes = notes.strip() if isinstance(notes, str) else ""

    raw_items = payload.get("requested_items")
    items = (
        [i.strip() for i in raw_items if isinstance(i, str) and i.strip()]
        if isinstance(raw_items, list)
        else []
    )

    if status == ReviewStatus.NEEDS_MORE_INFO and not items:
        return ValidationOutcome.failure(
            "requested_items_required",
            "requested_items must contain at least one item when status is needs_more_info.",
        )
    if status in (ReviewStatus.APPROVED, ReviewStatus.REJECTED) and not notes:
        return ValidationOutcome.failure(
            "review_notes_required",
            f"review_notes are required when status is {status.value}.",
        )

    return ValidationOutcome.success(
        ReviewInput(status=status, review_notes=notes or None, requested_items=items)
    )


def is_allowed_review_transition(current: Any, next_status: Any) -> bool:
    if current is not None and _status(current) is None:
        return False
    target = _status(next_status)
    if target is None:
        return False
    return target in ALLOWED_REVIEW_TRANSITIONS[_status(current)]
