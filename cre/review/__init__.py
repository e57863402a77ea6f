# cre/review/__init__.py
from .workflow import ReviewInput, is_allowed_review_transition, validate_review_input

__all__ = ["ReviewInput", "is_allowed_review_transition", "validate_review_input"]
