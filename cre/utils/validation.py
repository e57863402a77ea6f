# cre/utils/validation.py
from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field, ValidationError


class ValidationOutcome(BaseModel):
    """
    Structured ok/error result returned by every validator.

    `ok` is the discriminant. On failure `error_code` and `message` are set and
    `issues` lists one human-readable line per problem.
    """

    ok: bool
    data: Optional[Any] = None
    error_code: Optional[str] = None
    message: Optional[str] = None
    issues: List[str] = Field(default_factory=list)

    @classmethod
    def success(cls, data: Any) -> "ValidationOutcome":
        return cls(ok=True, data=data)

    @classmethod
    def failure(
        cls,
        error_code: str,
        message: str,
        issues: Optional[List[str]] = None,
    ) -> "ValidationOutcome":
        return cls(ok=False, error_code=error_code, message=message, issues=issues or [message])


def issues_from_error(exc: ValidationError) -> List[str]:
    """Flatten a pydantic ValidationError into `path: message` lines."""
    issues: List[str] = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        issues.append(f"{path}: {error.get('msg', 'invalid')}")
    return issues
