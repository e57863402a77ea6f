# cre/utils/exceptions.py
"""
Exceptions for unexpected failures.

Expected validation failures never raise; they come back as a
`ValidationOutcome` (see cre/utils/validation.py).
"""
from typing import Any, Dict, Optional


class CREError(Exception):
    """Base exception for the reasoning engine and its config store."""

    def __init__(
        self,
        message: str,
        code: str = "CRE_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigStoreError(CREError):
    """The config store could not read or write a version."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="CONFIG_STORE_ERROR", details=details)


class ConfigNotFoundError(CREError):
    def __init__(
        self,
        message: str,
        kind: str = "unknown",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="CONFIG_NOT_FOUND",
            details={"kind": kind, **(details or {})},
        )
        self.kind = kind


class InvalidConfigError(CREError):
    """A config payload failed validation when it had to be usable."""

    def __init__(
        self,
        message: str,
        issues: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="INVALID_CONFIG",
            details={"issues": issues or [], **(details or {})},
        )
        self.issues = issues or []
