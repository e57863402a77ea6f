"""
Utilities - logging, exceptions and validation results
"""
from .exceptions import ConfigNotFoundError, ConfigStoreError, CREError, InvalidConfigError
from .logging import setup_logging
from .validation import ValidationOutcome, issues_from_error

__all__ = [
    "setup_logging",
    "CREError",
    "ConfigStoreError",
    "ConfigNotFoundError",
    "InvalidConfigError",
    "ValidationOutcome",
    "issues_from_error",
]
