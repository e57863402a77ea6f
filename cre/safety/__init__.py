# cre/safety/__init__.py
from .schema import (
    EvidenceItem,
    PolicyOverride,
    RedFlagFinding,
    SafetyEvaluation,
    SafetyPolicy,
    SafetyPolicyResult,
    SafetyState,
    SafetyTriggeredRule,
)

__all__ = [
    "EvidenceItem",
    "PolicyOverride",
    "RedFlagFinding",
    "SafetyEvaluation",
    "SafetyPolicy",
    "SafetyPolicyResult",
    "SafetyState",
    "SafetyTriggeredRule",
]
