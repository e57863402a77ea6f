# cre/states.py
from enum import Enum


class EscalationLevel(str, Enum):
    A = "A"
    B = "B"
    C = "C"


class ChatAction(str, Enum):
    NONE = "none"
    WARN = "warn"
    REQUIRE_CONFIRM = "require_confirm"
    HARD_STOP = "hard_stop"


class EvidenceSource(str, Enum):
    CHAT = "chat"
    INTAKE = "intake"


class ObjectiveStatus(str, Enum):
    MISSING = "missing"
    UNCLEAR = "unclear"
    RESOLVED = "resolved"
    ANSWERED = "answered"
    VERIFIED = "verified"
    BLOCKED_BY_SAFETY = "blocked_by_safety"


class LifecycleState(str, Enum):
    ACTIVE = "active"
    NEEDS_REVIEW = "needs_review"
    COMPLETED = "completed"


class LifecycleAction(str, Enum):
    RESUME = "resume"
    SKIP = "skip"
    COMPLETE = "complete"


class ReadinessState(str, Enum):
    VISIT_READY = "VisitReady"
    PROBLEM_READY = "ProblemReady"
    SAFETY_READY = "SafetyReady"
    PROGRAM_READY = "ProgramReady"


class SavepointStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QuestionSource(str, Enum):
    CLINICIAN_REQUEST = "clinician_request"
    REASONING = "reasoning"
    GAP_RULE = "gap_rule"


class Likelihood(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReviewStatus(str, Enum):
    DRAFT = "draft"
    IN_REVIEW = "in_review"
    NEEDS_MORE_INFO = "needs_more_info"
    APPROVED = "approved"
    REJECTED = "rejected"


# Rank orders used wherever two values on the same axis are compared.
LEVEL_RANK = {
    None: 0,
    EscalationLevel.C: 1,
    EscalationLevel.B: 2,
    EscalationLevel.A: 3,
}

ACTION_RANK = {
    ChatAction.NONE: 0,
    ChatAction.WARN: 1,
    ChatAction.REQUIRE_CONFIRM: 2,
    ChatAction.HARD_STOP: 3,
}

LIKELIHOOD_ORDER = [Likelihood.LOW, Likelihood.MEDIUM, Likelihood.HIGH]

# Objective statuses a patient-facing block counts as done.
OBJECTIVE_DONE_STATUSES = frozenset(
    {
        ObjectiveStatus.RESOLVED,
        ObjectiveStatus.ANSWERED,
        ObjectiveStatus.VERIFIED,
        ObjectiveStatus.BLOCKED_BY_SAFETY,
    }
)
