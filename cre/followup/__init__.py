# cre/followup/__init__.py
from .schema import (
    ClinicalFollowup,
    ClinicalFollowupObjective,
    ClinicalFollowupQuestion,
    FollowupLifecycle,
    FollowupReadiness,
    FollowupSavepoint,
)

__all__ = [
    "ClinicalFollowup",
    "ClinicalFollowupObjective",
    "ClinicalFollowupQuestion",
    "FollowupLifecycle",
    "FollowupReadiness",
    "FollowupSavepoint",
]
