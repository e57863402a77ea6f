# cre/api/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from cre.intake.schema import ChatMessage, StructuredIntakeData
from cre.reasoning.schema import ClinicalReasoningPack
from cre.safety.schema import PolicyOverride, SafetyState
from cre.services.config_store import ConfigKind, ConfigScope
from cre.states import LifecycleAction, ReviewStatus


class SafetyEvaluateRequest(BaseModel):
    structured_data: StructuredIntakeData
    messages: List[ChatMessage] = Field(default_factory=list)
    intake_id: Optional[str] = None
    override: Optional[PolicyOverride] = None
    organization_id: Optional[str] = None
    funnel_id: Optional[str] = None


class SafetyEvaluateResponse(BaseModel):
    safety: SafetyState
    summary_line: str


class ClinicalStateRequest(SafetyEvaluateRequest):
    now: Optional[datetime] = None


class FollowupTransitionRequest(BaseModel):
    structured_data: StructuredIntakeData
    action: LifecycleAction
    question_id: Optional[str] = None
    now: Optional[datetime] = None


class FollowupMergeRequest(BaseModel):
    structured_data: StructuredIntakeData
    requested_items: List[str] = Field(default_factory=list)
    now: Optional[datetime] = None


class ReviewValidateRequest(BaseModel):
    # Raw payload; validation happens in the review workflow, not here.
    review: Dict[str, Any] = Field(default_factory=dict)
    current_status: Optional[ReviewStatus] = None


class ValidationResponse(BaseModel):
    ok: bool
    error_code: Optional[str] = None
    message: Optional[str] = None
    issues: List[str] = Field(default_factory=list)
    transition_allowed: Optional[bool] = None


class ConfigDraftRequest(BaseModel):
    kind: ConfigKind
    config_json: Dict[str, Any]
    scope_type: ConfigScope = ConfigScope.GLOBAL
    scope_id: Optional[str] = None
    change_reason: Optional[str] = None
    created_by: Optional[str] = None


class ReasoningSandboxRequest(BaseModel):
    structured_data: StructuredIntakeData
    version_id: str


class ReasoningSandboxResponse(BaseModel):
    active: ClinicalReasoningPack
    selected: ClinicalReasoningPack
    diff: Dict[str, Any]
