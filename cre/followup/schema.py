# cre/followup/schema.py
from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from cre.states import (
    LifecycleState,
    ObjectiveStatus,
    QuestionSource,
    ReadinessState,
    SavepointStatus,
)


class ClinicalFollowupQuestion(BaseModel):
    id: str
    question: str
    why: str
    priority: Literal[1, 2, 3]
    source: QuestionSource
    objective_id: Optional[str] = None


class ClinicalFollowupObjective(BaseModel):
    id: str
    label: str
    field_path: str
    status: ObjectiveStatus
    rationale: str
    extended: bool = False
    active: bool = True


class FollowupSavepoint(BaseModel):
    block_id: str
    label: str
    objective_ids: List[str] = Field(default_factory=list)
    completed_objective_ids: List[str] = Field(default_factory=list)
    open_objective_ids: List[str] = Field(default_factory=list)
    status: SavepointStatus = SavepointStatus.IN_PROGRESS
    updated_at: Optional[str] = None


class FollowupLifecycle(BaseModel):
    state: LifecycleState = LifecycleState.ACTIVE
    completed_question_ids: List[str] = Field(default_factory=list)
    skipped_question_ids: List[str] = Field(default_factory=list)
    resumed_at: Optional[str] = None
    completed_at: Optional[str] = None
    savepoints: List[FollowupSavepoint] = Field(default_factory=list)
    active_block_id: Optional[str] = None


class FollowupReadiness(BaseModel):
    state: ReadinessState = ReadinessState.VISIT_READY
    uc2_triggered: bool = False
    trigger_reasons: List[str] = Field(default_factory=list)


class ClinicalFollowup(BaseModel):
    next_questions: List[ClinicalFollowupQuestion] = Field(default_factory=list)
    queue: List[ClinicalFollowupQuestion] = Field(default_factory=list)
    asked_question_ids: List[str] = Field(default_factory=list)
    last_generated_at: Optional[str] = None
    objectives: List[ClinicalFollowupObjective] = Field(default_factory=list)
    active_objective_ids: List[str] = Field(default_factory=list)
    # Raw values as supplied by the caller; unknown statuses are ignored when
    # objectives are derived.
    objective_state_overrides: Dict[str, str] = Field(default_factory=dict)
    readiness: FollowupReadiness = Field(default_factory=FollowupReadiness)
    lifecycle: FollowupLifecycle = Field(default_factory=FollowupLifecycle)
    # Clinician requests held back while a hard stop is active
    pending_clinician_requests: List[ClinicalFollowupQuestion] = Field(default_factory=list)
