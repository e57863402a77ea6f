# cre/api/routes.py
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException

from cre.followup.generator import (
    merge_clinician_requested_items_into_followup,
    transition_followup_lifecycle,
)
from cre.intake.schema import StructuredIntakeData
from cre.reasoning.engine import compare_reasoning_packs, generate_reasoning_pack
from cre.review.workflow import is_allowed_review_transition, validate_review_input
from cre.safety.override import validate_policy_override
from cre.safety.red_flags import format_safety_summary_line
from cre.services import ClinicalStateService, ConfigStore
from cre.services.config_store import ConfigKind, ConfigScope, ConfigVersionRecord
from cre.utils.exceptions import ConfigNotFoundError, CREError, InvalidConfigError
from .schemas import (
    ClinicalStateRequest,
    ConfigDraftRequest,
    FollowupMergeRequest,
    FollowupTransitionRequest,
    ReasoningSandboxRequest,
    ReasoningSandboxResponse,
    ReviewValidateRequest,
    SafetyEvaluateRequest,
    SafetyEvaluateResponse,
    ValidationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_store = ConfigStore()
_service = ClinicalStateService(store=_store)


def _http_error(exc: CREError) -> HTTPException:
    if isinstance(exc, ConfigNotFoundError):
        status_code = 404
    elif isinstance(exc, InvalidConfigError):
        status_code = 422
    else:
        logger.error("request failed: %s", exc.code, exc_info=exc)
        status_code = 500
    return HTTPException(status_code=status_code, detail=exc.to_dict())


def _check_override(payload: SafetyEvaluateRequest) -> None:
    if payload.override is None:
        return
    outcome = validate_policy_override(payload.override)
    if not outcome.ok:
        raise HTTPException(
            status_code=422,
            detail={"error": outcome.error_code, "message": outcome.message},
        )


@router.post("/safety/evaluate", response_model=SafetyEvaluateResponse)
def evaluate_safety(payload: SafetyEvaluateRequest) -> SafetyEvaluateResponse:
    _check_override(payload)
    try:
        safety = _service.evaluate_safety(
            payload.structured_data,
            messages=payload.messages,
            intake_id=payload.intake_id,
            override=payload.override,
            organization_id=payload.organization_id,
            funnel_id=payload.funnel_id,
        )
    except CREError as exc:
        raise _http_error(exc)
    return SafetyEvaluateResponse(safety=safety, summary_line=format_safety_summary_line(safety))


@router.post("/clinical-state", response_model=StructuredIntakeData)
def clinical_state(payload: ClinicalStateRequest) -> StructuredIntakeData:
    """
    Full recomputation: safety, reasoning and follow-up for one intake.
    """
    _check_override(payload)
    try:
        return _service.compute_clinical_state(
            payload.structured_data,
            messages=payload.messages,
            intake_id=payload.intake_id,
            now=payload.now,
            override=payload.override,
            organization_id=payload.organization_id,
            funnel_id=payload.funnel_id,
        )
    except CREError as exc:
        raise _http_error(exc)


@router.post("/followup/transition", response_model=StructuredIntakeData)
def followup_transition(payload: FollowupTransitionRequest) -> StructuredIntakeData:
    return transition_followup_lifecycle(
        payload.structured_data,
        payload.action,
        question_id=payload.question_id,
        now=payload.now,
        max_next_questions=_service.settings.followup_max_next_questions,
    )


@router.post("/followup/merge", response_model=StructuredIntakeData)
def followup_merge(payload: FollowupMergeRequest) -> StructuredIntakeData:
    return merge_clinician_requested_items_into_followup(
        payload.structured_data,
        payload.requested_items,
        now=payload.now,
        max_next_questions=_service.settings.followup_max_next_questions,
    )


@router.post("/review/validate", response_model=ValidationResponse)
def review_validate(payload: ReviewValidateRequest) -> ValidationResponse:
    outcome = validate_review_input(payload.review)
    if not outcome.ok:
        return ValidationResponse(
            ok=False,
            error_code=outcome.error_code,
            message=outcome.message,
            issues=outcome.issues,
        )
    return ValidationResponse(
        ok=True,
        transition_allowed=is_allowed_review_transition(
            payload.current_status, outcome.data.status
        ),
    )


@router.post("/config/versions", response_model=ConfigVersionRecord)
def create_config_draft(payload: ConfigDraftRequest) -> ConfigVersionRecord:
    try:
        return _store.create_draft(
            payload.kind,
            payload.config_json,
            scope_type=payload.scope_type,
            scope_id=payload.scope_id,
            change_reason=payload.change_reason,
            created_by=payload.created_by,
        )
    except CREError as exc:
        raise _http_error(exc)


@router.get("/config/versions", response_model=List[ConfigVersionRecord])
def list_config_versions(
    kind: ConfigKind,
    scope_type: ConfigScope = ConfigScope.GLOBAL,
    scope_id: Optional[str] = None,
) -> List[ConfigVersionRecord]:
    return _store.list_versions(kind, scope_type, scope_id)


@router.post("/config/versions/{version_id}/activate", response_model=ConfigVersionRecord)
def activate_config_version(version_id: str) -> ConfigVersionRecord:
    try:
        return _store.activate(version_id)
    except CREError as exc:
        raise _http_error(exc)


@router.post("/reasoning/sandbox", response_model=ReasoningSandboxResponse)
def reasoning_sandbox(payload: ReasoningSandboxRequest) -> ReasoningSandboxResponse:
    """Run one intake through the active config and a selected version side by side."""
    try:
        active_config, active_version = _store.get_active_reasoning_config()
        selected_config, selected_version = _store.get_reasoning_config(payload.version_id)
    except CREError as exc:
        raise _http_error(exc)

    active = generate_reasoning_pack(
        payload.structured_data, config=active_config, config_version=active_version
    )
    selected = generate_reasoning_pack(
        payload.structured_data, config=selected_config, config_version=selected_version
    )
    return ReasoningSandboxResponse(
        active=active,
        selected=selected,
        diff=compare_reasoning_packs(active, selected),
    )
