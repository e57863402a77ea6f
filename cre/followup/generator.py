# cre/followup/generator.py
"""
Follow-up question generation and lifecycle.

Every entry point recomputes the whole follow-up from the intake: objectives,
UC2 trigger, candidates (clinician requests > reasoning questions > gap
rules), savepoints and readiness. Nothing is mutated; callers get a new
ClinicalFollowup or a new StructuredIntakeData.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from cre.followup.objectives import (
    OBJECTIVE_SLOTS,
    active_objective_ids,
    build_objectives,
    infer_objective_id,
    slugify,
)
from cre.followup.savepoints import active_block_id, all_blocks_completed, build_savepoints
from cre.followup.schema import (
    ClinicalFollowup,
    ClinicalFollowupObjective,
    ClinicalFollowupQuestion,
    FollowupLifecycle,
    FollowupReadiness,
)
from cre.followup.trigger import UC2_DURATION_WEEKS, detect_uc2, pending_clinician_requests
from cre.intake.schema import StructuredIntakeData
from cre.safety.override import is_hard_stop
from cre.states import (
    LifecycleAction,
    LifecycleState,
    ObjectiveStatus,
    QuestionSource,
    ReadinessState,
)

logger = logging.getLogger(__name__)

MAX_NEXT_QUESTIONS = 3
CLINICIAN_REQUEST_WHY = "Rueckfrage aus aerztlicher Pruefung"

SOURCE_RANK = {
    QuestionSource.CLINICIAN_REQUEST: 0,
    QuestionSource.REASONING: 1,
    QuestionSource.GAP_RULE: 2,
}


def _iso(now: Optional[datetime]) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def _unique(ids: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for value in ids:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def reasoning_question_id(condition_label: str, text: str) -> str:
    return f"reasoning:{slugify(condition_label or 'general')}:{slugify(text)}"


def clinician_request_question_id(text: str) -> str:
    return f"clinician-request:{slugify(text)}"


def clinician_request_candidates(requested_items: Iterable[str]) -> List[ClinicalFollowupQuestion]:
    candidates: List[ClinicalFollowupQuestion] = []
    seen = set()
    for raw in requested_items:
        item = (raw or "").strip()
        if not item:
            continue
        question_id = clinician_request_question_id(item)
        if question_id in seen:
            continue
        seen.add(question_id)
        candidates.append(
            ClinicalFollowupQuestion(
                id=question_id,
                question=item if item.endswith("?") else f"{item}?",
                why=CLINICIAN_REQUEST_WHY,
                priority=1,
                source=QuestionSource.CLINICIAN_REQUEST,
                objective_id=infer_objective_id(item),
            )
        )
    return candidates


def reasoning_candidates(structured_data: StructuredIntakeData) -> List[ClinicalFollowupQuestion]:
    if structured_data.reasoning is None:
        return []
    return [
        ClinicalFollowupQuestion(
            id=reasoning_question_id(q.condition_label, q.text),
            question=q.text.strip(),
            why=q.condition_label.strip() or "Gezielte Verlaufsklärung",
            priority=q.priority,
            source=QuestionSource.REASONING,
        )
        for q in structured_data.reasoning.open_questions
        if q.text.strip()
    ]


def gap_rule_candidates(
    objectives: Iterable[ClinicalFollowupObjective],
) -> List[ClinicalFollowupQuestion]:
    missing = {o.id for o in objectives if o.active and o.status == ObjectiveStatus.MISSING}
    return [
        ClinicalFollowupQuestion(
            id=slot.question_id,
            question=slot.question,
            why=slot.why,
            priority=slot.priority,
            source=QuestionSource.GAP_RULE,
            objective_id=slot.objective_id,
        )
        for slot in OBJECTIVE_SLOTS
        if slot.objective_id in missing
    ]


def dedupe_candidates(
    candidates: Iterable[ClinicalFollowupQuestion],
) -> List[ClinicalFollowupQuestion]:
    """
    Drop duplicates by id and by slugified question text. On conflict the
    candidate from the higher-ranked source survives.
    """
    ranked = sorted(candidates, key=lambda c: SOURCE_RANK[c.source])
    seen_ids = set()
    seen_questions = set()
    kept: List[ClinicalFollowupQuestion] = []
    for candidate in ranked:
        question_key = slugify(candidate.question)
        if not question_key:
            continue
        if candidate.id in seen_ids or question_key in seen_questions:
            continue
        seen_ids.add(candidate.id)
        seen_questions.add(question_key)
        kept.append(candidate)
    return kept


def sort_candidates(
    candidates: Iterable[ClinicalFollowupQuestion],
) -> List[ClinicalFollowupQuestion]:
    return sorted(candidates, key=lambda c: (c.priority, SOURCE_RANK[c.source], c.id))


def _compute_followup(
    structured_data: StructuredIntakeData,
    lifecycle: FollowupLifecycle,
    asked_question_ids: List[str],
    extra_candidates: Iterable[ClinicalFollowupQuestion] = (),
    force_state: Optional[LifecycleState] = None,
    now: Optional[datetime] = None,
    max_next_questions: int = MAX_NEXT_QUESTIONS,
    duration_weeks_threshold: float = UC2_DURATION_WEEKS,
) -> ClinicalFollowup:
    now_iso = _iso(now)
    existing = structured_data.followup or ClinicalFollowup()
    excluded_ids = set(asked_question_ids)
    excluded_ids.update(lifecycle.completed_question_ids)
    excluded_ids.update(lifecycle.skipped_question_ids)

    blocked = is_hard_stop(structured_data.safety)
    clinician = pending_clinician_requests(
        [
            *extra_candidates,
            *existing.pending_clinician_requests,
            *existing.next_questions,
            *existing.queue,
        ],
        excluded_ids,
    )
    uc2, reasons = detect_uc2(
        structured_data,
        clinician_request_pending=bool(clinician),
        duration_weeks_threshold=duration_weeks_threshold,
    )

    objectives = build_objectives(
        structured_data,
        blocked_by_safety=blocked,
        uc2_triggered=uc2,
        overrides=existing.objective_state_overrides,
        completed_question_ids=lifecycle.completed_question_ids,
    )
    inactive = {o.id for o in objectives if not o.active}

    held: List[ClinicalFollowupQuestion] = []
    if blocked:
        candidates: List[ClinicalFollowupQuestion] = []
        held = dedupe_candidates(clinician)
    else:
        candidates = dedupe_candidates(
            [*clinician, *reasoning_candidates(structured_data), *gap_rule_candidates(objectives)]
        )
        candidates = sort_candidates(
            c
            for c in candidates
            if c.id not in excluded_ids and c.objective_id not in inactive
        )

    if blocked:
        state = LifecycleState.ACTIVE
    elif force_state is not None:
        state = force_state
    elif not candidates:
        state = LifecycleState.NEEDS_REVIEW if uc2 else LifecycleState.COMPLETED
    elif lifecycle.state == LifecycleState.NEEDS_REVIEW and any(
        c.source == QuestionSource.CLINICIAN_REQUEST for c in candidates
    ):
        state = LifecycleState.NEEDS_REVIEW
    else:
        state = LifecycleState.ACTIVE

    completed_at = None
    if state == LifecycleState.COMPLETED:
        already = lifecycle.state == LifecycleState.COMPLETED and lifecycle.completed_at
        completed_at = lifecycle.completed_at if already else now_iso

    savepoints = build_savepoints(objectives, lifecycle.savepoints, now_iso)
    new_lifecycle = lifecycle.model_copy(
        update={
            "state": state,
            "completed_at": completed_at,
            "savepoints": savepoints,
            "active_block_id": active_block_id(savepoints),
        }
    )

    if blocked:
        readiness_state = ReadinessState.SAFETY_READY
    elif uc2:
        readiness_state = ReadinessState.PROBLEM_READY
    else:
        readiness_state = ReadinessState.VISIT_READY
    if (
        readiness_state == ReadinessState.VISIT_READY
        and state == LifecycleState.COMPLETED
        and all_blocks_completed(savepoints)
    ):
        readiness_state = ReadinessState.PROGRAM_READY

    if state != lifecycle.state:
        logger.info("followup lifecycle %s -> %s", lifecycle.state.value, state.value)
    logger.debug(
        "followup: candidates=%d uc2=%s reasons=%s readiness=%s",
        len(candidates),
        uc2,
        ",".join(reasons) or "-",
        readiness_state.value,
    )

    return ClinicalFollowup(
        next_questions=candidates[:max_next_questions],
        queue=candidates[max_next_questions:],
        asked_question_ids=_unique(
            [
                *asked_question_ids,
                *lifecycle.completed_question_ids,
                *lifecycle.skipped_question_ids,
            ]
        ),
        last_generated_at=now_iso,
        objectives=objectives,
        active_objective_ids=active_objective_ids(objectives),
        objective_state_overrides=dict(existing.objective_state_overrides),
        readiness=FollowupReadiness(
            state=readiness_state,
            uc2_triggered=uc2,
            trigger_reasons=reasons,
        ),
        lifecycle=new_lifecycle,
        pending_clinician_requests=held,
    )


def generate_followup_questions(
    structured_data: StructuredIntakeData,
    now: Optional[datetime] = None,
    max_next_questions: int = MAX_NEXT_QUESTIONS,
    duration_weeks_threshold: float = UC2_DURATION_WEEKS,
) -> ClinicalFollowup:
    existing = structured_data.followup or ClinicalFollowup()
    return _compute_followup(
        structured_data,
        lifecycle=existing.lifecycle,
        asked_question_ids=list(existing.asked_question_ids),
        now=now,
        max_next_questions=max_next_questions,
        duration_weeks_threshold=duration_weeks_threshold,
    )


def merge_clinician_requested_items_into_followup(
    structured_data: StructuredIntakeData,
    requested_items: Iterable[str],
    now: Optional[datetime] = None,
    max_next_questions: int = MAX_NEXT_QUESTIONS,
) -> StructuredIntakeData:
    """Queue reviewer requests as clinician questions; the lifecycle goes to needs_review."""
    existing = structured_data.followup or ClinicalFollowup()
    followup = _compute_followup(
        structured_data,
        lifecycle=existing.lifecycle,
        asked_question_ids=list(existing.asked_question_ids),
        extra_candidates=clinician_request_candidates(requested_items),
        force_state=LifecycleState.NEEDS_REVIEW,
        now=now,
        max_next_questions=max_next_questions,
    )
    return structured_data.model_copy(update={"followup": followup})


def append_asked_question_ids(
    structured_data: StructuredIntakeData,
    asked_question_ids: Iterable[str],
) -> StructuredIntakeData:
    """Record questions as asked without regenerating the queue."""
    existing = structured_data.followup or ClinicalFollowup()
    cleaned = [i.strip() for i in asked_question_ids if isinstance(i, str) and i.strip()]
    followup = existing.model_copy(
        update={"asked_question_ids": _unique([*existing.asked_question_ids, *cleaned])}
    )
    return structured_data.model_copy(update={"followup": followup})


def transition_followup_lifecycle(
    structured_data: StructuredIntakeData,
    action: LifecycleAction,
    question_id: Optional[str] = None,
    now: Optional[datetime] = None,
    max_next_questions: int = MAX_NEXT_QUESTIONS,
) -> StructuredIntakeData:
    action = LifecycleAction(action)
    question_id = (question_id or "").strip() or None
    if action in (LifecycleAction.SKIP, LifecycleAction.COMPLETE) and question_id is None:
        return structured_data

    now = now or datetime.now(timezone.utc)
    existing = structured_data.followup or ClinicalFollowup()
    lifecycle = existing.lifecycle
    asked = list(existing.asked_question_ids)

    if question_id is not None:
        asked = _unique([*asked, question_id])
        if action == LifecycleAction.SKIP:
            lifecycle = lifecycle.model_copy(
                update={
                    "skipped_question_ids": _unique(
                        [*lifecycle.skipped_question_ids, question_id]
                    )
                }
            )
        elif action == LifecycleAction.COMPLETE:
            lifecycle = lifecycle.model_copy(
                update={
                    "completed_question_ids": _unique(
                        [*lifecycle.completed_question_ids, question_id]
                    )
                }
            )

    followup = _compute_followup(
        structured_data,
        lifecycle=lifecycle,
        asked_question_ids=asked,
        force_state=LifecycleState.ACTIVE if action == LifecycleAction.RESUME else None,
        now=now,
        max_next_questions=max_next_questions,
    )
    if action == LifecycleAction.RESUME:
        followup = followup.model_copy(
            update={
                "lifecycle": followup.lifecycle.model_copy(update={"resumed_at": _iso(now)})
            }
        )
    return structured_data.model_copy(update={"followup": followup})
