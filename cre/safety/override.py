# cre/safety/override.py
from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from cre.safety.schema import (
    EffectiveSafetyState,
    PolicyOverride,
    SafetyEvaluation,
    SafetyPolicyResult,
    SafetyState,
)
from cre.states import ChatAction, EscalationLevel
from cre.utils.validation import ValidationOutcome, issues_from_error

logger = logging.getLogger(__name__)


def validate_policy_override(payload: Any) -> ValidationOutcome:
    """
    A clinician override needs a reason whenever it changes anything.
    Never raises.
    """
    if isinstance(payload, PolicyOverride):
        override = payload
    else:
        try:
            override = PolicyOverride.model_validate(payload or {})
        except ValidationError as exc:
            return ValidationOutcome.failure(
                "invalid_override",
                "Override failed validation.",
                issues_from_error(exc),
            )

    changes_something = (
        override.override_level is not None or override.override_action is not None
    )
    if changes_something and not (override.reason or "").strip():
        return ValidationOutcome.failure(
            "override_reason_required",
            "reason is required when override_level or override_action is set.",
        )
    return ValidationOutcome.success(override)


def get_effective_safety_state(
    policy_result: SafetyPolicyResult,
    override: Optional[PolicyOverride] = None,
) -> EffectiveSafetyState:
    """Each axis is replaced by the override independently, never blended."""
    if override is not None and not validate_policy_override(override).ok:
        logger.warning("ignoring override without reason")
        override = None

    level = policy_result.escalation_level
    action = policy_result.chat_action
    applied = False
    if override is not None:
        if override.override_level is not None:
            level = override.override_level
            applied = True
        if override.override_action is not None:
            action = override.override_action
            applied = True

    return EffectiveSafetyState(
        escalation_level=level,
        chat_action=action,
        override_applied=applied,
    )


def build_effective_safety(
    evaluation: SafetyEvaluation,
    policy_result: SafetyPolicyResult,
    override: Optional[PolicyOverride] = None,
) -> SafetyState:
    effective = get_effective_safety_state(policy_result, override)
    effective_result = policy_result.model_copy(
        update={
            "escalation_level": effective.escalation_level,
            "chat_action": effective.chat_action,
        }
    )
    if effective.override_applied:
        logger.info(
            "override applied: level %s -> %s, action %s -> %s",
            policy_result.escalation_level.value if policy_result.escalation_level else None,
            effective.escalation_level.value if effective.escalation_level else None,
            policy_result.chat_action.value,
            effective.chat_action.value,
        )

    base = evaluation.model_dump(include=set(SafetyEvaluation.model_fields))
    return SafetyState.model_validate(
        {
            **base,
            "policy_result": policy_result,
            "effective_policy_result": effective_result,
            "effective_level": effective.escalation_level,
            "effective_action": effective.chat_action,
            "override": override if effective.override_applied else None,
        }
    )


def effective_level_of(safety: Optional[SafetyState]) -> Optional[EscalationLevel]:
    """Effective level, falling back to the policy result and the raw evaluation."""
    if safety is None:
        return None
    if safety.effective_level is not None:
        return safety.effective_level
    if safety.effective_policy_result is not None:
        return safety.effective_policy_result.escalation_level
    if safety.policy_result is not None:
        return safety.policy_result.escalation_level
    return safety.escalation_level


def effective_action_of(safety: Optional[SafetyState]) -> ChatAction:
    if safety is None:
        return ChatAction.NONE
    if safety.effective_action is not None:
        return safety.effective_action
    if safety.effective_policy_result is not None:
        return safety.effective_policy_result.chat_action
    if safety.policy_result is not None:
        return safety.policy_result.chat_action
    return ChatAction.NONE


def is_hard_stop(safety: Optional[SafetyState]) -> bool:
    return (
        effective_level_of(safety) == EscalationLevel.A
        or effective_action_of(safety) == ChatAction.HARD_STOP
    )
