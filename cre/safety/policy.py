# cre/safety/policy.py
"""
Safety policy engine.

Maps verified triggered rules to one escalation level, chat action, studio
badge and patient banner. Policies are layered (base -> organization ->
funnel) by a single pure merge.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError

from cre.safety.schema import (
    PolicyDefaults,
    RulePolicyOverride,
    SafetyPolicy,
    SafetyPolicyPatch,
    SafetyPolicyResult,
    SafetyTriggeredRule,
)
from cre.states import ACTION_RANK, LEVEL_RANK, ChatAction, EscalationLevel
from cre.utils.validation import ValidationOutcome, issues_from_error

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_POLICY = SafetyPolicy()

PolicyLayer = Union[SafetyPolicyPatch, SafetyPolicy, dict, None]


def _as_patch(layer: PolicyLayer) -> Optional[SafetyPolicyPatch]:
    if layer is None:
        return None
    if isinstance(layer, SafetyPolicyPatch):
        return layer
    if isinstance(layer, SafetyPolicy):
        return SafetyPolicyPatch(
            version=layer.version,
            defaults=layer.defaults.model_dump(mode="json"),
            rules=layer.rules,
        )
    return SafetyPolicyPatch.model_validate(layer)


def merge_safety_policy(
    base: SafetyPolicy,
    org: PolicyLayer = None,
    funnel: PolicyLayer = None,
) -> SafetyPolicy:
    """
    Resolve one policy from base, organization and funnel layers.

    Defaults are merged key by key within each mapping; the per-rule map is
    merged last, field by field, so a funnel can change only the banner of a
    rule the organization re-leveled. Inputs are never modified.
    """
    defaults = base.defaults.model_dump(mode="json")
    rules = {
        rule_id: override.model_dump(exclude_none=True)
        for rule_id, override in base.rules.items()
    }
    version = base.version

    layers = [patch for patch in (_as_patch(org), _as_patch(funnel)) if patch is not None]
    for patch in layers:
        if patch.version:
            version = patch.version
        for section, mapping in patch.defaults.items():
            merged = dict(defaults.get(section, {}))
            merged.update(mapping)
            defaults[section] = merged

    for patch in layers:
        for rule_id, override in patch.rules.items():
            merged_rule = dict(rules.get(rule_id, {}))
            merged_rule.update(override.model_dump(exclude_none=True))
            rules[rule_id] = merged_rule

    return SafetyPolicy(
        version=version,
        defaults=PolicyDefaults.model_validate(defaults),
        rules={
            rule_id: RulePolicyOverride.model_validate(values)
            for rule_id, values in rules.items()
        },
    )


def _rule_override(policy: SafetyPolicy, rule: SafetyTriggeredRule) -> RulePolicyOverride:
    return (
        policy.rules.get(rule.rule_id)
        or policy.rules.get(rule.finding_id)
        or RulePolicyOverride()
    )


def apply_safety_policy(
    rules: Iterable[SafetyTriggeredRule],
    policy: SafetyPolicy = DEFAULT_SAFETY_POLICY,
) -> SafetyPolicyResult:
    verified = []
    for rule in rules:
        if rule.verified:
            verified.append(rule)
        else:
            logger.warning("dropping unverified rule %s before policy", rule.rule_id)

    result_level: Optional[EscalationLevel] = None
    result_action = ChatAction.NONE
    badge: Optional[str] = None
    banner: Optional[str] = None

    defaults = policy.defaults
    for rule in sorted(verified, key=lambda r: r.rule_id):
        override = _rule_override(policy, rule)
        level = override.level or defaults.severity_to_level.get(rule.severity, rule.severity)
        action = override.action or defaults.level_to_action.get(level, ChatAction.NONE)

        if LEVEL_RANK[level] > LEVEL_RANK[result_level]:
            result_level = level
            badge = override.studio_badge or defaults.level_to_badge.get(level)
        if ACTION_RANK[action] > ACTION_RANK[result_action]:
            result_action = action
            banner = override.patient_banner or defaults.action_to_banner.get(action) or None

    return SafetyPolicyResult(
        policy_version=policy.version,
        escalation_level=result_level,
        chat_action=result_action,
        studio_badge=badge,
        patient_banner=banner,
    )


def validate_safety_policy(payload: Any) -> ValidationOutcome:
    """Validate a full policy document (as stored in the config store)."""
    if not isinstance(payload, dict):
        return ValidationOutcome.failure(
            "invalid_policy", "Safety policy must be a JSON object."
        )
    try:
        policy = SafetyPolicy.model_validate(payload)
    except ValidationError as exc:
        return ValidationOutcome.failure(
            "invalid_policy",
            "Safety policy failed validation.",
            issues_from_error(exc),
        )

    issues = []
    if not policy.version.strip():
        issues.append("version: must not be empty")
    for level in EscalationLevel:
        if level not in policy.defaults.level_to_action:
            issues.append(f"defaults.level_to_action: missing level {level.value}")
    if issues:
        return ValidationOutcome.failure(
            "invalid_policy", "Safety policy is incomplete.", issues
        )
    return ValidationOutcome.success(policy)
