# cre/services/clinical_state.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from cre.config import Settings, get_settings
from cre.followup.generator import generate_followup_questions
from cre.intake.schema import ChatMessage, StructuredIntakeData
from cre.reasoning.config import ClinicalReasoningConfig
from cre.reasoning.engine import generate_reasoning_pack
from cre.safety.override import build_effective_safety, validate_policy_override
from cre.safety.policy import apply_safety_policy
from cre.safety.red_flags import evaluate_red_flags
from cre.safety.schema import PolicyOverride, SafetyPolicy, SafetyState
from cre.services.config_store import ConfigStore
from cre.utils.exceptions import InvalidConfigError

logger = logging.getLogger(__name__)


class ClinicalStateService:
    """
    Service that coordinates:
      - red flag evaluation and the layered safety policy
      - clinician overrides
      - the reasoning pack (active reasoning config)
      - follow-up questions and lifecycle
    and returns a new StructuredIntakeData carrying all of it.
    """

    def __init__(self, store: Optional[ConfigStore] = None, settings: Optional[Settings] = None):
        self.store = store or ConfigStore()
        self.settings = settings or get_settings()

    def evaluate_safety(
        self,
        intake: StructuredIntakeData,
        messages: Iterable[ChatMessage] = (),
        intake_id: Optional[str] = None,
        override: Optional[PolicyOverride] = None,
        organization_id: Optional[str] = None,
        funnel_id: Optional[str] = None,
        policy: Optional[SafetyPolicy] = None,
    ) -> SafetyState:
        evaluation = evaluate_red_flags(
            intake,
            messages=messages,
            intake_id=intake_id,
            policy_version=self.settings.safety_policy_version,
        )
        if policy is None:
            policy = self.store.load_safety_policy(organization_id, funnel_id)
        policy_result = apply_safety_policy(
            [rule for rule in evaluation.triggered_rules if rule.verified], policy
        )
        return build_effective_safety(evaluation, policy_result, override)

    def compute_clinical_state(
        self,
        intake: StructuredIntakeData,
        messages: Iterable[ChatMessage] = (),
        intake_id: Optional[str] = None,
        now: Optional[datetime] = None,
        override: Optional[PolicyOverride] = None,
        organization_id: Optional[str] = None,
        funnel_id: Optional[str] = None,
        policy: Optional[SafetyPolicy] = None,
        reasoning_config: Optional[ClinicalReasoningConfig] = None,
    ) -> StructuredIntakeData:
        safety = self.evaluate_safety(
            intake,
            messages=messages,
            intake_id=intake_id,
            override=override,
            organization_id=organization_id,
            funnel_id=funnel_id,
            policy=policy,
        )
        updated = intake.model_copy(
            update={"safety": safety, "red_flags": [f.id for f in safety.red_flags]}
        )
        logger.info(
            "safety evaluated: level=%s action=%s rules=%s",
            safety.effective_level.value if safety.effective_level else None,
            safety.effective_action.value if safety.effective_action else None,
            ",".join(safety.rule_ids) or "-",
        )
        return self._derive(updated, now=now, reasoning_config=reasoning_config)

    def apply_override(
        self,
        intake: StructuredIntakeData,
        override: PolicyOverride,
        now: Optional[datetime] = None,
    ) -> StructuredIntakeData:
        """Re-resolve the effective safety state of an evaluated intake with `override`."""
        if intake.safety is None or intake.safety.policy_result is None:
            raise InvalidConfigError(
                "Intake has no safety evaluation to override",
                issues=["safety.policy_result is missing"],
            )
        outcome = validate_policy_override(override)
        if not outcome.ok:
            raise InvalidConfigError(outcome.message or "Invalid override", issues=outcome.issues)

        safety = build_effective_safety(intake.safety, intake.safety.policy_result, override)
        return self._derive(intake.model_copy(update={"safety": safety}), now=now)

    def _derive(
        self,
        intake: StructuredIntakeData,
        now: Optional[datetime] = None,
        reasoning_config: Optional[ClinicalReasoningConfig] = None,
    ) -> StructuredIntakeData:
        if reasoning_config is not None:
            config, version = reasoning_config, None
        else:
            config, version = self.store.get_active_reasoning_config()

        reasoning = generate_reasoning_pack(intake, config=config, config_version=version)
        with_reasoning = intake.model_copy(update={"reasoning": reasoning})
        followup = generate_followup_questions(
            with_reasoning,
            now=now,
            max_next_questions=self.settings.followup_max_next_questions,
            duration_weeks_threshold=self.settings.uc2_duration_weeks,
        )
        return with_reasoning.model_copy(update={"followup": followup})
