"""
Unit Tests for the clinical state pipeline service
"""
import pytest

from cre.reasoning.config import ClinicalReasoningConfig
from cre.safety.schema import PolicyOverride, SafetyPolicy
from cre.services import ClinicalStateService, ConfigKind
from cre.states import ChatAction, EscalationLevel, Likelihood, ReadinessState
from cre.utils.exceptions import InvalidConfigError


@pytest.fixture
def service(store) -> ClinicalStateService:
    return ClinicalStateService(store=store)


class TestComputeClinicalState:
    def test_hard_stop_pipeline(self, service, make_intake, now):
        intake = make_intake(
            chief_complaint="Brustschmerz seit 30 Minuten",
            hpi={"duration": "30 Minuten"},
        )
        result = service.compute_clinical_state(intake, intake_id="intake-1", now=now)

        assert result.safety.escalation_level == EscalationLevel.A
        assert result.safety.effective_level == EscalationLevel.A
        assert result.safety.effective_action == ChatAction.HARD_STOP
        assert result.red_flags == ["CHEST_PAIN_PROLONGED"]
        assert result.reasoning.risk_estimation.level == Likelihood.HIGH
        assert result.reasoning.safety_alignment.blocked_by_safety is True
        assert result.followup.readiness.state == ReadinessState.SAFETY_READY
        assert result.followup.next_questions == []
        assert intake.safety is None

    def test_routine_intake(self, service, make_intake, messages, now):
        result = service.compute_clinical_state(
            make_intake(chief_complaint="Herzrasen und Angst"),
            messages=messages("Ich habe oft Herzrasen und Angst"),
            now=now,
        )

        assert result.safety.effective_level is None
        assert result.safety.effective_action == ChatAction.NONE
        assert [d.label for d in result.reasoning.differentials] == [
            "Panic-like autonomic episode"
        ]
        assert result.followup.next_questions[0].id == (
            "reasoning:panic-like-autonomic-episode:wie-lange-dauert-eine-typische-episode"
        )

    def test_uses_active_reasoning_config(self, service, store, make_intake, now):
        draft = store.create_draft(
            ConfigKind.REASONING,
            {"differential_templates": [{"label": "Cephalgia", "trigger_terms": ["kopf"]}]},
        )
        store.activate(draft.id)

        result = service.compute_clinical_state(make_intake(chief_complaint="Kopfweh"), now=now)
        assert result.reasoning.config_version == 1
        assert [d.label for d in result.reasoning.differentials] == ["Cephalgia"]

    def test_explicit_policy_and_config(self, service, make_intake, messages, now):
        policy = SafetyPolicy.model_validate({"rules": {"SYNCOPE": {"action": "hard_stop"}}})
        result = service.compute_clinical_state(
            make_intake(),
            messages=messages("Ich bin gestern umgekippt"),
            now=now,
            policy=policy,
            reasoning_config=ClinicalReasoningConfig(),
        )

        assert result.safety.effective_level == EscalationLevel.B
        assert result.safety.effective_action == ChatAction.HARD_STOP
        assert result.reasoning.differentials == []
        assert result.followup.readiness.state == ReadinessState.SAFETY_READY

    def test_deterministic(self, service, make_intake, messages, now):
        intake = make_intake(chief_complaint="Husten seit 3 Monaten")
        chat = messages("Husten und Fieber")

        first = service.compute_clinical_state(intake, messages=chat, now=now)
        second = service.compute_clinical_state(intake, messages=chat, now=now)
        assert first.model_dump_json() == second.model_dump_json()


class TestApplyOverride:
    def test_override_escalates(self, service, make_intake, messages, now):
        evaluated = service.compute_clinical_state(
            make_intake(), messages=messages("Herzrasen und ich bin umgekippt"), now=now
        )
        assert evaluated.safety.effective_level == EscalationLevel.B

        override = PolicyOverride(
            override_level=EscalationLevel.A,
            override_action=ChatAction.HARD_STOP,
            reason="clinical judgment",
        )
        result = service.apply_override(evaluated, override, now=now)

        assert result.safety.effective_level == EscalationLevel.A
        assert result.safety.effective_action == ChatAction.HARD_STOP
        assert result.safety.policy_result.escalation_level == EscalationLevel.B
        assert result.safety.override == override
        assert result.followup.readiness.state == ReadinessState.SAFETY_READY

    def test_override_needs_reason(self, service, make_intake, now):
        evaluated = service.compute_clinical_state(make_intake(), now=now)
        with pytest.raises(InvalidConfigError):
            service.apply_override(evaluated, PolicyOverride(override_level=EscalationLevel.A))

    def test_override_needs_evaluation(self, service, make_intake):
        with pytest.raises(InvalidConfigError):
            service.apply_override(
                make_intake(),
                PolicyOverride(override_level=EscalationLevel.A, reason="x"),
            )
