"""
Unit Tests for the Differential Reasoning Engine

Tests for risk scoring, differential matching, open questions, config
selection/validation and the sandbox comparison.
"""
import pytest

from cre.reasoning.adapter import GP_ADAPTER_V1
from cre.reasoning.config import (
    SEED_REASONING_CONFIG,
    ClinicalReasoningConfig,
    ReasoningConfigVersion,
    select_active_reasoning_config,
    validate_reasoning_config,
)
from cre.reasoning.engine import (
    NO_DIFFERENTIAL_NOTE,
    chronicity_signal,
    compare_reasoning_packs,
    escalate_likelihood,
    gather_evidence_text,
    generate_reasoning_pack,
)
from cre.safety.schema import SafetyState, SafetyTriggeredRule
from cre.states import EscalationLevel, Likelihood


def _verified_rule(finding_id, severity=EscalationLevel.B):
    return SafetyTriggeredRule(
        rule_id=f"SFTY-2.1-R-{finding_id}",
        finding_id=finding_id,
        title=finding_id,
        severity=severity,
        level=severity,
        verified=True,
        qualified=True,
        policy_version="2.1",
    )


def _labels(pack):
    return [d.label for d in pack.differentials]


class TestSignals:
    @pytest.mark.parametrize(
        "duration,expected",
        [
            ("seit 3 Monaten", 2),
            ("seit einem Jahr", 2),
            ("2 Wochen", 2),
            ("seit 4 Tagen", 1),
            ("seit heute morgen", 0),
            (None, 0),
        ],
    )
    def test_chronicity_signal(self, make_intake, duration, expected):
        assert chronicity_signal(make_intake(hpi={"duration": duration})) == expected

    def test_evidence_text_joins_fields(self, make_intake):
        intake = make_intake(
            chief_complaint="Husten",
            hpi={"onset": "seit Montag"},
            medication=["Ibuprofen"],
        )
        assert gather_evidence_text(intake) == "Husten | seit Montag | Ibuprofen"

    def test_escalate_likelihood_is_clamped(self):
        assert escalate_likelihood(Likelihood.MEDIUM, 1) == Likelihood.HIGH
        assert escalate_likelihood(Likelihood.HIGH, 1) == Likelihood.HIGH
        assert escalate_likelihood(Likelihood.LOW, -1) == Likelihood.LOW


class TestRiskEstimation:
    def test_empty_intake(self, make_intake):
        pack = generate_reasoning_pack(make_intake())

        assert pack.risk_estimation.score == 0
        assert pack.risk_estimation.level == Likelihood.LOW
        assert pack.differentials == []
        assert pack.uncertainties == [NO_DIFFERENTIAL_NOTE]
        assert pack.config_version is None
        assert pack.adapter.domain == "gp"

    def test_score_components(self, make_intake):
        intake = make_intake(
            chief_complaint="Herzrasen mit Angst",
            hpi={"duration": "seit 3 Monaten"},
        ).model_copy(
            update={
                "safety": SafetyState(
                    triggered_rules=[
                        _verified_rule("SYNCOPE"),
                        _verified_rule("SEVERE_PALPITATIONS"),
                        _verified_rule("UNCERTAINTY_HIGH", EscalationLevel.C),
                    ]
                )
            }
        )
        pack = generate_reasoning_pack(intake)

        components = pack.risk_estimation.components
        assert components.verified_red_flags == 2
        assert components.chronicity_signal == 2
        assert components.anxiety_signal == 1
        assert pack.risk_estimation.score == 9
        assert pack.risk_estimation.level == Likelihood.HIGH

    def test_high_without_red_flags_is_capped_at_medium(self, make_intake):
        config = ClinicalReasoningConfig.model_validate(
            {"risk_weighting": {"chronicity_weight": 10}}
        )
        pack = generate_reasoning_pack(
            make_intake(hpi={"duration": "2 Wochen"}), config=config
        )

        assert pack.risk_estimation.score == 20
        assert pack.risk_estimation.level == Likelihood.MEDIUM

    def test_safety_level_a_forces_high(self, make_intake):
        intake = make_intake(chief_complaint="Stress").model_copy(
            update={"safety": SafetyState(effective_level=EscalationLevel.A)}
        )
        pack = generate_reasoning_pack(intake)

        assert pack.risk_estimation.level == Likelihood.HIGH
        assert pack.safety_alignment.blocked_by_safety is True
        assert pack.safety_alignment.effective_level == EscalationLevel.A
        # low prior, stepped up once because risk is high
        assert pack.differentials[0].likelihood == Likelihood.MEDIUM

    def test_contradictions_become_conflicts(self, make_intake):
        intake = make_intake().model_copy(
            update={"safety": SafetyState(contradictions_present=True)}
        )
        pack = generate_reasoning_pack(intake)
        assert [c.code for c in pack.conflicts] == ["safety_contradictions_present"]


class TestDifferentials:
    def test_panic_like_episode(self, make_intake):
        pack = generate_reasoning_pack(make_intake(chief_complaint="Herzrasen und Angst"))

        assert _labels(pack) == ["Panic-like autonomic episode"]
        assert pack.differentials[0].matched_triggers == ["herzrasen", "angst"]
        assert pack.differentials[0].likelihood == Likelihood.MEDIUM

    def test_exclusion_suppresses_differential(self, make_intake):
        pack = generate_reasoning_pack(
            make_intake(chief_complaint="Brustschmerz mit Ausstrahlung in den Arm")
        )
        assert "Musculoskeletal chest pain" not in _labels(pack)

    def test_required_term(self, make_intake):
        pack = generate_reasoning_pack(make_intake(chief_complaint="Verspannung im Ruecken"))
        assert "Musculoskeletal chest pain" not in _labels(pack)

        pack = generate_reasoning_pack(
            make_intake(chief_complaint="Verspannung und Schmerz im Ruecken")
        )
        assert "Musculoskeletal chest pain" in _labels(pack)

    def test_sorted_by_likelihood_then_template_order(self, make_intake):
        pack = generate_reasoning_pack(
            make_intake(chief_complaint="Husten, Stress und Herzrasen")
        )
        assert _labels(pack) == [
            "Panic-like autonomic episode",
            "Stress reactivity",
            "Viral respiratory syndrome",
        ]


class TestOpenQuestions:
    def test_questions_follow_matched_differentials(self, make_intake):
        pack = generate_reasoning_pack(make_intake(chief_complaint="Herzrasen und Angst"))

        assert {q.condition_label for q in pack.open_questions} == {
            "Panic-like autonomic episode"
        }
        assert pack.open_questions[0].text == "Wie lange dauert eine typische Episode?"
        assert [q.priority for q in pack.open_questions] == sorted(
            q.priority for q in pack.open_questions
        )
        # two config templates + two adapter library entries
        assert len(pack.open_questions) == 4

    def test_duplicates_are_removed(self, make_intake):
        config = SEED_REASONING_CONFIG.model_copy(
            update={
                "open_question_templates": SEED_REASONING_CONFIG.open_question_templates
                + SEED_REASONING_CONFIG.open_question_templates
            }
        )
        pack = generate_reasoning_pack(
            make_intake(chief_complaint="Herzrasen und Angst"), config=config
        )
        assert len(pack.open_questions) == 4


class TestConfigSelection:
    def _version(self, number, status):
        return ReasoningConfigVersion(
            version=number,
            status=status,
            config=ClinicalReasoningConfig(),
        )

    def test_highest_active_version_wins(self):
        config, version = select_active_reasoning_config(
            [self._version(1, "active"), self._version(3, "active"), self._version(4, "draft")]
        )
        assert version == 3
        assert config == ClinicalReasoningConfig()

    def test_seed_when_nothing_active(self):
        config, version = select_active_reasoning_config([self._version(1, "archived")])
        assert config is SEED_REASONING_CONFIG
        assert version is None

    def test_version_is_reported_on_pack(self, make_intake):
        pack = generate_reasoning_pack(make_intake(), config_version=7)
        assert pack.config_version == 7
        assert pack.adapter == GP_ADAPTER_V1.metadata()


class TestValidateReasoningConfig:
    def test_seed_is_valid(self):
        assert validate_reasoning_config(SEED_REASONING_CONFIG.model_dump(mode="json")).ok

    def test_weight_out_of_range(self):
        outcome = validate_reasoning_config({"risk_weighting": {"red_flag_weight": 20}})

        assert outcome.ok is False
        assert outcome.error_code == "invalid_reasoning_config"
        assert outcome.issues[0].startswith("risk_weighting.red_flag_weight")

    def test_duplicate_labels_and_missing_triggers(self):
        outcome = validate_reasoning_config(
            {
                "differential_templates": [
                    {"label": "Migraene", "trigger_terms": ["kopfschmerz"]},
                    {"label": "migraene", "trigger_terms": []},
                ]
            }
        )

        assert outcome.ok is False
        assert len(outcome.issues) == 2

    def test_non_object(self):
        assert validate_reasoning_config(None).ok is False


class TestCompareReasoningPacks:
    def test_diff_against_draft(self, make_intake):
        intake = make_intake(chief_complaint="Herzrasen und Stress")
        draft = ClinicalReasoningConfig.model_validate(
            {
                "differential_templates": [
                    {"label": "Stress reactivity", "trigger_terms": ["stress"]},
                    {"label": "Cardiac arrhythmia", "trigger_terms": ["herzrasen"]},
                ]
            }
        )
        active = generate_reasoning_pack(intake)
        selected = generate_reasoning_pack(intake, config=draft)

        diff = compare_reasoning_packs(active, selected)
        assert diff["risk_level_changed"] is False
        assert diff["active_only_differentials"] == ["Panic-like autonomic episode"]
        assert diff["selected_only_differentials"] == ["Cardiac arrhythmia"]
        assert diff["open_question_count_delta"] < 0
