"""
Unit Tests for the Red Flag Rule Evaluator

Tests for evidence verification, rule tuning, composite rules,
contradictions and the summary line.
"""
import pytest

from cre.safety.catalog import SAFETY_QUESTIONS_LEVEL_C, ClinicalRedFlag
from cre.safety.red_flags import (
    CHEST_PAIN_PROLONGED,
    UNCERTAINTY_HIGH,
    evaluate_red_flags,
    extract_duration_minutes,
    format_safety_summary_line,
)
from cre.safety.tuning import ExclusionMode, RuleTuning, apply_tuning
from cre.states import EscalationLevel, EvidenceSource


def _rule(evaluation, finding_id):
    return next(r for r in evaluation.triggered_rules if r.finding_id == finding_id)


def _finding_ids(evaluation):
    return [f.id for f in evaluation.red_flags]


class TestScenarios:
    """Reference scenarios for the evaluator."""

    def test_prolonged_chest_pain_from_intake(self, make_intake):
        """Chief complaint + HPI duration traceable to the intake escalate to A."""
        data = make_intake(
            chief_complaint="Brustschmerz seit 30 Minuten",
            hpi={"duration": "30 Minuten"},
        )
        evaluation = evaluate_red_flags(data, intake_id="intake-1")

        assert evaluation.escalation_level == EscalationLevel.A
        assert CHEST_PAIN_PROLONGED in _finding_ids(evaluation)
        assert "SFTY-2.1-R-CHEST-PAIN-20M" in evaluation.rule_ids
        assert evaluation.red_flag_present is True

    def test_prolonged_chest_pain_from_chat(self, make_intake, messages):
        data = make_intake()
        evaluation = evaluate_red_flags(
            data, messages("Ich habe Brustschmerz seit 30 Minuten.")
        )

        assert evaluation.escalation_level == EscalationLevel.A
        finding = next(f for f in evaluation.red_flags if f.id == CHEST_PAIN_PROLONGED)
        assert finding.evidence_message_ids == ["msg-1"]
        # the plain chest pain rule has no qualifier and stays under review
        assert _rule(evaluation, "CHEST_PAIN").level == "needs_review"

    def test_palpitations_with_syncope(self, make_intake, messages):
        evaluation = evaluate_red_flags(
            make_intake(), messages("Herzrasen und ich bin umgekippt")
        )

        assert evaluation.escalation_level == EscalationLevel.B
        assert _finding_ids(evaluation) == ["SYNCOPE", "SEVERE_PALPITATIONS"]


class TestEvidenceRequirement:
    """A pattern hit without traceable evidence never becomes a finding."""

    def test_intake_text_without_intake_id_is_unverified(self, make_intake):
        evaluation = evaluate_red_flags(make_intake(chief_complaint="Atemnot"))

        rule = _rule(evaluation, "SEVERE_DYSPNEA")
        assert rule.verified is False
        assert rule.level == "needs_review"
        assert evaluation.red_flags == []
        assert evaluation.escalation_level is None
        assert evaluation.rule_ids == []

    def test_intake_text_with_intake_id_is_verified(self, make_intake):
        evaluation = evaluate_red_flags(
            make_intake(chief_complaint="Starke Atemnot"), intake_id="intake-1"
        )

        rule = _rule(evaluation, "SEVERE_DYSPNEA")
        assert rule.verified is True
        assert rule.evidence[0].source == EvidenceSource.INTAKE
        assert rule.evidence[0].field_path == "chief_complaint"

    def test_claimed_duration_without_evidence(self, make_intake, messages):
        data = make_intake(hpi={"duration": "seit 45 Minuten"})
        evaluation = evaluate_red_flags(data, messages("Ich habe Brustschmerz"))

        rule = _rule(evaluation, CHEST_PAIN_PROLONGED)
        assert rule.verified is False
        assert rule.level == "needs_review"
        assert evaluation.escalation_level is None

    def test_evidence_items_point_at_messages(self, make_intake, messages):
        evaluation = evaluate_red_flags(
            make_intake(), messages("Hallo", "Ich will mich umbringen.")
        )

        finding = evaluation.red_flags[0]
        assert finding.evidence_message_ids == ["msg-2"]
        assert finding.evidence[0].excerpt == "ich will mich umbringen."

    def test_only_allowlisted_findings(self, make_intake, messages):
        evaluation = evaluate_red_flags(
            make_intake(chief_complaint="Notfall, starke Atemnot"),
            messages("Brustschmerz seit 40 Minuten, akut", "Ich bin ohnmaechtig geworden"),
            intake_id="intake-1",
        )
        allowed = {flag.value for flag in ClinicalRedFlag} | {
            CHEST_PAIN_PROLONGED,
            UNCERTAINTY_HIGH,
        }
        assert evaluation.red_flags
        assert set(_finding_ids(evaluation)) <= allowed


class TestTuning:
    """Qualifiers, exclusions and A-level downgrades."""

    def test_suicidal_ideation_without_plan_is_downgraded(self, make_intake, messages):
        evaluation = evaluate_red_flags(
            make_intake(),
            messages("Ich habe Suizidgedanken und fühle mich hoffnungslos."),
        )

        rule = _rule(evaluation, "SUICIDAL_IDEATION")
        assert rule.downgraded is True
        assert rule.severity == EscalationLevel.B
        assert rule.verified is False
        assert rule.level == "needs_review"
        assert evaluation.red_flags == []
        assert evaluation.escalation_level is None
        assert evaluation.rule_ids == []

    def test_unqualified_dyspnea_is_not_escalated(self, make_intake, messages):
        evaluation = evaluate_red_flags(make_intake(), messages("Ich habe Atemnot"))

        rule = _rule(evaluation, "SEVERE_DYSPNEA")
        assert rule.downgraded is True
        assert rule.verified is False
        assert evaluation.escalation_level is None

    def test_suicidal_ideation_with_intent_is_level_a(self, make_intake, messages):
        evaluation = evaluate_red_flags(make_intake(), messages("Ich will mich umbringen."))

        assert _rule(evaluation, "SUICIDAL_IDEATION").downgraded is False
        assert evaluation.escalation_level == EscalationLevel.A

    def test_severe_dyspnea_is_level_a(self, make_intake, messages):
        evaluation = evaluate_red_flags(make_intake(), messages("Ich habe starke Atemnot"))
        assert evaluation.escalation_level == EscalationLevel.A

    def test_palpitations_from_anxiety_need_review(self, make_intake, messages):
        evaluation = evaluate_red_flags(
            make_intake(), messages("Herzrasen vor Angst und Stress")
        )

        assert _rule(evaluation, "SEVERE_PALPITATIONS").level == "needs_review"
        assert evaluation.escalation_level is None

    def test_unqualified_chest_pain_needs_review(self, make_intake, messages):
        evaluation = evaluate_red_flags(make_intake(), messages("Brustschmerzen, unangenehm"))

        assert _rule(evaluation, "CHEST_PAIN").level == "needs_review"
        assert evaluation.escalation_level is None
        assert "Nicht verifizierte Treffer erfordern Pruefung." in evaluation.quality.notes

    def test_qualified_chest_pain_is_level_b(self, make_intake, messages):
        evaluation = evaluate_red_flags(
            make_intake(), messages("Akute Brustschmerzen mit Ausstrahlung in den Arm")
        )

        assert _rule(evaluation, "CHEST_PAIN").verified is True
        assert evaluation.escalation_level == EscalationLevel.B

    def test_tuning_override_replaces_default(self, make_intake, messages):
        evaluation = evaluate_red_flags(
            make_intake(),
            messages("Ich habe Brustschmerz"),
            tuning_overrides={"CHEST_PAIN": RuleTuning()},
        )
        assert evaluation.escalation_level == EscalationLevel.B

    def test_apply_tuning_always_drops_excluded_texts(self):
        tuning = RuleTuning(exclusions=["keine ohnmacht"])
        outcome = apply_tuning(tuning, ["keine ohnmacht gehabt", "bin umgekippt"])

        assert outcome.kept_texts == ("bin umgekippt",)
        assert outcome.qualified is True
        assert outcome.excluded is False

    def test_apply_tuning_only_if_unqualified(self):
        tuning = RuleTuning(
            any_of=[["schwindel"]],
            exclusions=["angst"],
            exclusion_mode=ExclusionMode.ONLY_IF_UNQUALIFIED,
        )

        qualified = apply_tuning(tuning, ["herzrasen mit schwindel und angst"])
        assert qualified.qualified is True

        unqualified = apply_tuning(tuning, ["herzrasen vor angst"])
        assert unqualified.qualified is False
        assert unqualified.excluded is True
        assert "excluded_unqualified" in unqualified.reasons

    def test_any_of_group_must_match_in_one_text(self):
        tuning = RuleTuning(any_of=[["druck", "arm"]])

        assert apply_tuning(tuning, ["druck", "arm"]).qualified is False
        assert apply_tuning(tuning, ["druck bis in den arm"]).qualified is True

    def test_all_of_terms_may_span_texts(self):
        tuning = RuleTuning(all_of=["druck", "arm"])
        assert apply_tuning(tuning, ["druck", "arm"]).qualified is True

    def test_all_of_override_through_evaluator(self, make_intake, messages):
        overrides = {"SYNCOPE": RuleTuning(all_of=["schwindel", "sturz"])}

        evaluation = evaluate_red_flags(
            make_intake(),
            messages(
                "Ich bin umgekippt, mir war schwindelig",
                "Nach dem Sturz bin ich wieder umgekippt",
            ),
            tuning_overrides=overrides,
        )
        rule = _rule(evaluation, "SYNCOPE")
        assert rule.verified is True
        assert [e.source_id for e in rule.evidence] == ["msg-1", "msg-2"]
        assert evaluation.escalation_level == EscalationLevel.B

    def test_all_of_missing_term_needs_review(self, make_intake, messages):
        overrides = {"SYNCOPE": RuleTuning(all_of=["schwindel", "sturz"])}

        evaluation = evaluate_red_flags(
            make_intake(),
            messages("Ich bin umgekippt, mir war schwindelig"),
            tuning_overrides=overrides,
        )
        rule = _rule(evaluation, "SYNCOPE")
        assert rule.verified is False
        assert rule.level == "needs_review"
        assert evaluation.escalation_level is None


class TestNegativesAndContradictions:
    """Relevant negatives are never evidence, only contradiction input."""

    def test_negatives_are_not_screened(self, make_intake):
        data = make_intake(relevant_negatives=["keine Brustschmerzen"])
        evaluation = evaluate_red_flags(data, intake_id="intake-1")

        assert evaluation.triggered_rules == []
        assert evaluation.escalation_level is None

    def test_contradiction_with_verified_flag(self, make_intake, messages):
        data = make_intake(relevant_negatives=["keine Brustschmerzen"])
        evaluation = evaluate_red_flags(data, messages("Akute Brustschmerzen seit heute"))

        assert evaluation.contradictions_present is True
        assert evaluation.escalation_level == EscalationLevel.B
        assert _finding_ids(evaluation) == ["CHEST_PAIN"]
        assert "Widerspruch zwischen Angaben und relevanten Negativbefunden." in (
            evaluation.quality.notes
        )

    def test_unverified_hit_is_no_contradiction(self, make_intake, messages):
        data = make_intake(relevant_negatives=["keine Brustschmerzen"])
        evaluation = evaluate_red_flags(data, messages("Ich habe Brustschmerzen"))

        assert _rule(evaluation, "CHEST_PAIN").verified is False
        assert evaluation.contradictions_present is False
        assert evaluation.escalation_level is None
        assert evaluation.red_flag_present is False

    def test_contradiction_never_lowers_level_a(self, make_intake, messages):
        data = make_intake(relevant_negatives=["keine Atemnot"])
        evaluation = evaluate_red_flags(data, messages("Ich habe starke Atemnot"))

        assert evaluation.contradictions_present is True
        assert evaluation.escalation_level == EscalationLevel.A


class TestUncertainty:
    """Two or more uncertainties confirmed in chat escalate to C."""

    def test_verified_uncertainties_escalate_to_c(self, make_intake, messages):
        data = make_intake(uncertainties=["Dauer unklar", "Auslöser unklar"])
        evaluation = evaluate_red_flags(
            data, messages("Die Dauer unklar, sorry", "Auslöser unklar")
        )

        assert evaluation.escalation_level == EscalationLevel.C
        assert evaluation.safety_questions == SAFETY_QUESTIONS_LEVEL_C
        assert evaluation.quality.confidence == "low"
        assert "SFTY-2.1-R-UNCERTAINTY-2PLUS" in evaluation.rule_ids

    def test_uncertainties_without_chat_need_review(self, make_intake):
        data = make_intake(uncertainties=["Dauer unklar", "Auslöser unklar"])
        evaluation = evaluate_red_flags(data)

        assert _rule(evaluation, UNCERTAINTY_HIGH).level == "needs_review"
        assert evaluation.escalation_level is None

    def test_not_evaluated_after_escalation(self, make_intake, messages):
        data = make_intake(uncertainties=["Dauer unklar", "Auslöser unklar"])
        evaluation = evaluate_red_flags(data, messages("Herzrasen und ich bin umgekippt"))

        assert all(r.finding_id != UNCERTAINTY_HIGH for r in evaluation.triggered_rules)


class TestDeterminismAndSummary:
    def test_identical_input_identical_output(self, make_intake, messages):
        data = make_intake(chief_complaint="Brustschmerz seit 30 Minuten")
        chat = messages("Herzrasen und ich bin umgekippt")

        first = evaluate_red_flags(data, chat, intake_id="intake-1")
        second = evaluate_red_flags(data, chat, intake_id="intake-1")
        assert first.model_dump_json() == second.model_dump_json()

    def test_input_is_not_mutated(self, make_intake, messages):
        data = make_intake(chief_complaint="Atemnot")
        before = data.model_dump()
        evaluate_red_flags(data, messages("starke Atemnot"), intake_id="intake-1")
        assert data.model_dump() == before

    def test_policy_version_is_threaded_into_ids(self, make_intake, messages):
        evaluation = evaluate_red_flags(
            make_intake(), messages("Ich will mich umbringen."), policy_version="3.0"
        )
        assert evaluation.rule_ids == ["SFTY-3.0-R-SUICIDAL-IDEATION"]
        assert evaluation.check_ids == ["SFTY-3.0-C-EVIDENCE", "SFTY-3.0-C-CONTRADICTION"]

    def test_summary_without_flags(self, make_intake):
        assert format_safety_summary_line(evaluate_red_flags(make_intake())) == "Red Flags: keine."

    def test_summary_with_flags(self, make_intake, messages):
        evaluation = evaluate_red_flags(make_intake(), messages("Herzrasen und ich bin umgekippt"))
        assert (
            format_safety_summary_line(evaluation)
            == "Red Flags: Level B (SYNCOPE, SEVERE_PALPITATIONS)."
        )

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("seit 25 min", 25),
            ("seit einer halben Stunde", 30),
            ("eine Dreiviertel Stunde", 45),
            ("seit 3 Stunden", 180),
            ("seit gestern", None),
            (None, None),
        ],
    )
    def test_extract_duration_minutes(self, text, expected):
        assert extract_duration_minutes(text) == expected
