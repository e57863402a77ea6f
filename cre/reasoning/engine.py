# cre/reasoning/engine.py
"""
Differential reasoning engine.

Scores risk from verified red flags and two narrow free-text heuristics
(chronicity, anxiety vocabulary), matches differential templates and collects
the open questions that belong to the matched differentials. Outputs are
triage signals for a clinician, not diagnoses.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional

from cre.intake.schema import StructuredIntakeData
from cre.reasoning.adapter import GP_ADAPTER_V1, DomainAdapter, adapter_questions
from cre.reasoning.config import SEED_REASONING_CONFIG, ClinicalReasoningConfig
from cre.reasoning.schema import (
    ClinicalReasoningPack,
    Differential,
    OpenQuestion,
    ReasoningConflict,
    RiskComponents,
    RiskEstimation,
    SafetyAlignment,
    UncertaintyItem,
)
from cre.safety.evidence import contains_term, normalize_text
from cre.safety.override import effective_level_of
from cre.states import LIKELIHOOD_ORDER, EscalationLevel, Likelihood

logger = logging.getLogger(__name__)

_CHRONIC_DURATION_RE = re.compile(r"jahr|monate|monat|wochen|woche")
_DAYS_DURATION_RE = re.compile(r"tage|tag")

ANXIETY_MARKERS = ("angst", "panik", "nervos", "anxiety", "panic")
HARD_RISK_MARKERS = (
    "brustschmerz seit 30",
    "ich will mich umbringen",
    "habe einen plan",
    "starke atemnot",
    "cannot breathe",
)

NO_DIFFERENTIAL_NOTE = (
    "Keine Differentialdiagnose konnte auf konfigurierte Trigger-Terms "
    "zurueckgefuehrt werden."
)


def gather_evidence_text(intake: StructuredIntakeData) -> str:
    hpi = intake.history_of_present_illness
    parts: List[str] = []
    if intake.chief_complaint:
        parts.append(intake.chief_complaint)
    for value in (hpi.onset, hpi.duration, hpi.course):
        if value:
            parts.append(value)
    parts.extend(hpi.associated_symptoms)
    parts.extend(hpi.relieving_factors)
    parts.extend(hpi.aggravating_factors)
    parts.extend(intake.relevant_negatives)
    parts.extend(intake.past_medical_history)
    parts.extend(intake.medication)
    parts.extend(intake.psychosocial_factors)
    parts.extend(intake.uncertainties)
    return " | ".join(parts)


def count_verified_red_flags(intake: StructuredIntakeData) -> int:
    if intake.safety is None:
        return 0
    return sum(
        1
        for rule in intake.safety.triggered_rules
        if rule.verified and rule.severity in (EscalationLevel.A, EscalationLevel.B)
    )


def chronicity_signal(intake: StructuredIntakeData) -> int:
    duration = normalize_text(intake.history_of_present_illness.duration)
    if not duration:
        return 0
    if _CHRONIC_DURATION_RE.search(duration):
        return 2
    if _DAYS_DURATION_RE.search(duration):
        return 1
    return 0


def anxiety_signal(evidence_text: str) -> int:
    return 1 if any(contains_term(evidence_text, m) for m in ANXIETY_MARKERS) else 0


def has_hard_risk_markers(evidence_text: str) -> bool:
    return any(contains_term(evidence_text, m) for m in HARD_RISK_MARKERS)


def escalate_likelihood(base: Likelihood, steps: int) -> Likelihood:
    index = LIKELIHOOD_ORDER.index(base) + steps
    index = max(0, min(len(LIKELIHOOD_ORDER) - 1, index))
    return LIKELIHOOD_ORDER[index]


def _match_differentials(
    config: ClinicalReasoningConfig,
    adapter: DomainAdapter,
    evidence_text: str,
    risk_level: Likelihood,
) -> List[Differential]:
    step = 1 if risk_level == Likelihood.HIGH else 0
    matched: List[Differential] = []
    for template in config.differential_templates:
        triggers = [t for t in template.trigger_terms if contains_term(evidence_text, t)]
        if not triggers:
            continue
        if any(not contains_term(evidence_text, t) for t in template.required_terms):
            continue
        if any(contains_term(evidence_text, t) for t in template.exclusions):
            continue
        prior = adapter.prior_for(template.label, template.base_likelihood)
        matched.append(
            Differential(
                label=template.label,
                likelihood=escalate_likelihood(prior, step),
                matched_triggers=triggers,
                base_likelihood=template.base_likelihood,
            )
        )

    # sorted() is stable: equal keys keep template order
    return sorted(
        matched,
        key=lambda d: (
            -LIKELIHOOD_ORDER.index(d.likelihood),
            -len(d.matched_triggers),
        ),
    )


def _open_questions(
    config: ClinicalReasoningConfig,
    adapter: DomainAdapter,
    differentials: List[Differential],
) -> List[OpenQuestion]:
    labels = {d.label.lower() for d in differentials}

    candidates = []
    for template in config.open_question_templates:
        if template.condition_label.lower() in labels:
            candidates.extend(
                (template.condition_label, q.text, q.priority) for q in template.questions
            )
    candidates.extend(adapter_questions(adapter, labels))

    seen = set()
    unique = []
    for entry in candidates:
        if entry in seen:
            continue
        seen.add(entry)
        unique.append(entry)

    return [
        OpenQuestion(condition_label=label, text=text, priority=priority)
        for label, text, priority in sorted(unique, key=lambda e: e[2])
    ]


def generate_reasoning_pack(
    intake: StructuredIntakeData,
    config: Optional[ClinicalReasoningConfig] = None,
    config_version: Optional[int] = None,
    adapter: DomainAdapter = GP_ADAPTER_V1,
) -> ClinicalReasoningPack:
    config = config or SEED_REASONING_CONFIG
    weights = config.risk_weighting

    evidence_text = gather_evidence_text(intake)
    verified_red_flags = count_verified_red_flags(intake)
    chronicity = chronicity_signal(intake)
    anxiety = anxiety_signal(evidence_text)

    raw_score = (
        verified_red_flags * weights.red_flag_weight
        + chronicity * weights.chronicity_weight
        + anxiety * weights.anxiety_modifier
    )
    score = max(0.0, round(raw_score, 2))
    risk_level = adapter.level_for(score)

    effective_level = effective_level_of(intake.safety)
    if effective_level == EscalationLevel.A:
        risk_level = Likelihood.HIGH
    elif (
        risk_level == Likelihood.HIGH
        and verified_red_flags == 0
        and not has_hard_risk_markers(evidence_text)
    ):
        risk_level = Likelihood.MEDIUM

    differentials = _match_differentials(config, adapter, evidence_text, risk_level)
    open_questions = _open_questions(config, adapter, differentials)

    next_steps: List[str] = []
    if risk_level == Likelihood.HIGH:
        next_steps.append("Zeitnahe klinische Priorisierung und unmittelbare Red-Flag-Abklaerung.")
    elif risk_level == Likelihood.MEDIUM:
        next_steps.append(
            "Gezielte zeitnahe Verlaufsklaerung und differenzialdiagnostische Vertiefung."
        )
    else:
        next_steps.append("Strukturierte ambulante Abklaerung und Symptomverlauf dokumentieren.")
    if verified_red_flags > 0:
        next_steps.append("Verifizierte Red Flags priorisiert erneut pruefen und dokumentieren.")
    if open_questions:
        next_steps.append("Priorisierte offene Fragen im naechsten Kontakt systematisch klaeren.")

    uncertainties = list(intake.uncertainties)
    if not differentials:
        uncertainties.append(NO_DIFFERENTIAL_NOTE)
    uncertainty_items = [
        UncertaintyItem(code=f"uncertainty_{index}", message=message, severity="medium")
        for index, message in enumerate(uncertainties, start=1)
    ]

    conflicts: List[ReasoningConflict] = []
    if intake.safety is not None and intake.safety.contradictions_present:
        conflicts.append(
            ReasoningConflict(
                code="safety_contradictions_present",
                message=(
                    "Safety-Modul meldet Widerspruch zwischen positiven Aussagen "
                    "und expliziten Negativa."
                ),
                severity="high",
                related_fields=["safety.contradictions_present", "explicit_negatives"],
            )
        )
    if effective_level == EscalationLevel.A and risk_level != Likelihood.HIGH:
        conflicts.append(
            ReasoningConflict(
                code="risk_below_safety_escalation",
                message=(
                    "Reasoning-Risiko unterschreitet Safety-Level A und wurde "
                    "technisch priorisiert."
                ),
                severity="high",
                related_fields=["reasoning.risk_estimation.level", "safety.effective_level"],
            )
        )

    blocked = effective_level == EscalationLevel.A
    logger.debug(
        "reasoning: score=%.2f level=%s differentials=%d open_questions=%d",
        score,
        risk_level.value,
        len(differentials),
        len(open_questions),
    )

    return ClinicalReasoningPack(
        risk_estimation=RiskEstimation(
            score=score,
            level=risk_level,
            components=RiskComponents(
                verified_red_flags=verified_red_flags,
                chronicity_signal=chronicity,
                anxiety_signal=anxiety,
            ),
        ),
        differentials=differentials,
        open_questions=open_questions,
        recommended_next_steps=next_steps,
        uncertainties=uncertainties,
        uncertainty_items=uncertainty_items,
        conflicts=conflicts,
        safety_alignment=SafetyAlignment(
            blocked_by_safety=blocked,
            effective_level=effective_level,
            rationale=(
                "Safety-Level A priorisiert klinische Eskalation vor "
                "differenzialdiagnostischer Gewichtung."
                if blocked
                else "Kein Safety-Blocking aktiv, Reasoning folgt domaenenspezifischen "
                "Priors/Schwellen."
            ),
        ),
        adapter=adapter.metadata(),
        config_version=config_version,
    )


def compare_reasoning_packs(
    active: ClinicalReasoningPack, selected: ClinicalReasoningPack
) -> dict:
    """Differences between the active config's result and a draft's result (sandbox)."""
    active_labels = [d.label for d in active.differentials]
    selected_labels = [d.label for d in selected.differentials]
    return {
        "risk_level_changed": active.risk_estimation.level != selected.risk_estimation.level,
        "active_only_differentials": [l for l in active_labels if l not in selected_labels],
        "selected_only_differentials": [l for l in selected_labels if l not in active_labels],
        "open_question_count_delta": len(selected.open_questions) - len(active.open_questions),
    }
