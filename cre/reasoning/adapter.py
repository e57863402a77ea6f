# cre/reasoning/adapter.py
"""
Domain adapter profiles.

An adapter is fixed code, not configuration: hypothesis priors, score
thresholds, an adapter-specific question library and the short anamnesis
checklist shown to clinicians.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from cre.reasoning.schema import AdapterMetadata
from cre.safety.evidence import normalize_text
from cre.states import Likelihood


@dataclass(frozen=True)
class AdapterQuestion:
    text: str
    priority: int


@dataclass(frozen=True)
class DomainAdapter:
    domain: str
    version: str
    # keyed by normalized condition label
    hypothesis_priors: Dict[str, Likelihood]
    threshold_high: float
    threshold_medium: float
    question_library: Dict[str, Tuple[AdapterQuestion, ...]] = field(default_factory=dict)
    short_anamnesis_template: Tuple[str, ...] = ()

    def prior_for(self, condition_label: str, fallback: Likelihood) -> Likelihood:
        return self.hypothesis_priors.get(normalize_text(condition_label), fallback)

    def level_for(self, score: float) -> Likelihood:
        if score >= self.threshold_high:
            return Likelihood.HIGH
        if score >= self.threshold_medium:
            return Likelihood.MEDIUM
        return Likelihood.LOW

    def metadata(self) -> AdapterMetadata:
        return AdapterMetadata(
            domain=self.domain,
            version=self.version,
            escalation_thresholds={
                "high": self.threshold_high,
                "medium": self.threshold_medium,
            },
            short_anamnesis_template=list(self.short_anamnesis_template),
        )


GP_ADAPTER_V1 = DomainAdapter(
    domain="gp",
    version="gp-v1.0.0",
    hypothesis_priors={
        normalize_text("panic-like autonomic episode"): Likelihood.MEDIUM,
        normalize_text("stress reactivity"): Likelihood.LOW,
        normalize_text("musculoskeletal chest pain"): Likelihood.MEDIUM,
        normalize_text("viral respiratory syndrome"): Likelihood.LOW,
    },
    threshold_high=7,
    threshold_medium=3,
    question_library={
        "Panic-like autonomic episode": (
            AdapterQuestion(
                "Gab es in den letzten Tagen wiederkehrende Ausloeser im Alltag?", 2
            ),
            AdapterQuestion(
                "Welche Koerperzeichen treten waehrend der Episode zuerst auf?", 2
            ),
        ),
        "Musculoskeletal chest pain": (
            AdapterQuestion(
                "Ist der Schmerz durch Bewegung, Druck oder Lagewechsel reproduzierbar?", 1
            ),
            AdapterQuestion(
                "Gab es ungewohnte koerperliche Belastungen vor Symptombeginn?", 2
            ),
        ),
    },
    short_anamnesis_template=(
        "Leitsymptom + Beginn",
        "Verlauf + Trigger/Linderung",
        "Red Flags + relevante Negativa",
        "Medikation + Vorerkrankungen",
        "Naechster diagnostischer Schritt",
    ),
)


def adapter_questions(
    adapter: DomainAdapter, labels: set[str]
) -> List[Tuple[str, str, int]]:
    """(condition_label, text, priority) for every library entry whose label is in `labels` (lowercase)."""
    questions: List[Tuple[str, str, int]] = []
    for condition_label, entries in adapter.question_library.items():
        if condition_label.lower() not in labels:
            continue
        questions.extend((condition_label, q.text, q.priority) for q in entries)
    return questions
