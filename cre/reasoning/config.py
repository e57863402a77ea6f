# cre/reasoning/config.py
"""
Versioned reasoning configuration: differential templates, risk weights and
open-question templates. Versions come from the config store; the seed below
is used when no version is active.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from cre.states import Likelihood
from cre.utils.validation import ValidationOutcome, issues_from_error


class DifferentialTemplate(BaseModel):
    label: str
    trigger_terms: List[str] = Field(default_factory=list)
    required_terms: List[str] = Field(default_factory=list)
    exclusions: List[str] = Field(default_factory=list)
    base_likelihood: Likelihood = Likelihood.MEDIUM

    @field_validator("label")
    @classmethod
    def label_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("label must not be empty")
        return value


class RiskWeighting(BaseModel):
    red_flag_weight: float = Field(3, ge=0, le=10)
    chronicity_weight: float = Field(1, ge=0, le=10)
    anxiety_modifier: float = Field(1, ge=-5, le=5)


class QuestionTemplate(BaseModel):
    text: str
    priority: Literal[1, 2, 3] = 2


class OpenQuestionTemplate(BaseModel):
    condition_label: str
    questions: List[QuestionTemplate] = Field(default_factory=list)


class ClinicalReasoningConfig(BaseModel):
    differential_templates: List[DifferentialTemplate] = Field(default_factory=list)
    risk_weighting: RiskWeighting = Field(default_factory=RiskWeighting)
    open_question_templates: List[OpenQuestionTemplate] = Field(default_factory=list)


class ReasoningConfigVersion(BaseModel):
    version: int
    status: Literal["draft", "active", "archived"] = "draft"
    config: ClinicalReasoningConfig
    change_reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None


SEED_REASONING_CONFIG = ClinicalReasoningConfig(
    differential_templates=[
        DifferentialTemplate(
            label="Panic-like autonomic episode",
            trigger_terms=["herzrasen", "panik", "angst", "zittern", "schwitzen", "panic"],
            base_likelihood=Likelihood.MEDIUM,
        ),
        DifferentialTemplate(
            label="Stress reactivity",
            trigger_terms=["stress", "belastung", "uberforderung", "anspannung", "schlafstorung"],
            base_likelihood=Likelihood.LOW,
        ),
        DifferentialTemplate(
            label="Musculoskeletal chest pain",
            trigger_terms=["brustschmerz", "verspannung", "druckschmerz", "bewegung", "rucken"],
            required_terms=["schmerz"],
            exclusions=["ausstrahlung in den arm"],
            base_likelihood=Likelihood.MEDIUM,
        ),
        DifferentialTemplate(
            label="Viral respiratory syndrome",
            trigger_terms=["husten", "fieber", "schnupfen", "halsschmerz", "erkaltung", "cough", "fever"],
            base_likelihood=Likelihood.LOW,
        ),
    ],
    risk_weighting=RiskWeighting(red_flag_weight=3, chronicity_weight=1, anxiety_modifier=1),
    open_question_templates=[
        OpenQuestionTemplate(
            condition_label="Panic-like autonomic episode",
            questions=[
                QuestionTemplate(text="Wie lange dauert eine typische Episode?", priority=1),
                QuestionTemplate(text="Treten die Beschwerden auch in Ruhe auf?", priority=2),
            ],
        ),
        OpenQuestionTemplate(
            condition_label="Stress reactivity",
            questions=[
                QuestionTemplate(text="Welche Belastungen bestehen aktuell im Alltag?", priority=3),
            ],
        ),
        OpenQuestionTemplate(
            condition_label="Musculoskeletal chest pain",
            questions=[
                QuestionTemplate(text="Ist der Schmerz atemabhaengig oder lageabhaengig?", priority=1),
            ],
        ),
        OpenQuestionTemplate(
            condition_label="Viral respiratory syndrome",
            questions=[
                QuestionTemplate(text="Wie hoch war die hoechste gemessene Temperatur?", priority=2),
            ],
        ),
    ],
)


def select_active_reasoning_config(
    versions: Iterable[ReasoningConfigVersion],
) -> tuple[ClinicalReasoningConfig, Optional[int]]:
    """Highest active version wins; the seed (version None) when none is active."""
    active = [v for v in versions if v.status == "active"]
    if not active:
        return SEED_REASONING_CONFIG, None
    chosen = max(active, key=lambda v: v.version)
    return chosen.config, chosen.version


def validate_reasoning_config(payload: Any) -> ValidationOutcome:
    if not isinstance(payload, dict):
        return ValidationOutcome.failure(
            "invalid_reasoning_config", "Reasoning config must be a JSON object."
        )
    try:
        config = ClinicalReasoningConfig.model_validate(payload)
    except ValidationError as exc:
        return ValidationOutcome.failure(
            "invalid_reasoning_config",
            "Reasoning config failed validation.",
            issues_from_error(exc),
        )

    issues: List[str] = []
    seen_labels: set[str] = set()
    for index, template in enumerate(config.differential_templates):
        if not [t for t in template.trigger_terms if t.strip()]:
            issues.append(f"differential_templates.{index}.trigger_terms: at least one term required")
        key = template.label.strip().lower()
        if key in seen_labels:
            issues.append(f"differential_templates.{index}.label: duplicate label '{template.label}'")
        seen_labels.add(key)
    for index, template in enumerate(config.open_question_templates):
        for q_index, question in enumerate(template.questions):
            if not question.text.strip():
                issues.append(
                    f"open_question_templates.{index}.questions.{q_index}.text: must not be empty"
                )
    if issues:
        return ValidationOutcome.failure(
            "invalid_reasoning_config", "Reasoning config is inconsistent.", issues
        )
    return ValidationOutcome.success(config)
