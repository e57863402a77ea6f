# cre/reasoning/schema.py
from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from cre.states import EscalationLevel, Likelihood


class RiskComponents(BaseModel):
    verified_red_flags: int = 0
    chronicity_signal: int = 0
    anxiety_signal: int = 0


class RiskEstimation(BaseModel):
    score: float = 0.0
    level: Likelihood = Likelihood.LOW
    components: RiskComponents = Field(default_factory=RiskComponents)


class Differential(BaseModel):
    label: str
    likelihood: Likelihood
    matched_triggers: List[str] = Field(default_factory=list)
    base_likelihood: Likelihood


class OpenQuestion(BaseModel):
    condition_label: str
    text: str
    priority: Literal[1, 2, 3]


class UncertaintyItem(BaseModel):
    code: str
    message: str
    severity: Literal["low", "medium", "high"] = "medium"


class ReasoningConflict(BaseModel):
    code: str
    message: str
    severity: Literal["low", "medium", "high"] = "high"
    related_fields: List[str] = Field(default_factory=list)


class SafetyAlignment(BaseModel):
    blocked_by_safety: bool = False
    effective_level: Optional[EscalationLevel] = None
    rationale: str = ""


class AdapterMetadata(BaseModel):
    domain: str
    version: str
    escalation_thresholds: Dict[str, float] = Field(default_factory=dict)
    short_anamnesis_template: List[str] = Field(default_factory=list)


class ClinicalReasoningPack(BaseModel):
    risk_estimation: RiskEstimation = Field(default_factory=RiskEstimation)
    differentials: List[Differential] = Field(default_factory=list)
    open_questions: List[OpenQuestion] = Field(default_factory=list)
    recommended_next_steps: List[str] = Field(default_factory=list)
    uncertainties: List[str] = Field(default_factory=list)
    uncertainty_items: List[UncertaintyItem] = Field(default_factory=list)
    conflicts: List[ReasoningConflict] = Field(default_factory=list)
    safety_alignment: SafetyAlignment = Field(default_factory=SafetyAlignment)
    adapter: Optional[AdapterMetadata] = None
    config_version: Optional[int] = None
