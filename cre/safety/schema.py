# cre/safety/schema.py
from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from cre.states import ChatAction, EscalationLevel, EvidenceSource


class EvidenceItem(BaseModel):
    source: EvidenceSource
    source_id: str
    excerpt: str
    field_path: Optional[str] = None


class SafetyTriggeredRule(BaseModel):
    """
    One rule that matched the evidence.

    `level` is the severity for verified rules and "needs_review" for rules
    that matched a pattern but could not be verified, qualified or were
    excluded. Only verified rules take part in escalation.
    """

    rule_id: str
    finding_id: str
    title: str
    severity: EscalationLevel
    level: Union[EscalationLevel, Literal["needs_review"]]
    verified: bool = False
    qualified: bool = False
    downgraded: bool = False
    evidence: List[EvidenceItem] = Field(default_factory=list)
    policy_version: str


class RedFlagFinding(BaseModel):
    id: str
    rule_id: str
    domain: str
    trigger: str
    level: EscalationLevel
    rationale: str
    policy_version: str
    evidence_message_ids: List[str] = Field(default_factory=list)
    evidence: List[EvidenceItem] = Field(default_factory=list)


class SafetyQuality(BaseModel):
    confidence: Literal["low", "medium", "high"] = "medium"
    notes: List[str] = Field(default_factory=list)


class SafetyEvaluation(BaseModel):
    red_flag_present: bool = False
    escalation_level: Optional[EscalationLevel] = None
    red_flags: List[RedFlagFinding] = Field(default_factory=list)
    triggered_rules: List[SafetyTriggeredRule] = Field(default_factory=list)
    rule_ids: List[str] = Field(default_factory=list)
    check_ids: List[str] = Field(default_factory=list)
    contradictions_present: bool = False
    safety_questions: List[str] = Field(default_factory=list)
    quality: SafetyQuality = Field(default_factory=SafetyQuality)
    policy_version: str = "2.1"


class SafetyPolicyResult(BaseModel):
    policy_version: str
    escalation_level: Optional[EscalationLevel] = None
    chat_action: ChatAction = ChatAction.NONE
    studio_badge: Optional[str] = None
    patient_banner: Optional[str] = None


class PolicyOverride(BaseModel):
    override_level: Optional[EscalationLevel] = None
    override_action: Optional[ChatAction] = None
    reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None


class EffectiveSafetyState(BaseModel):
    escalation_level: Optional[EscalationLevel] = None
    chat_action: ChatAction = ChatAction.NONE
    override_applied: bool = False


class SafetyState(SafetyEvaluation):
    """
    The `safety` block stored on a structured intake: the raw evaluation plus
    the policy result, the effective (override-adjusted) result and the
    override that produced it.
    """

    policy_result: Optional[SafetyPolicyResult] = None
    effective_policy_result: Optional[SafetyPolicyResult] = None
    effective_level: Optional[EscalationLevel] = None
    effective_action: Optional[ChatAction] = None
    override: Optional[PolicyOverride] = None


# --------------------------------------------------------------------------
# Policy documents
# --------------------------------------------------------------------------


class PolicyDefaults(BaseModel):
    severity_to_level: Dict[EscalationLevel, EscalationLevel] = Field(
        default_factory=lambda: {
            EscalationLevel.A: EscalationLevel.A,
            EscalationLevel.B: EscalationLevel.B,
            EscalationLevel.C: EscalationLevel.C,
        }
    )
    level_to_action: Dict[EscalationLevel, ChatAction] = Field(
        default_factory=lambda: {
            EscalationLevel.A: ChatAction.HARD_STOP,
            EscalationLevel.B: ChatAction.REQUIRE_CONFIRM,
            EscalationLevel.C: ChatAction.WARN,
        }
    )
    level_to_badge: Dict[EscalationLevel, str] = Field(
        default_factory=lambda: {
            EscalationLevel.A: "Notfall pruefen",
            EscalationLevel.B: "Dringend pruefen",
            EscalationLevel.C: "Sicherheitsfragen offen",
        }
    )
    action_to_banner: Dict[ChatAction, str] = Field(
        default_factory=lambda: {
            ChatAction.NONE: "",
            ChatAction.WARN: "Bitte beantworten Sie die folgenden Sicherheitsfragen.",
            ChatAction.REQUIRE_CONFIRM: (
                "Ihre Angaben werden priorisiert aerztlich geprueft. "
                "Bitte bestaetigen Sie, dass Sie dies gelesen haben."
            ),
            ChatAction.HARD_STOP: (
                "Bitte wenden Sie sich sofort an den Notruf 112 "
                "oder die naechste Notaufnahme."
            ),
        }
    )


class RulePolicyOverride(BaseModel):
    level: Optional[EscalationLevel] = None
    action: Optional[ChatAction] = None
    studio_badge: Optional[str] = None
    patient_banner: Optional[str] = None


class SafetyPolicy(BaseModel):
    version: str = "2.1"
    defaults: PolicyDefaults = Field(default_factory=PolicyDefaults)
    rules: Dict[str, RulePolicyOverride] = Field(default_factory=dict)


class SafetyPolicyPatch(BaseModel):
    """
    A partial policy layered over the base (organization or funnel scope).
    Only the keys that are present override the layer below.
    """

    version: Optional[str] = None
    defaults: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    rules: Dict[str, RulePolicyOverride] = Field(default_factory=dict)
