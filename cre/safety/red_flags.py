# cre/safety/red_flags.py
"""
Red flag rule evaluator.

Screens structured intake text and chat messages against the clinical
allowlist, verifies every hit against a traceable piece of evidence, applies
per-rule tuning and derives the escalation level.

A rule that cannot be verified, qualified or that is excluded is still
reported in `triggered_rules` (level "needs_review") for audit, but never
takes part in escalation.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional

from cre.intake.schema import ChatMessage, StructuredIntakeData
from cre.safety.catalog import (
    CONTRADICTION_PATTERNS,
    RED_FLAG_PATTERNS,
    RED_FLAG_RULES,
    SAFETY_QUESTIONS_LEVEL_C,
    ClinicalRedFlag,
    check_id_for,
    rule_id_for,
)
from cre.safety.evidence import EvidenceContext, EvidenceText, normalize_text
from cre.safety.schema import (
    EvidenceItem,
    RedFlagFinding,
    SafetyEvaluation,
    SafetyQuality,
    SafetyTriggeredRule,
)
from cre.safety.tuning import RuleTuning, apply_tuning, resolve_rule_tuning
from cre.states import LEVEL_RANK, EscalationLevel, EvidenceSource

logger = logging.getLogger(__name__)

SAFETY_POLICY_VERSION = "2.1"

CHEST_PAIN_PROLONGED = "CHEST_PAIN_PROLONGED"
CHEST_PAIN_PROLONGED_MINUTES = 20
UNCERTAINTY_HIGH = "UNCERTAINTY_HIGH"
UNCERTAINTY_HIGH_MIN_COUNT = 2

# Negative statements describe what the patient does NOT have; they are only
# read by the contradiction check.
_NEGATIVE_FIELD_PREFIX = "relevant_negatives"

_MINUTES_RE = re.compile(r"(\d{1,3})\s*(?:minuten|minute|mins|min)\b")
_HOURS_RE = re.compile(r"(\d{1,2})\s*(?:stunden|stunde|std|hours|hour|h)\b")


def extract_duration_minutes(text: Optional[str]) -> Optional[int]:
    """
    Parse a short duration into minutes.

    >>> extract_duration_minutes("seit 30 Minuten")
    30
    >>> extract_duration_minutes("seit 2 Stunden")
    120
    >>> extract_duration_minutes("seit gestern") is None
    True
    """
    normalized = normalize_text(text)
    if not normalized:
        return None

    match = _MINUTES_RE.search(normalized)
    if match:
        return int(match.group(1))
    match = _HOURS_RE.search(normalized)
    if match:
        return int(match.group(1)) * 60
    if "dreiviertel stunde" in normalized:
        return 45
    if "halbe stunde" in normalized or "halben stunde" in normalized:
        return 30
    return None


def _screening_texts(context: EvidenceContext) -> List[EvidenceText]:
    return [
        text
        for text in context.texts()
        if not (text.field_path or "").startswith(_NEGATIVE_FIELD_PREFIX)
    ]


def _screening_corpus(context: EvidenceContext) -> str:
    parts = [
        text
        for path, text in context.fields.items()
        if not path.startswith(_NEGATIVE_FIELD_PREFIX)
    ]
    parts.extend(context.messages.values())
    return " ".join(part for part in parts if part)


def _verify(context: EvidenceContext, text: EvidenceText, pattern: str) -> bool:
    if text.source == EvidenceSource.CHAT.value:
        return context.verify_chat(text.source_id, pattern)
    return context.verify_intake(text.source_id, text.field_path, pattern)


def _evidence_item(text: EvidenceText) -> EvidenceItem:
    return EvidenceItem(
        source=EvidenceSource(text.source),
        source_id=text.source_id,
        excerpt=text.text,
        field_path=text.field_path,
    )


def _collect_verified(
    context: EvidenceContext,
    texts: Iterable[EvidenceText],
    patterns: Iterable[str],
) -> List[EvidenceText]:
    """Texts that carry a pattern hit and pass independent re-verification."""
    normalized_patterns = [normalize_text(p) for p in patterns if normalize_text(p)]
    verified: List[EvidenceText] = []
    for text in texts:
        hit = next((p for p in normalized_patterns if p in text.text), None)
        if hit is None:
            continue
        if _verify(context, text, hit):
            verified.append(text)
    return verified


def _max_level(levels: Iterable[Optional[EscalationLevel]]) -> Optional[EscalationLevel]:
    best: Optional[EscalationLevel] = None
    for level in levels:
        if LEVEL_RANK[level] > LEVEL_RANK[best]:
            best = level
    return best


def _finding(
    finding_id: str,
    rule_id: str,
    domain: str,
    trigger: str,
    level: EscalationLevel,
    rationale: str,
    policy_version: str,
    evidence: List[EvidenceItem],
) -> RedFlagFinding:
    message_ids: List[str] = []
    for item in evidence:
        if item.source == EvidenceSource.CHAT and item.source_id not in message_ids:
            message_ids.append(item.source_id)
    return RedFlagFinding(
        id=finding_id,
        rule_id=rule_id,
        domain=domain,
        trigger=trigger,
        level=level,
        rationale=rationale,
        policy_version=policy_version,
        evidence_message_ids=message_ids,
        evidence=evidence,
    )


def _prolonged_chest_pain_evidence(
    structured_data: StructuredIntakeData,
    context: EvidenceContext,
    chest_pain_texts: List[EvidenceText],
) -> tuple[bool, List[EvidenceItem]]:
    """
    Returns (duration_claimed, verified_duration_evidence).

    A duration counts when a chest pain message states it, when the HPI
    duration field is traceable to the intake, or when a chat message repeats
    the HPI duration text.
    """
    items: List[EvidenceItem] = []
    claimed = False

    for text in chest_pain_texts:
        if text.source != EvidenceSource.CHAT.value:
            continue
        minutes = extract_duration_minutes(text.text)
        if minutes is not None and minutes >= CHEST_PAIN_PROLONGED_MINUTES:
            claimed = True
            items.append(_evidence_item(text))

    hpi_duration = structured_data.history_of_present_illness.duration
    hpi_minutes = extract_duration_minutes(hpi_duration)
    if hpi_minutes is not None and hpi_minutes >= CHEST_PAIN_PROLONGED_MINUTES:
        claimed = True
        duration_text = normalize_text(hpi_duration)
        field_path = "history_of_present_illness.duration"
        if context.intake_id and context.verify_intake(
            context.intake_id, field_path, duration_text
        ):
            items.append(
                EvidenceItem(
                    source=EvidenceSource.INTAKE,
                    source_id=context.intake_id,
                    excerpt=duration_text,
                    field_path=field_path,
                )
            )
        for message_id, content in context.messages.items():
            if duration_text in content and context.verify_chat(message_id, duration_text):
                if not any(i.source_id == message_id for i in items):
                    items.append(
                        EvidenceItem(
                            source=EvidenceSource.CHAT,
                            source_id=message_id,
                            excerpt=content,
                        )
                    )

    return claimed, items


def evaluate_red_flags(
    structured_data: StructuredIntakeData,
    messages: Iterable[ChatMessage] = (),
    intake_id: Optional[str] = None,
    tuning_overrides: Optional[Dict[str, RuleTuning]] = None,
    policy_version: str = SAFETY_POLICY_VERSION,
) -> SafetyEvaluation:
    context = EvidenceContext.build(structured_data, messages, intake_id)
    corpus = _screening_corpus(context)
    candidates = _screening_texts(context)
    tunings = resolve_rule_tuning(tuning_overrides)

    triggered: List[SafetyTriggeredRule] = []
    findings: List[RedFlagFinding] = []
    kept_by_flag: Dict[str, List[EvidenceText]] = {}

    for flag in ClinicalRedFlag:
        patterns = [normalize_text(p) for p in RED_FLAG_PATTERNS[flag]]
        matched = [p for p in patterns if p and p in corpus]
        if not matched:
            continue

        rule = RED_FLAG_RULES[flag]
        rule_id = rule_id_for(flag.value, policy_version)
        texts = _collect_verified(context, candidates, matched)
        outcome = apply_tuning(tunings.get(flag.value, RuleTuning()), [t.text for t in texts])
        kept = [t for t in texts if t.text in outcome.kept_texts]
        kept_by_flag[flag.value] = kept
        evidence = [_evidence_item(t) for t in kept]

        severity = rule.level
        downgraded = False
        if severity == EscalationLevel.A and not outcome.a_level_hit:
            severity = EscalationLevel.B
            downgraded = True

        # a downgraded A rule stays under review and never escalates
        verified = bool(evidence) and outcome.qualified and not downgraded
        triggered.append(
            SafetyTriggeredRule(
                rule_id=rule_id,
                finding_id=flag.value,
                title=rule.title,
                severity=severity,
                level=severity if verified else "needs_review",
                verified=verified,
                qualified=outcome.qualified,
                downgraded=downgraded,
                evidence=evidence,
                policy_version=policy_version,
            )
        )
        logger.debug(
            "rule %s matched: verified=%s qualified=%s downgraded=%s evidence=%d reasons=%s",
            rule_id,
            verified,
            outcome.qualified,
            downgraded,
            len(evidence),
            ",".join(outcome.reasons) or "-",
        )
        if verified:
            findings.append(
                _finding(
                    finding_id=flag.value,
                    rule_id=rule_id,
                    domain=rule.domain,
                    trigger=matched[0],
                    level=severity,
                    rationale=rule.rationale,
                    policy_version=policy_version,
                    evidence=evidence,
                )
            )

    # Qualification is not needed here: the duration itself qualifies.
    chest_texts = kept_by_flag.get(ClinicalRedFlag.CHEST_PAIN.value, [])
    if chest_texts:
        claimed, duration_evidence = _prolonged_chest_pain_evidence(
            structured_data, context, chest_texts
        )
        if claimed:
            rule_id = f"SFTY-{policy_version}-R-CHEST-PAIN-20M"
            verified = bool(duration_evidence)
            evidence = [_evidence_item(t) for t in chest_texts]
            for item in duration_evidence:
                if item not in evidence:
                    evidence.append(item)
            triggered.append(
                SafetyTriggeredRule(
                    rule_id=rule_id,
                    finding_id=CHEST_PAIN_PROLONGED,
                    title="Brustschmerz >= 20 Minuten",
                    severity=EscalationLevel.A,
                    level=EscalationLevel.A if verified else "needs_review",
                    verified=verified,
                    qualified=True,
                    evidence=evidence,
                    policy_version=policy_version,
                )
            )
            if verified:
                findings.append(
                    _finding(
                        finding_id=CHEST_PAIN_PROLONGED,
                        rule_id=rule_id,
                        domain="cardio",
                        trigger="brustschmerz >= 20 min",
                        level=EscalationLevel.A,
                        rationale=(
                            "Brustschmerz seit mindestens 20 Minuten erfordert "
                            "eine sofortige Notfallabklaerung."
                        ),
                        policy_version=policy_version,
                        evidence=evidence,
                    )
                )

    escalation = _max_level(f.level for f in findings)

    uncertainties = [u for u in structured_data.uncertainties if normalize_text(u)]
    if escalation is None and len(uncertainties) >= UNCERTAINTY_HIGH_MIN_COUNT:
        uncertainty_evidence: List[EvidenceItem] = []
        matched_uncertainties: List[str] = []
        for uncertainty in uncertainties:
            needle = normalize_text(uncertainty)
            if needle in matched_uncertainties:
                continue
            for message_id, content in context.messages.items():
                if needle in content and context.verify_chat(message_id, needle):
                    matched_uncertainties.append(needle)
                    uncertainty_evidence.append(
                        EvidenceItem(
                            source=EvidenceSource.CHAT,
                            source_id=message_id,
                            excerpt=content,
                        )
                    )
                    break
        verified = len(matched_uncertainties) >= UNCERTAINTY_HIGH_MIN_COUNT
        rule_id = f"SFTY-{policy_version}-R-UNCERTAINTY-2PLUS"
        triggered.append(
            SafetyTriggeredRule(
                rule_id=rule_id,
                finding_id=UNCERTAINTY_HIGH,
                title="Mehrere Unsicherheiten",
                severity=EscalationLevel.C,
                level=EscalationLevel.C if verified else "needs_review",
                verified=verified,
                qualified=verified,
                evidence=uncertainty_evidence,
                policy_version=policy_version,
            )
        )
        if verified:
            findings.append(
                _finding(
                    finding_id=UNCERTAINTY_HIGH,
                    rule_id=rule_id,
                    domain="general",
                    trigger="uncertainties >= 2",
                    level=EscalationLevel.C,
                    rationale="Mehrere Unsicherheiten erfordern Sicherheitsfragen.",
                    policy_version=policy_version,
                    evidence=uncertainty_evidence,
                )
            )
            escalation = EscalationLevel.C

    contradictions_present = False
    negatives = [normalize_text(n) for n in structured_data.relevant_negatives]
    for rule in triggered:
        base_id = (
            ClinicalRedFlag.CHEST_PAIN.value
            if rule.finding_id == CHEST_PAIN_PROLONGED
            else rule.finding_id
        )
        phrases = CONTRADICTION_PATTERNS.get(base_id, ())
        if not rule.verified or not phrases:
            continue
        if any(phrase in negative for negative in negatives for phrase in phrases):
            contradictions_present = True
            logger.info("contradiction between %s and relevant negatives", rule.rule_id)
            break

    if contradictions_present and LEVEL_RANK[escalation] < LEVEL_RANK[EscalationLevel.B]:
        escalation = EscalationLevel.B

    notes: List[str] = []
    if uncertainties:
        notes.append("Unsicherheiten in der Anamnese vorhanden.")
    if contradictions_present:
        notes.append("Widerspruch zwischen Angaben und relevanten Negativbefunden.")
    if any(not r.verified for r in triggered):
        notes.append("Nicht verifizierte Treffer erfordern Pruefung.")

    if escalation is not None:
        logger.info(
            "safety escalation %s (rules=%s)",
            escalation.value,
            ",".join(f.rule_id for f in findings) or "-",
        )

    return SafetyEvaluation(
        red_flag_present=any(
            f.level in (EscalationLevel.A, EscalationLevel.B) for f in findings
        ),
        escalation_level=escalation,
        red_flags=findings,
        triggered_rules=triggered,
        rule_ids=[r.rule_id for r in triggered if r.verified],
        check_ids=[
            check_id_for("EVIDENCE", policy_version),
            check_id_for("CONTRADICTION", policy_version),
        ],
        contradictions_present=contradictions_present,
        safety_questions=(
            list(SAFETY_QUESTIONS_LEVEL_C) if escalation == EscalationLevel.C else []
        ),
        quality=SafetyQuality(
            confidence="low" if uncertainties else "medium",
            notes=notes,
        ),
        policy_version=policy_version,
    )


def format_safety_summary_line(evaluation: SafetyEvaluation) -> str:
    """One-line German summary for exports and clinician views."""
    if evaluation.escalation_level is None:
        return "Red Flags: keine."
    ids = ", ".join(f.id for f in evaluation.red_flags) or "-"
    line = f"Red Flags: Level {evaluation.escalation_level.value} ({ids})."
    if evaluation.escalation_level == EscalationLevel.C and evaluation.safety_questions:
        line += " Sicherheitsfragen: " + " ".join(evaluation.safety_questions)
    return line
