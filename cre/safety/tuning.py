# cre/safety/tuning.py
"""
Per-rule tuning for red flag rules.

A keyword hit alone is rarely enough to escalate. Tuning narrows a rule with
qualifier groups and exclusion terms, evaluated over the evidence texts that
carry the keyword hit (one text = one chat message or one intake field).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence

from pydantic import BaseModel, Field

from cre.safety.catalog import ClinicalRedFlag
from cre.safety.evidence import normalize_text


class ExclusionMode(str, Enum):
    ALWAYS = "always"
    ONLY_IF_UNQUALIFIED = "only_if_unqualified"


class RuleTuning(BaseModel):
    # Qualified if every term of at least one group occurs in a single text.
    any_of: List[List[str]] = Field(default_factory=list)
    # Every term must occur somewhere in the evidence, possibly across texts.
    all_of: List[str] = Field(default_factory=list)
    exclusions: List[str] = Field(default_factory=list)
    exclusion_mode: ExclusionMode = ExclusionMode.ALWAYS
    # A-level severity needs one of these groups (single-text semantics);
    # otherwise the rule is downgraded to B.
    a_level_requires_any_of: List[List[str]] = Field(default_factory=list)


@dataclass(frozen=True)
class TuningOutcome:
    kept_texts: tuple[str, ...]
    qualified: bool
    excluded: bool
    a_level_hit: bool
    reasons: tuple[str, ...] = ()


def _group_in_text(group: Sequence[str], text: str) -> bool:
    terms = [normalize_text(term) for term in group if normalize_text(term)]
    return bool(terms) and all(term in text for term in terms)


def _any_group_in_single_text(groups: Sequence[Sequence[str]], texts: Sequence[str]) -> bool:
    return any(_group_in_text(group, text) for group in groups for text in texts)


def _has_any(terms: Sequence[str], text: str) -> bool:
    return any(normalize_text(term) and normalize_text(term) in text for term in terms)


def apply_tuning(tuning: RuleTuning, texts: Sequence[str]) -> TuningOutcome:
    """
    Evaluate a rule's tuning against normalized evidence texts.

    With `always`, a text containing an exclusion term is dropped as evidence.
    With `only_if_unqualified`, an exclusion term only disqualifies the rule
    when no qualifier group matched.
    """
    reasons: List[str] = []
    kept = list(texts)

    if tuning.exclusion_mode == ExclusionMode.ALWAYS and tuning.exclusions:
        kept = [text for text in texts if not _has_any(tuning.exclusions, text)]
        if texts and not kept:
            reasons.append("excluded")

    any_of_ok = not tuning.any_of or _any_group_in_single_text(tuning.any_of, kept)
    all_of_ok = all(
        any(normalize_text(term) in text for text in kept) for term in tuning.all_of
    )
    qualified = bool(kept) and any_of_ok and all_of_ok
    if kept and not any_of_ok:
        reasons.append("no_qualifier")
    if kept and not all_of_ok:
        reasons.append("all_of_missing")

    excluded = bool(texts) and not kept
    if (
        tuning.exclusion_mode == ExclusionMode.ONLY_IF_UNQUALIFIED
        and not qualified
        and any(_has_any(tuning.exclusions, text) for text in kept)
    ):
        excluded = True
        reasons.append("excluded_unqualified")

    a_level_hit = not tuning.a_level_requires_any_of or _any_group_in_single_text(
        tuning.a_level_requires_any_of, kept
    )

    return TuningOutcome(
        kept_texts=tuple(kept),
        qualified=qualified and not excluded,
        excluded=excluded,
        a_level_hit=a_level_hit,
        reasons=tuple(reasons),
    )


DEFAULT_RULE_TUNING: Dict[str, RuleTuning] = {
    ClinicalRedFlag.CHEST_PAIN.value: RuleTuning(
        any_of=[
            ["akut"],
            ["ausstrahl"],
            ["in den arm"],
            ["linken arm"],
            ["kiefer"],
            ["druck auf der brust"],
            ["druckgefuhl"],
            ["engegefuhl"],
            ["brustdruck"],
            ["schweiss"],
            ["atemnot"],
            ["luftnot"],
            ["ubelkeit"],
            ["belastung"],
            ["plotzlich"],
            ["stark"],
            ["radiat"],
            ["crushing"],
            ["squeezing"],
            ["sweat"],
            ["sudden"],
            ["severe"],
        ],
        exclusions=["kein brustschmerz", "keine brustschmerzen", "no chest pain"],
        exclusion_mode=ExclusionMode.ALWAYS,
    ),
    ClinicalRedFlag.SYNCOPE.value: RuleTuning(
        exclusions=[
            "keine ohnmacht",
            "keine synkope",
            "nicht bewusstlos",
            "no fainting",
            "no syncope",
        ],
        exclusion_mode=ExclusionMode.ALWAYS,
    ),
    ClinicalRedFlag.SEVERE_DYSPNEA.value: RuleTuning(
        exclusions=["keine atemnot", "keine luftnot", "no shortness of breath"],
        exclusion_mode=ExclusionMode.ALWAYS,
        a_level_requires_any_of=[
            ["stark"],
            ["schwer"],
            ["kaum luft"],
            ["keine luft"],
            ["erstick"],
            ["in ruhe"],
            ["nicht atmen"],
            ["cannot breathe"],
            ["cant breathe"],
            ["gasping"],
            ["suffocat"],
            ["severe"],
        ],
    ),
    ClinicalRedFlag.SUICIDAL_IDEATION.value: RuleTuning(
        exclusions=["keine suizidgedanken", "kein suizid", "no suicidal"],
        exclusion_mode=ExclusionMode.ALWAYS,
        a_level_requires_any_of=[
            ["umbringen"],
            ["einen plan"],
            ["leben beenden"],
            ["sterben will"],
            ["mich toten"],
            ["kill myself"],
            ["end my life"],
            ["a plan"],
            ["want to die"],
        ],
    ),
    ClinicalRedFlag.SEVERE_PALPITATIONS.value: RuleTuning(
        any_of=[
            ["umgekippt"],
            ["ohnmacht"],
            ["bewusstlos"],
            ["schwarz vor augen"],
            ["schwindel"],
            ["brustschmerz"],
            ["atemnot"],
            ["extrem"],
            ["unkontrolliert"],
            ["stark"],
            ["150"],
            ["arrhythmie"],
            ["herzrhythmusstorung"],
            ["herzjagen"],
            ["severe"],
            ["uncontrollabl"],
            ["faint"],
            ["passed out"],
            ["dizz"],
        ],
        exclusions=["angst", "stress", "panik", "aufregung", "nervos", "anxiety"],
        exclusion_mode=ExclusionMode.ONLY_IF_UNQUALIFIED,
    ),
    ClinicalRedFlag.SEVERE_UNCONTROLLED_SYMPTOMS.value: RuleTuning(
        exclusions=["kein notfall", "no emergency"],
        exclusion_mode=ExclusionMode.ALWAYS,
    ),
}


def resolve_rule_tuning(
    overrides: Dict[str, RuleTuning] | None = None,
) -> Dict[str, RuleTuning]:
    """Default tuning with per-rule overrides replacing whole entries."""
    resolved = dict(DEFAULT_RULE_TUNING)
    for finding_id, tuning in (overrides or {}).items():
        resolved[finding_id] = tuning
    return resolved
