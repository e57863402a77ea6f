# cre/followup/trigger.py
"""
UC2 (extended workup) trigger detection.

UC2 switches on the extended objectives and moves readiness to ProblemReady.
Each condition reports a stable reason code.
"""
from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple

from cre.followup.schema import ClinicalFollowupQuestion
from cre.intake.schema import StructuredIntakeData
from cre.safety.evidence import normalize_text
from cre.states import QuestionSource

REASON_DURATION = "duration_12w"
REASON_MULTI_CLUSTER = "multi_cluster"
REASON_CHRONIC_CONDITION = "chronic_condition"
REASON_CLINICIAN_REQUEST = "clinician_request"

UC2_DURATION_WEEKS = 12

_NUMBER_WORDS = {
    "ein": 1,
    "eine": 1,
    "einem": 1,
    "einer": 1,
    "einen": 1,
    "zwei": 2,
    "drei": 3,
    "vier": 4,
    "funf": 5,
    "sechs": 6,
    "sieben": 7,
    "acht": 8,
    "neun": 9,
    "zehn": 10,
    "elf": 11,
    "zwolf": 12,
    "one": 1,
    "a": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
}

_UNIT_WEEKS = {
    "tag": 1 / 7,
    "day": 1 / 7,
    "woche": 1.0,
    "week": 1.0,
    "monat": 52 / 12,
    "month": 52 / 12,
    "jahr": 52.0,
    "year": 52.0,
}

_DURATION_RE = re.compile(
    r"(?<![a-z0-9])(\d+(?:[.,]\d+)?|"
    + "|".join(sorted(_NUMBER_WORDS, key=len, reverse=True))
    + r")\s*(tagen|tage|tag|days|day|wochen|woche|weeks|week|monaten|monate|monat|months|month|"
    r"jahren|jahre|jahr|years|year)\b"
)

# Only used when no numeric duration parses; checked in order.
_PHRASE_FALLBACKS: Tuple[Tuple[str, float], ...] = (
    ("halben jahr", 26.0),
    ("halbes jahr", 26.0),
    ("seit jahren", 104.0),
    ("for years", 104.0),
    ("seit monaten", 12.0),
    ("for months", 12.0),
    ("ein paar wochen", 3.0),
    ("paar wochen", 3.0),
    ("einigen wochen", 3.0),
    ("seit wochen", 4.0),
    ("for weeks", 4.0),
    ("seit tagen", 0.5),
)

SYMPTOM_CLUSTERS = {
    "cardio": ("herz", "brust", "blutdruck", "palpitation", "chest"),
    "respiratory": ("atem", "husten", "luftnot", "kurzatmig", "cough", "breath"),
    "gastro": ("bauch", "magen", "ubelkeit", "erbrechen", "durchfall", "verstopfung", "sodbrennen", "nausea"),
    "neuro": ("kopfschmerz", "schwindel", "migrane", "taubheit", "kribbeln", "headache", "dizz"),
    "musculoskeletal": ("rucken", "gelenk", "muskel", "nacken", "schulter", "knie", "joint", "back pain"),
    "psych": ("angst", "panik", "depress", "niedergeschlagen", "schlafstorung", "anxiety"),
    "skin": ("haut", "ausschlag", "juckreiz", "ekzem", "rash", "itch"),
}

CAUSAL_PHRASES = (
    "wegen",
    "durch",
    "ausgelost",
    "verursacht",
    "deshalb",
    "dadurch",
    "infolge",
    "because",
    "caused by",
    "due to",
)

CHRONIC_KEYWORDS = (
    "chronisch",
    "diabetes",
    "hypertonie",
    "bluthochdruck",
    "asthma",
    "copd",
    "rheuma",
    "depression",
    "herzinsuffizienz",
    "niereninsuffizienz",
    "migrane",
    "epilepsie",
    "chronic",
)


def parse_duration_weeks(text: Optional[str]) -> Optional[float]:
    """
    Longest duration mentioned in `text`, in weeks; None when nothing parses.

    >>> parse_duration_weeks("seit 3 Monaten")
    13.0
    >>> parse_duration_weeks("seit einem halben Jahr")
    26.0
    >>> parse_duration_weeks("seit gestern") is None
    True
    """
    normalized = normalize_text(text)
    if not normalized:
        return None

    best: Optional[float] = None
    for match in _DURATION_RE.finditer(normalized):
        raw_amount, raw_unit = match.group(1), match.group(2)
        if raw_amount in _NUMBER_WORDS:
            amount = float(_NUMBER_WORDS[raw_amount])
        else:
            amount = float(raw_amount.replace(",", "."))
        unit = next(key for key in _UNIT_WEEKS if raw_unit.startswith(key))
        weeks = round(amount * _UNIT_WEEKS[unit], 2)
        if best is None or weeks > best:
            best = weeks
    if best is not None:
        return best

    for phrase, weeks in _PHRASE_FALLBACKS:
        if phrase in normalized:
            return weeks
    return None


def symptom_clusters(texts: Iterable[str]) -> List[str]:
    combined = " ".join(normalize_text(t) for t in texts if t)
    return [
        cluster
        for cluster, keywords in SYMPTOM_CLUSTERS.items()
        if any(keyword in combined for keyword in keywords)
    ]


def _has_causal_phrase(texts: Iterable[str]) -> bool:
    combined = " ".join(normalize_text(t) for t in texts if t)
    return any(re.search(rf"\b{re.escape(p)}\b", combined) for p in CAUSAL_PHRASES)


def pending_clinician_requests(
    questions: Iterable[ClinicalFollowupQuestion],
    excluded_ids: Iterable[str] = (),
) -> List[ClinicalFollowupQuestion]:
    excluded = set(excluded_ids)
    return [
        q
        for q in questions
        if q.source == QuestionSource.CLINICIAN_REQUEST and q.id not in excluded
    ]


def detect_uc2(
    structured_data: StructuredIntakeData,
    clinician_request_pending: bool = False,
    duration_weeks_threshold: float = UC2_DURATION_WEEKS,
) -> Tuple[bool, List[str]]:
    reasons: List[str] = []
    hpi = structured_data.history_of_present_illness

    weeks = parse_duration_weeks(hpi.duration)
    if weeks is None:
        weeks = parse_duration_weeks(hpi.onset)
    if weeks is not None and weeks >= duration_weeks_threshold:
        reasons.append(REASON_DURATION)

    symptom_texts = [structured_data.chief_complaint or "", *hpi.associated_symptoms]
    if len(symptom_clusters(symptom_texts)) >= 2 and not _has_causal_phrase(symptom_texts):
        reasons.append(REASON_MULTI_CLUSTER)

    history = " ".join(normalize_text(h) for h in structured_data.past_medical_history)
    if any(keyword in history for keyword in CHRONIC_KEYWORDS):
        reasons.append(REASON_CHRONIC_CONDITION)

    if clinician_request_pending:
        reasons.append(REASON_CLINICIAN_REQUEST)

    return bool(reasons), reasons
