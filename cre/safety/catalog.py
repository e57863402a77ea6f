# cre/safety/catalog.py
"""
Clinical red flag allowlist.

The only red flags the evaluator can ever emit are the eight categories below.
Patterns are matched as substrings of normalized text (lowercase, no
diacritics), so umlaut and non-umlaut spellings collapse to one form.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple

from cre.states import EscalationLevel


class ClinicalRedFlag(str, Enum):
    CHEST_PAIN = "CHEST_PAIN"
    SYNCOPE = "SYNCOPE"
    SEVERE_DYSPNEA = "SEVERE_DYSPNEA"
    SUICIDAL_IDEATION = "SUICIDAL_IDEATION"
    ACUTE_PSYCHIATRIC_CRISIS = "ACUTE_PSYCHIATRIC_CRISIS"
    SEVERE_PALPITATIONS = "SEVERE_PALPITATIONS"
    ACUTE_NEUROLOGICAL = "ACUTE_NEUROLOGICAL"
    SEVERE_UNCONTROLLED_SYMPTOMS = "SEVERE_UNCONTROLLED_SYMPTOMS"


@dataclass(frozen=True)
class RedFlagRule:
    flag: ClinicalRedFlag
    title: str
    domain: str
    level: EscalationLevel
    rationale: str


RED_FLAG_PATTERNS: Dict[ClinicalRedFlag, Tuple[str, ...]] = {
    ClinicalRedFlag.CHEST_PAIN: (
        "brustschmerz",
        "herzschmerz",
        "schmerz in der brust",
        "schmerzen in der brust",
        "brust druck",
        "brustdruck",
        "herzenge",
        "angina pectoris",
        "stechen in der brust",
        "brennen in der brust",
        "engegefühl brust",
        "chest pain",
        "chest discomfort",
        "chest pressure",
        "heart pain",
        "angina",
        "tightness in chest",
        "crushing chest",
        "squeezing chest",
    ),
    ClinicalRedFlag.SYNCOPE: (
        "ohnmacht",
        "ohnmächtig",
        "bewusstlos",
        "umgekippt",
        "kollabiert",
        "zusammengebrochen",
        "black out",
        "schwarz vor augen",
        "bewusstsein verloren",
        "synkope",
        "syncope",
        "fainted",
        "passed out",
        "lost consciousness",
        "blacked out",
        "collapsed",
        "blackout",
    ),
    ClinicalRedFlag.SEVERE_DYSPNEA: (
        "atemnot",
        "keine luft",
        "kaum luft",
        "nicht atmen",
        "erstick",
        "luftnot",
        "schwer zu atmen",
        "kurzatmig",
        "dyspnoe",
        "cant breathe",
        "cannot breathe",
        "shortness of breath",
        "difficulty breathing",
        "gasping for air",
        "suffocating",
        "dyspnea",
        "severe breathlessness",
    ),
    ClinicalRedFlag.SUICIDAL_IDEATION: (
        "suizid",
        "selbstmord",
        "umbringen",
        "sterben will",
        "nicht mehr leben",
        "selbstverletzung",
        "verletze mich",
        "selbstschädigung",
        "leben beenden",
        "todesgedanken",
        "suicide",
        "kill myself",
        "end my life",
        "self-harm",
        "self harm",
        "hurt myself",
        "suicidal",
        "want to die",
        "better off dead",
    ),
    ClinicalRedFlag.ACUTE_PSYCHIATRIC_CRISIS: (
        "panikattacke",
        "akute panik",
        "totale panik",
        "nervenzusammenbruch",
        "psychose",
        "halluzinationen",
        "stimmen hören",
        "höre stimmen",
        "wahnvorstellungen",
        "akute krise",
        "psychiatrischer notfall",
        "panic attack",
        "severe panic",
        "psychotic",
        "hallucinations",
        "hearing voices",
        "delusions",
        "nervous breakdown",
        "psychiatric emergency",
        "mental breakdown",
    ),
    ClinicalRedFlag.SEVERE_PALPITATIONS: (
        "herzrasen",
        "herz rast",
        "herzrhythmusstörung",
        "arrhythmie",
        "herzstolpern",
        "puls über 150",
        "puls sehr schnell",
        "herzjagen",
        "heart racing",
        "severe palpitations",
        "arrhythmia",
        "irregular heartbeat",
        "heart rate over 150",
        "tachycardia",
    ),
    ClinicalRedFlag.ACUTE_NEUROLOGICAL: (
        "schlaganfall",
        "lähmung",
        "gesichtslähmung",
        "sprachstörung plötzlich",
        "plötzliche sprachstörung",
        "sehstörung plötzlich",
        "plötzliche sehstörung",
        "kribbeln halbseitig",
        "halbseitiges kribbeln",
        "taubheit halbseitig",
        "halbseitige taubheit",
        "kann nicht sprechen",
        "kann plötzlich nicht sprechen",
        "koordinationsverlust",
        "stroke",
        "paralysis",
        "facial droop",
        "sudden speech difficulty",
        "sudden vision loss",
        "one-sided numbness",
        "one-sided weakness",
        "cannot speak suddenly",
        "loss of coordination",
    ),
    ClinicalRedFlag.SEVERE_UNCONTROLLED_SYMPTOMS: (
        "notfall",
        "akute gefahr",
        "unerträglich",
        "unkontrollierbar",
        "sofort hilfe",
        "dringend hilfe",
        "notaufnahme",
        "krankenwagen",
        "rettungsdienst",
        "emergency",
        "acute danger",
        "unbearable",
        "uncontrollable",
        "immediate help",
        "urgent help",
        "ambulance",
    ),
}


RED_FLAG_RULES: Dict[ClinicalRedFlag, RedFlagRule] = {
    ClinicalRedFlag.CHEST_PAIN: RedFlagRule(
        flag=ClinicalRedFlag.CHEST_PAIN,
        title="Brustschmerz",
        domain="cardio",
        level=EscalationLevel.B,
        rationale="Brustschmerz erfordert eine priorisierte Abklaerung.",
    ),
    ClinicalRedFlag.SYNCOPE: RedFlagRule(
        flag=ClinicalRedFlag.SYNCOPE,
        title="Synkope",
        domain="cardio",
        level=EscalationLevel.B,
        rationale="Synkope oder Bewusstseinsverlust erfordert eine dringende Abklaerung.",
    ),
    ClinicalRedFlag.SEVERE_DYSPNEA: RedFlagRule(
        flag=ClinicalRedFlag.SEVERE_DYSPNEA,
        title="Schwere Atemnot",
        domain="respiratory",
        level=EscalationLevel.A,
        rationale="Schwere Atemnot erfordert sofortige medizinische Abklaerung.",
    ),
    ClinicalRedFlag.SUICIDAL_IDEATION: RedFlagRule(
        flag=ClinicalRedFlag.SUICIDAL_IDEATION,
        title="Suizidale Gedanken",
        domain="mental-health",
        level=EscalationLevel.A,
        rationale=(
            "Suizidale Gedanken erfordern sofortige Hilfe und Unterbrechung "
            "des digitalen Prozesses."
        ),
    ),
    ClinicalRedFlag.ACUTE_PSYCHIATRIC_CRISIS: RedFlagRule(
        flag=ClinicalRedFlag.ACUTE_PSYCHIATRIC_CRISIS,
        title="Akute psychische Krise",
        domain="mental-health",
        level=EscalationLevel.B,
        rationale="Akute psychische Krise erfordert priorisierte aerztliche Ruecksprache.",
    ),
    ClinicalRedFlag.SEVERE_PALPITATIONS: RedFlagRule(
        flag=ClinicalRedFlag.SEVERE_PALPITATIONS,
        title="Ausgepraegte Palpitationen",
        domain="cardio",
        level=EscalationLevel.B,
        rationale="Ausgepraegte Palpitationen erfordern priorisierte Abklaerung.",
    ),
    ClinicalRedFlag.ACUTE_NEUROLOGICAL: RedFlagRule(
        flag=ClinicalRedFlag.ACUTE_NEUROLOGICAL,
        title="Akute neurologische Ausfaelle",
        domain="neurology",
        level=EscalationLevel.A,
        rationale="Akute neurologische Ausfaelle erfordern sofortige Abklaerung.",
    ),
    ClinicalRedFlag.SEVERE_UNCONTROLLED_SYMPTOMS: RedFlagRule(
        flag=ClinicalRedFlag.SEVERE_UNCONTROLLED_SYMPTOMS,
        title="Schwere unkontrollierte Symptome",
        domain="general",
        level=EscalationLevel.A,
        rationale="Schwere unkontrollierbare Symptome erfordern eine sofortige Abklaerung.",
    ),
}


# Phrases in `relevant_negatives` that explicitly deny a flag.
CONTRADICTION_PATTERNS: Dict[str, Tuple[str, ...]] = {
    ClinicalRedFlag.CHEST_PAIN.value: (
        "kein brustschmerz",
        "keine brustschmerzen",
        "no chest pain",
    ),
    ClinicalRedFlag.SYNCOPE.value: (
        "keine ohnmacht",
        "keine synkope",
        "no syncope",
        "no fainting",
    ),
    ClinicalRedFlag.SEVERE_DYSPNEA.value: (
        "keine atemnot",
        "keine luftnot",
        "no shortness of breath",
    ),
    ClinicalRedFlag.SEVERE_PALPITATIONS.value: (
        "kein herzrasen",
        "keine palpitationen",
        "no palpitations",
    ),
    ClinicalRedFlag.SUICIDAL_IDEATION.value: (
        "kein suizid",
        "keine suizidgedanken",
        "no suicidal",
    ),
}


SAFETY_QUESTIONS_LEVEL_C: List[str] = [
    "Haben Sie aktuell Brustschmerzen oder Druck in der Brust?",
    "Gab es Ohnmacht, starke Benommenheit oder Bewusstseinsverlust?",
    "Haben Sie Gedanken, sich selbst etwas anzutun?",
]


def rule_id_for(finding_id: str, policy_version: str) -> str:
    """`CHEST_PAIN` -> `SFTY-2.1-R-CHEST-PAIN`."""
    return f"SFTY-{policy_version}-R-{finding_id.replace('_', '-')}"


def check_id_for(check: str, policy_version: str) -> str:
    return f"SFTY-{policy_version}-C-{check}"
