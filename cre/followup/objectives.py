# cre/followup/objectives.py
"""
Objective slots: the discrete pieces of clinical information the follow-up
wants from the patient. Objectives are derived fresh from the intake on every
evaluation; nothing here is stored separately.
"""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from cre.followup.schema import ClinicalFollowupObjective
from cre.intake.schema import StructuredIntakeData
from cre.states import ObjectiveStatus


def slugify(value: Optional[str]) -> str:
    """`Seit wann?` -> `seit-wann`; used for question ids and text dedup."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]+", "-", stripped).strip("-")


def _text(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _items(values: Iterable[str]) -> bool:
    return any(_text(v) for v in values)


@dataclass(frozen=True)
class ObjectiveSlot:
    slot: str
    label: str
    field_path: str
    question: str
    why: str
    priority: int
    block_id: str
    is_filled: Callable[[StructuredIntakeData], bool]
    extended: bool = False

    @property
    def objective_id(self) -> str:
        return f"objective:{self.slot}"

    @property
    def question_id(self) -> str:
        return f"gap:{self.slot}"


OBJECTIVE_SLOTS: tuple[ObjectiveSlot, ...] = (
    ObjectiveSlot(
        slot="chief-complaint",
        label="Leitsymptom",
        field_path="structured_data.chief_complaint",
        question="Was ist aktuell Ihr Hauptanliegen oder das wichtigste Symptom?",
        why="Leitsymptom für die Einordnung fehlt",
        priority=1,
        block_id="core_symptom_profile",
        is_filled=lambda d: _text(d.chief_complaint),
    ),
    ObjectiveSlot(
        slot="onset",
        label="Beschwerdebeginn",
        field_path="structured_data.history_of_present_illness.onset",
        question="Seit wann bestehen die Beschwerden?",
        why="Beginn der Beschwerden fehlt",
        priority=1,
        block_id="core_symptom_profile",
        is_filled=lambda d: _text(d.history_of_present_illness.onset),
    ),
    ObjectiveSlot(
        slot="duration",
        label="Beschwerdedauer",
        field_path="structured_data.history_of_present_illness.duration",
        question="Wie lange halten die Beschwerden typischerweise an?",
        why="Dauer ist für Verlauf und Risiko relevant",
        priority=2,
        block_id="core_symptom_profile",
        is_filled=lambda d: _text(d.history_of_present_illness.duration),
    ),
    ObjectiveSlot(
        slot="course",
        label="Beschwerdeverlauf",
        field_path="structured_data.history_of_present_illness.course",
        question=(
            "Haben sich die Beschwerden zuletzt eher verbessert, verschlechtert "
            "oder sind sie unverändert?"
        ),
        why="Verlaufseinschätzung fehlt",
        priority=2,
        block_id="core_symptom_profile",
        is_filled=lambda d: _text(d.history_of_present_illness.course),
    ),
    ObjectiveSlot(
        slot="trigger",
        label="Auslöser",
        field_path="structured_data.history_of_present_illness.trigger",
        question="Gibt es Situationen oder Auslöser, nach denen die Beschwerden auftreten?",
        why="Auslöser der Beschwerden fehlen",
        priority=2,
        block_id="core_symptom_profile",
        is_filled=lambda d: _text(d.history_of_present_illness.trigger),
    ),
    ObjectiveSlot(
        slot="frequency",
        label="Häufigkeit",
        field_path="structured_data.history_of_present_illness.frequency",
        question="Wie häufig treten die Beschwerden auf?",
        why="Häufigkeit der Beschwerden fehlt",
        priority=2,
        block_id="core_symptom_profile",
        is_filled=lambda d: _text(d.history_of_present_illness.frequency),
    ),
    ObjectiveSlot(
        slot="medication",
        label="Medikationsangaben",
        field_path="structured_data.medication",
        question="Nehmen Sie aktuell Medikamente oder relevante Nahrungsergänzungsmittel ein?",
        why="Medikationskontext fehlt",
        priority=3,
        block_id="medical_context",
        is_filled=lambda d: _items(d.medication),
    ),
    ObjectiveSlot(
        slot="past-history",
        label="Vorerkrankungen",
        field_path="structured_data.past_medical_history",
        question="Sind bei Ihnen Vorerkrankungen oder frühere Operationen bekannt?",
        why="Vorerkrankungen fehlen",
        priority=3,
        block_id="medical_context",
        is_filled=lambda d: _items(d.past_medical_history),
    ),
    ObjectiveSlot(
        slot="prior-findings",
        label="Vorbefunde",
        field_path="structured_data.prior_findings",
        question="Liegen Ihnen Vorbefunde, Arztbriefe oder Laborwerte vor, die Sie hochladen können?",
        why="Vorbefunde fehlen",
        priority=3,
        block_id="medical_context",
        is_filled=lambda d: _items(d.prior_findings),
    ),
    ObjectiveSlot(
        slot="psychosocial",
        label="Psychosoziale Einflussfaktoren",
        field_path="structured_data.psychosocial_factors",
        question=(
            "Gibt es derzeit Belastungen im Alltag, Schlaf oder Stress, die die "
            "Beschwerden beeinflussen könnten?"
        ),
        why="Psychosoziale Einflussfaktoren fehlen",
        priority=3,
        block_id="supporting_context",
        is_filled=lambda d: _items(d.psychosocial_factors),
    ),
    ObjectiveSlot(
        slot="associated-symptoms",
        label="Begleitsymptome",
        field_path="structured_data.history_of_present_illness.associated_symptoms",
        question="Welche weiteren Beschwerden treten zusammen mit dem Hauptsymptom auf?",
        why="Begleitsymptome für die erweiterte Abklärung fehlen",
        priority=2,
        block_id="program_specific",
        is_filled=lambda d: _items(d.history_of_present_illness.associated_symptoms),
        extended=True,
    ),
    ObjectiveSlot(
        slot="aggravating-relieving",
        label="Verstärkende und lindernde Faktoren",
        field_path="structured_data.history_of_present_illness.aggravating_factors",
        question="Was verstärkt oder lindert Ihre Beschwerden?",
        why="Modulierende Faktoren für die erweiterte Abklärung fehlen",
        priority=2,
        block_id="program_specific",
        is_filled=lambda d: _items(d.history_of_present_illness.aggravating_factors)
        or _items(d.history_of_present_illness.relieving_factors),
        extended=True,
    ),
    ObjectiveSlot(
        slot="relevant-negatives",
        label="Relevante Negativbefunde",
        field_path="structured_data.relevant_negatives",
        question="Welche Beschwerden haben Sie ausdrücklich nicht (z. B. Fieber, Gewichtsverlust)?",
        why="Relevante Negativbefunde für die erweiterte Abklärung fehlen",
        priority=2,
        block_id="program_specific",
        is_filled=lambda d: _items(d.relevant_negatives),
        extended=True,
    ),
)

SLOTS_BY_OBJECTIVE_ID: Dict[str, ObjectiveSlot] = {s.objective_id: s for s in OBJECTIVE_SLOTS}

# Explicit overrides a caller may set; anything else is dropped.
OVERRIDE_STATUSES = frozenset(
    {ObjectiveStatus.UNCLEAR, ObjectiveStatus.ANSWERED, ObjectiveStatus.VERIFIED}
)

_RATIONALE = {
    ObjectiveStatus.RESOLVED: "Objective ist in den vorliegenden Anamnesedaten bereits befüllt.",
    ObjectiveStatus.BLOCKED_BY_SAFETY: (
        "Objective ist offen, aber durch aktiven Safety-Hard-Stop blockiert."
    ),
    ObjectiveStatus.UNCLEAR: "Angabe ist als unklar markiert und muss präzisiert werden.",
    ObjectiveStatus.ANSWERED: "Objective wurde im Follow-up beantwortet.",
    ObjectiveStatus.VERIFIED: "Objective wurde ärztlich verifiziert.",
}


def _override_status(value: Optional[str]) -> Optional[ObjectiveStatus]:
    try:
        status = ObjectiveStatus(value)
    except ValueError:
        return None
    return status if status in OVERRIDE_STATUSES else None


def derive_objective_status(
    slot: ObjectiveSlot,
    structured_data: StructuredIntakeData,
    blocked_by_safety: bool,
    overrides: Mapping[str, str],
    completed_question_ids: Iterable[str],
) -> ObjectiveStatus:
    if slot.is_filled(structured_data):
        return ObjectiveStatus.RESOLVED
    if blocked_by_safety:
        return ObjectiveStatus.BLOCKED_BY_SAFETY
    override = _override_status(overrides.get(slot.objective_id))
    if override is not None:
        return override
    if slot.question_id in set(completed_question_ids):
        return ObjectiveStatus.ANSWERED
    return ObjectiveStatus.MISSING


def build_objectives(
    structured_data: StructuredIntakeData,
    blocked_by_safety: bool,
    uc2_triggered: bool,
    overrides: Optional[Mapping[str, str]] = None,
    completed_question_ids: Iterable[str] = (),
) -> List[ClinicalFollowupObjective]:
    completed = list(completed_question_ids)
    objectives: List[ClinicalFollowupObjective] = []
    for slot in OBJECTIVE_SLOTS:
        status = derive_objective_status(
            slot, structured_data, blocked_by_safety, overrides or {}, completed
        )
        objectives.append(
            ClinicalFollowupObjective(
                id=slot.objective_id,
                label=slot.label,
                field_path=slot.field_path,
                status=status,
                rationale=_RATIONALE.get(status, slot.why),
                extended=slot.extended,
                active=uc2_triggered or not slot.extended,
            )
        )
    return objectives


def active_objective_ids(objectives: Iterable[ClinicalFollowupObjective]) -> List[str]:
    return [
        o.id
        for o in objectives
        if o.active and o.status in (ObjectiveStatus.MISSING, ObjectiveStatus.UNCLEAR)
    ]


# First match wins; order matters for overlapping words.
_OBJECTIVE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("objective:medication", ("medikament", "tablette", "medikation", "dosis", "medication")),
    ("objective:prior-findings", ("befund", "arztbrief", "labor", "bericht", "ekg", "rontgen", "report")),
    ("objective:past-history", ("vorerkrank", "diagnose", "operation", "history")),
    ("objective:onset", ("seit wann", "beginn", "angefangen", "onset")),
    ("objective:duration", ("wie lange", "dauer", "duration")),
    ("objective:frequency", ("wie oft", "haufig", "frequency")),
    ("objective:course", ("verlauf", "verschlechter", "verbesser", "course")),
    ("objective:trigger", ("ausloser", "trigger", "situation")),
    ("objective:psychosocial", ("stress", "schlaf", "belastung", "arbeit", "familie")),
    ("objective:associated-symptoms", ("begleit", "weitere beschwerden", "zusatzlich")),
    ("objective:aggravating-relieving", ("lindert", "verstarkt", "besser", "schlechter")),
    ("objective:relevant-negatives", ("ausgeschlossen", "fieber", "gewichtsverlust")),
    ("objective:chief-complaint", ("hauptanliegen", "hauptbeschwerde", "symptom")),
)


def infer_objective_id(text: Optional[str]) -> Optional[str]:
    """Keyword guess which objective a free-text clinician request belongs to."""
    normalized = slugify(text).replace("-", " ")
    if not normalized:
        return None
    for objective_id, keywords in _OBJECTIVE_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return objective_id
    return None
