# cre/intake/schema.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from cre.followup.schema import ClinicalFollowup
from cre.reasoning.schema import ClinicalReasoningPack
from cre.safety.schema import SafetyState


class ChatMessage(BaseModel):
    id: str = Field(..., description="Message id, e.g. 'msg-1'")
    content: str = Field(..., description="Verbatim patient message")


class HistoryOfPresentIllness(BaseModel):
    onset: Optional[str] = Field(
        None,
        description="Free-text onset, e.g. 'seit gestern'",
    )
    duration: Optional[str] = None
    course: Optional[str] = None
    trigger: Optional[str] = None
    frequency: Optional[str] = None
    associated_symptoms: List[str] = Field(default_factory=list)
    aggravating_factors: List[str] = Field(default_factory=list)
    relieving_factors: List[str] = Field(default_factory=list)

    model_config = {
        "extra": "ignore",
    }


class StructuredIntakeData(BaseModel):
    """
    Semantic record of one clinical intake.

    Owned by the caller. The engines read it and hand back new copies; they
    never change an instance in place.
    """

    status: Optional[str] = None
    chief_complaint: Optional[str] = None
    history_of_present_illness: HistoryOfPresentIllness = Field(
        default_factory=HistoryOfPresentIllness
    )

    relevant_negatives: List[str] = Field(default_factory=list)
    past_medical_history: List[str] = Field(default_factory=list)
    medication: List[str] = Field(default_factory=list)
    psychosocial_factors: List[str] = Field(default_factory=list)
    prior_findings: List[str] = Field(default_factory=list)
    uncertainties: List[str] = Field(default_factory=list)

    red_flags: List[str] = Field(default_factory=list)
    safety: Optional[SafetyState] = None
    reasoning: Optional[ClinicalReasoningPack] = None
    followup: Optional[ClinicalFollowup] = None

    # Tolerate fields written by other collaborators (export, UI)
    model_config = {
        "extra": "ignore",
    }


def structured_field_texts(data: StructuredIntakeData) -> dict[str, str]:
    """
    Flatten the free-text fields of an intake into {field_path: text}.

    List fields are indexed (`medication[0]`) so that evidence can point at a
    single entry.
    """
    fields: dict[str, str] = {}

    def put(path: str, value: Optional[str]) -> None:
        if isinstance(value, str) and value.strip():
            fields[path] = value.strip()

    def put_list(path: str, values: List[str]) -> None:
        for index, value in enumerate(values):
            put(f"{path}[{index}]", value)

    hpi = data.history_of_present_illness
    put("chief_complaint", data.chief_complaint)
    put("history_of_present_illness.onset", hpi.onset)
    put("history_of_present_illness.duration", hpi.duration)
    put("history_of_present_illness.course", hpi.course)
    put("history_of_present_illness.trigger", hpi.trigger)
    put("history_of_present_illness.frequency", hpi.frequency)
    put_list("history_of_present_illness.associated_symptoms", hpi.associated_symptoms)
    put_list("history_of_present_illness.relieving_factors", hpi.relieving_factors)
    put_list("history_of_present_illness.aggravating_factors", hpi.aggravating_factors)
    put_list("relevant_negatives", data.relevant_negatives)
    put_list("past_medical_history", data.past_medical_history)
    put_list("medication", data.medication)
    put_list("psychosocial_factors", data.psychosocial_factors)
    put_list("uncertainties", data.uncertainties)
    return fields
