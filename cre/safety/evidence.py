# cre/safety/evidence.py
"""
Evidence normalization and the immutable evidence context used to verify
red-flag matches against what the patient actually wrote.
"""
from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from cre.intake.schema import ChatMessage, StructuredIntakeData, structured_field_texts


def normalize_text(value: Optional[str]) -> str:
    """Lowercase, strip diacritics (NFKD) and trim."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.strip()


def contains_term(text: str, term: str) -> bool:
    """Substring match after normalizing both sides."""
    needle = normalize_text(term)
    return bool(needle) and needle in normalize_text(text)


def build_message_index(messages: Iterable[ChatMessage]) -> dict[str, str]:
    """
    Map message id -> normalized content, in conversation order.
    The first message wins when an id repeats; empty ids/contents are skipped.
    """
    index: dict[str, str] = {}
    for message in messages:
        message_id = (message.id or "").strip()
        content = normalize_text(message.content)
        if not message_id or not content or message_id in index:
            continue
        index[message_id] = content
    return index


@dataclass(frozen=True)
class EvidenceText:
    source: str  # "chat" | "intake"
    source_id: str
    text: str  # normalized
    field_path: Optional[str] = None


@dataclass(frozen=True)
class EvidenceContext:
    """
    Everything a red-flag match may be traced back to.

    `messages` holds normalized chat content by id. `fields` holds normalized
    structured field texts by field path; they only count as evidence when
    `intake_id` is set, so that a claim always points at a concrete record.
    """

    messages: Mapping[str, str] = field(default_factory=dict)
    fields: Mapping[str, str] = field(default_factory=dict)
    intake_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", MappingProxyType(dict(self.messages)))
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    @classmethod
    def build(
        cls,
        structured_data: StructuredIntakeData,
        messages: Iterable[ChatMessage] = (),
        intake_id: Optional[str] = None,
    ) -> "EvidenceContext":
        fields = {
            path: normalize_text(text)
            for path, text in structured_field_texts(structured_data).items()
        }
        return cls(
            messages=build_message_index(messages),
            fields=fields,
            intake_id=(intake_id or "").strip() or None,
        )

    def texts(self) -> list[EvidenceText]:
        """All traceable texts: chat messages first, then intake fields."""
        result = [
            EvidenceText(source="chat", source_id=message_id, text=content)
            for message_id, content in self.messages.items()
        ]
        if self.intake_id:
            result.extend(
                EvidenceText(
                    source="intake",
                    source_id=self.intake_id,
                    text=text,
                    field_path=path,
                )
                for path, text in self.fields.items()
            )
        return result

    def verify_chat(self, message_id: str, pattern: str) -> bool:
        content = self.messages.get(message_id)
        return content is not None and contains_term(content, pattern)

    def verify_intake(
        self, source_id: str, field_path: Optional[str], pattern: str
    ) -> bool:
        if not self.intake_id or source_id != self.intake_id or not field_path:
            return False
        text = self.fields.get(field_path)
        return text is not None and contains_term(text, pattern)
