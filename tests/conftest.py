"""
Pytest Configuration and Fixtures

Shared fixtures for the clinical reasoning engine tests. The environment is
pinned to an in-memory SQLite database before anything from `cre` is imported.
"""
import os
from datetime import datetime, timezone

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest

from cre.db import Base, engine
from cre.intake.schema import ChatMessage, HistoryOfPresentIllness, StructuredIntakeData
from cre.services.config_store import ConfigStore


@pytest.fixture
def now() -> datetime:
    """Fixed evaluation time."""
    return datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_intake():
    """Factory for structured intakes; HPI fields go in via `hpi`."""

    def _make(hpi=None, **fields) -> StructuredIntakeData:
        return StructuredIntakeData(
            history_of_present_illness=HistoryOfPresentIllness(**(hpi or {})),
            **fields,
        )

    return _make


@pytest.fixture
def complete_intake(make_intake) -> StructuredIntakeData:
    """Every core objective filled, nothing that triggers extended workup."""
    return make_intake(
        chief_complaint="Kopfschmerzen",
        hpi={
            "onset": "seit 5 Tagen",
            "duration": "5 Tage",
            "course": "unveraendert",
            "trigger": "Bildschirmarbeit",
            "frequency": "taeglich",
        },
        medication=["Ibuprofen bei Bedarf"],
        past_medical_history=["Blinddarm-OP 2010"],
        prior_findings=["Blutbild 2023 unauffaellig"],
        psychosocial_factors=["Hohe Arbeitslast"],
    )


@pytest.fixture
def messages():
    """Factory: messages("text a", "text b") -> msg-1, msg-2."""

    def _make(*contents):
        return [
            ChatMessage(id=f"msg-{index}", content=content)
            for index, content in enumerate(contents, start=1)
        ]

    return _make


@pytest.fixture
def store() -> ConfigStore:
    """Config store on freshly created tables."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    return ConfigStore()
