# cre/services/config_store.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from cre.db import Base, SessionLocal, engine
from cre.models import ConfigVersion
from cre.reasoning.config import (
    ClinicalReasoningConfig,
    ReasoningConfigVersion,
    select_active_reasoning_config,
    validate_reasoning_config,
)
from cre.safety.policy import DEFAULT_SAFETY_POLICY, merge_safety_policy, validate_safety_policy
from cre.safety.schema import SafetyPolicy, SafetyPolicyPatch
from cre.utils.exceptions import ConfigNotFoundError, ConfigStoreError, InvalidConfigError
from cre.utils.validation import ValidationOutcome, issues_from_error

logger = logging.getLogger(__name__)


@contextmanager
def db_session():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """
    Create all tables.
    Call this once at startup (the API does it in its startup hook).
    """
    Base.metadata.create_all(bind=engine)


class ConfigKind(str, Enum):
    SAFETY_POLICY = "safety_policy"
    REASONING = "reasoning"


class ConfigScope(str, Enum):
    GLOBAL = "global"
    ORGANIZATION = "organization"
    FUNNEL = "funnel"


class ConfigVersionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: ConfigKind
    scope_type: ConfigScope
    scope_id: str
    version: int
    status: str
    config_json: dict
    change_reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None


def _validate_payload(kind: ConfigKind, scope: ConfigScope, payload: Any) -> ValidationOutcome:
    if kind == ConfigKind.REASONING:
        return validate_reasoning_config(payload)
    if scope == ConfigScope.GLOBAL:
        return validate_safety_policy(payload)
    # organization / funnel layers are partial
    try:
        return ValidationOutcome.success(SafetyPolicyPatch.model_validate(payload))
    except ValidationError as exc:
        return ValidationOutcome.failure(
            "invalid_policy_patch",
            "Safety policy override failed validation.",
            issues_from_error(exc),
        )


class ConfigStore:
    """
    Versioned config store for safety policies and reasoning configs.

    Versions move draft -> active -> archived. Readers always get a usable
    value: the built-in default policy / seed reasoning config when nothing
    is active.
    """

    def create_draft(
        self,
        kind: ConfigKind,
        config_json: dict,
        scope_type: ConfigScope = ConfigScope.GLOBAL,
        scope_id: Optional[str] = None,
        change_reason: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> ConfigVersionRecord:
        kind, scope_type = ConfigKind(kind), ConfigScope(scope_type)
        outcome = _validate_payload(kind, scope_type, config_json)
        if not outcome.ok:
            raise InvalidConfigError(outcome.message or "Invalid config", issues=outcome.issues)

        try:
            with db_session() as session:
                latest = session.scalar(
                    select(func.max(ConfigVersion.version)).where(
                        ConfigVersion.kind == kind.value,
                        ConfigVersion.scope_type == scope_type.value,
                        ConfigVersion.scope_id == (scope_id or ""),
                    )
                )
                row = ConfigVersion(
                    kind=kind.value,
                    scope_type=scope_type.value,
                    scope_id=scope_id or "",
                    version=(latest or 0) + 1,
                    status="draft",
                    config_json=config_json,
                    change_reason=change_reason,
                    created_by=created_by,
                    created_at=datetime.now(timezone.utc),
                )
                session.add(row)
                session.flush()
                record = ConfigVersionRecord.model_validate(row)
        except SQLAlchemyError as exc:
            raise ConfigStoreError("Failed to create draft", details={"kind": kind.value}) from exc

        logger.info("created %s draft v%d (%s)", kind.value, record.version, scope_type.value)
        return record

    def update_draft(self, version_id: str, config_json: dict) -> ConfigVersionRecord:
        with db_session() as session:
            row = session.get(ConfigVersion, version_id)
            if row is None:
                raise ConfigNotFoundError(f"Config version {version_id} not found")
            if row.status != "draft":
                raise ConfigStoreError(
                    "Only draft versions can be edited",
                    details={"version_id": version_id, "status": row.status},
                )
            outcome = _validate_payload(
                ConfigKind(row.kind), ConfigScope(row.scope_type), config_json
            )
            if not outcome.ok:
                raise InvalidConfigError(outcome.message or "Invalid config", issues=outcome.issues)
            row.config_json = config_json
            session.flush()
            return ConfigVersionRecord.model_validate(row)

    def activate(self, version_id: str) -> ConfigVersionRecord:
        with db_session() as session:
            row = session.get(ConfigVersion, version_id)
            if row is None:
                raise ConfigNotFoundError(f"Config version {version_id} not found")
            if row.status == "archived":
                raise ConfigStoreError(
                    "Archived versions cannot be activated",
                    details={"version_id": version_id},
                )

            previous = session.scalars(
                select(ConfigVersion).where(
                    ConfigVersion.kind == row.kind,
                    ConfigVersion.scope_type == row.scope_type,
                    ConfigVersion.scope_id == row.scope_id,
                    ConfigVersion.status == "active",
                    ConfigVersion.id != row.id,
                )
            ).all()
            for old in previous:
                old.status = "archived"

            row.status = "active"
            row.activated_at = datetime.now(timezone.utc)
            session.flush()
            record = ConfigVersionRecord.model_validate(row)

        logger.info(
            "activated %s v%d (%s), archived %d",
            record.kind.value,
            record.version,
            record.scope_type.value,
            len(previous),
        )
        return record

    def list_versions(
        self,
        kind: ConfigKind,
        scope_type: ConfigScope = ConfigScope.GLOBAL,
        scope_id: Optional[str] = None,
    ) -> List[ConfigVersionRecord]:
        with db_session() as session:
            rows = session.scalars(
                select(ConfigVersion)
                .where(
                    ConfigVersion.kind == ConfigKind(kind).value,
                    ConfigVersion.scope_type == ConfigScope(scope_type).value,
                    ConfigVersion.scope_id == (scope_id or ""),
                )
                .order_by(ConfigVersion.version.desc())
            ).all()
            return [ConfigVersionRecord.model_validate(r) for r in rows]

    def get_active(
        self,
        kind: ConfigKind,
        scope_type: ConfigScope = ConfigScope.GLOBAL,
        scope_id: Optional[str] = None,
    ) -> Optional[ConfigVersionRecord]:
        for record in self.list_versions(kind, scope_type, scope_id):
            if record.status == "active":
                return record
        return None

    def load_safety_policy(
        self,
        organization_id: Optional[str] = None,
        funnel_id: Optional[str] = None,
    ) -> SafetyPolicy:
        base_record = self.get_active(ConfigKind.SAFETY_POLICY)
        base = (
            SafetyPolicy.model_validate(base_record.config_json)
            if base_record
            else DEFAULT_SAFETY_POLICY
        )

        org_patch = None
        if organization_id:
            record = self.get_active(
                ConfigKind.SAFETY_POLICY, ConfigScope.ORGANIZATION, organization_id
            )
            org_patch = record.config_json if record else None

        funnel_patch = None
        if funnel_id:
            record = self.get_active(ConfigKind.SAFETY_POLICY, ConfigScope.FUNNEL, funnel_id)
            funnel_patch = record.config_json if record else None

        return merge_safety_policy(base, org_patch, funnel_patch)

    def get_active_reasoning_config(self) -> Tuple[ClinicalReasoningConfig, Optional[int]]:
        versions = [
            ReasoningConfigVersion(
                version=r.version,
                status=r.status,
                config=ClinicalReasoningConfig.model_validate(r.config_json),
                change_reason=r.change_reason,
                created_by=r.created_by,
                created_at=r.created_at.isoformat() if r.created_at else None,
            )
            for r in self.list_versions(ConfigKind.REASONING)
            if r.status == "active"
        ]
        return select_active_reasoning_config(versions)

    def get_reasoning_config(self, version_id: str) -> Tuple[ClinicalReasoningConfig, int]:
        with db_session() as session:
            row = session.get(ConfigVersion, version_id)
            if row is None or row.kind != ConfigKind.REASONING.value:
                raise ConfigNotFoundError(
                    f"Reasoning config version {version_id} not found", kind="reasoning"
                )
            return ClinicalReasoningConfig.model_validate(row.config_json), row.version
