# cre/models.py
from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from cre.db import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConfigVersion(Base):
    """
    One version of a safety policy or reasoning config for one scope.

    At most one version per (kind, scope_type, scope_id) is `active`;
    activating a draft archives the previous active version.
    """
    __tablename__ = "config_versions"

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=generate_uuid
    )
    kind: Mapped[str] = mapped_column(String, nullable=False)
    scope_type: Mapped[str] = mapped_column(String, nullable=False, default="global")
    # "" for the global scope so the unique constraint holds
    scope_id: Mapped[str] = mapped_column(String, nullable=False, default="")
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    config_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "kind IN ('safety_policy', 'reasoning')",
            name="ck_config_versions_kind_valid",
        ),
        CheckConstraint(
            "scope_type IN ('global', 'organization', 'funnel')",
            name="ck_config_versions_scope_type_valid",
        ),
        CheckConstraint(
            "status IN ('draft', 'active', 'archived')",
            name="ck_config_versions_status_valid",
        ),
        UniqueConstraint(
            "kind", "scope_type", "scope_id", "version",
            name="uq_config_versions_scope_version",
        ),
    )
