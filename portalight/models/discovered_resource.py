from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from portalight.shared.db.base import Base, utcnow


class ResourceStatus(str, Enum):
    ACTIVE = "active"
    # Provisional marker set at the start of a sweep.
    UNKNOWN = "unknown"
    DELETED = "deleted"


class DiscoveredResource(Base):
    """
    A cloud resource associated with a project, found by discovery, manual
    association or provisioning self-registration.

    (project_id, arn) is the upsert key. Sweeps only move status between
    active/unknown/deleted; rows are removed only by explicit user action.
    """

    __tablename__ = "discovered_resources"
    __table_args__ = (
        UniqueConstraint("project_id", "arn", name="uq_discovered_resources_project_arn"),
        Index("ix_discovered_resources_project_secret", "project_id", "secret_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    secret_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("cloud_secrets.id", ondelete="SET NULL"), nullable=True
    )
    arn: Mapped[str] = mapped_column(String(1024), nullable=False)
    # s3 | sqs | sns | rds | lambda
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    region: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ResourceStatus.ACTIVE.value,
        server_default=ResourceStatus.ACTIVE.value,
        index=True,
    )
    resource_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        default=dict,
    )
    discovered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "secret_id": str(self.secret_id) if self.secret_id else None,
            "arn": self.arn,
            "resource_type": self.resource_type,
            "name": self.name,
            "region": self.region,
            "status": self.status,
            "metadata": self.resource_metadata or {},
            "discovered_at": self.discovered_at.isoformat() if self.discovered_at else None,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
        }
