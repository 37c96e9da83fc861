from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from portalight.shared.db.base import Base, utcnow


class ProvisioningStatus(str, Enum):
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    FAILED = "failed"


class ProvisionedResource(Base):
    """A resource requested through the portal; the row is written before the cloud call."""

    __tablename__ = "provisioned_resources"
    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "resource_type",
            "name",
            name="uq_provisioned_resources_project_type_name",
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    secret_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("cloud_secrets.id", ondelete="SET NULL"), nullable=True
    )
    # s3 | sqs | sns
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    region: Mapped[str] = mapped_column(String(50), nullable=False)
    config: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ProvisioningStatus.PROVISIONING.value,
        index=True,
    )
    arn: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "secret_id": str(self.secret_id) if self.secret_id else None,
            "resource_type": self.resource_type,
            "name": self.name,
            "region": self.region,
            "config": self.config or {},
            "status": self.status,
            "arn": self.arn,
            "error": self.error,
            "created_by": self.created_by,
        }
