from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from portalight.shared.db.base import Base, utcnow


class CatalogSyncHistory(Base):
    """One row per catalog sync attempt that reached the parser."""

    __tablename__ = "catalog_sync_history"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    project_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True
    )
    project_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    catalog_file_path: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    # manual | webhook
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False)
    # created | updated | failed
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    validation_errors: Mapped[Optional[list[str]]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    synced_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id) if self.project_id else None,
            "project_name": self.project_name,
            "catalog_file_path": self.catalog_file_path,
            "sync_type": self.sync_type,
            "status": self.status,
            "error_message": self.error_message,
            "validation_errors": self.validation_errors or [],
            "duration_ms": self.duration_ms,
            "synced_by_name": self.synced_by_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
