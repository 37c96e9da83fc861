from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portalight.shared.db.base import Base, utcnow

if TYPE_CHECKING:
    from portalight.models.team import Team


class SyncStatus(str, Enum):
    SYNCED = "synced"
    FAILED = "failed"
    PENDING = "pending"


class Project(Base):
    """
    A project owned by a team.

    catalog_file_path is NULL for projects created manually in the UI; those
    are never touched by catalog sync. When set, it is the project's identity
    for catalog reconciliation (one file maps to exactly one project).
    """

    __tablename__ = "projects"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    # Not unique: two catalog files may declare the same name.
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_team_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True
    )

    catalog_file_path: Mapped[Optional[str]] = mapped_column(
        String(500), nullable=True, unique=True
    )
    catalog_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # synced | failed | pending
    sync_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SyncStatus.PENDING.value,
        server_default=SyncStatus.PENDING.value,
    )
    sync_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    auto_synced: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    owner_team: Mapped[Optional["Team"]] = relationship("Team", lazy="raise")
    services: Mapped[list["Service"]] = relationship(
        "Service",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="raise",
    )


class Service(Base):
    """A service declared inside a project's catalog file (or created manually)."""

    __tablename__ = "services"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_services_project_name"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    language: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    environment: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    repository_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    owner_team_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )
    tags: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list
    )
    links: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list
    )
    dependencies: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict
    )
    catalog_managed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    project: Mapped["Project"] = relationship("Project", back_populates="services")
