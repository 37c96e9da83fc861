"""
Audit Logging

Append-only record of who did what to which catalog project, cloud resource
or credential. Written by the reconciler and the provisioning workflow.

Key properties:
1. One entry per user-facing outcome (success, failure or skip)
2. Sensitive fields masked before storage, actor email encrypted at rest
3. Writing an entry never fails the operation it describes
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import structlog
from sqlalchemy import JSON, DateTime, Index, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy_utils import StringEncryptedType
from sqlalchemy_utils.types.encrypted.encrypted_type import AesEngine

from portalight.models._encryption import get_encryption_key
from portalight.shared.db.base import Base, utcnow

logger = structlog.get_logger()


class AuditAction(str, Enum):
    CATALOG_SYNC = "catalog_sync"
    CATALOG_CONFIG_UPDATED = "catalog_config_updated"
    DISCOVERY_SWEEP = "discovery_sweep"
    RESOURCE_ASSOCIATE = "resource_associate"
    RESOURCE_STATUS_UPDATED = "resource_status_updated"
    RESOURCE_DELETE = "resource_delete"
    PROVISION_RESOURCE = "provision_resource"
    PROVISION_RESOURCE_COMPLETE = "provision_resource_complete"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    PENDING = "pending"


class AuditLog(Base):
    """Immutable audit log entry."""

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    actor_email: Mapped[Optional[str]] = mapped_column(
        StringEncryptedType(String(255), get_encryption_key, AesEngine, "pkcs5"),
        nullable=True,
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resource_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_audit_action_time", "action", "created_at"),
    )


class AuditLogger:
    """
    Session-backed audit sink.

    Usage:
        audit = AuditLogger(db)
        await audit.record(
            actor_email=user.email,
            action=AuditAction.CATALOG_SYNC,
            resource_type="project",
            resource_name="payments-service",
            status=AuditStatus.SUCCESS,
            details={"file": "projects/payments.yaml"},
        )

    Entries are committed on their own; callers commit their state changes
    first so a failed audit write can be rolled back without losing them.
    """

    SENSITIVE_FIELDS = {
        "password",
        "token",
        "secret",
        "private_key",
        "access_key",
        "session_token",
    }

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record(
        self,
        actor_email: str | None,
        action: AuditAction | str,
        resource_type: str | None,
        resource_name: str | None,
        status: AuditStatus | str,
        details: dict[str, Any] | None = None,
    ) -> Optional[AuditLog]:
        action_value = action.value if isinstance(action, AuditAction) else str(action)
        status_value = status.value if isinstance(status, AuditStatus) else str(status)

        entry = AuditLog(
            actor_email=actor_email,
            action=action_value,
            resource_type=resource_type,
            resource_name=resource_name,
            status=status_value,
            details=self._mask_sensitive(details) if details else None,
        )
        try:
            self.db.add(entry)
            await self.db.commit()
        except (SQLAlchemyError, RuntimeError) as exc:
            # Losing an audit entry must not fail the operation it describes.
            logger.warning(
                "audit_record_failed",
                action=action_value,
                resource_name=resource_name,
                error=str(exc),
            )
            await self.db.rollback()
            return None

        logger.info(
            "audit_event",
            action=action_value,
            resource_type=resource_type,
            resource_name=resource_name,
            status=status_value,
        )
        return entry

    def _mask_sensitive(self, data: Any) -> Any:
        """Recursively mask sensitive fields in dicts and lists."""
        if isinstance(data, list):
            return [self._mask_sensitive(item) for item in data]

        if not isinstance(data, dict):
            return data

        masked = {}
        for key, value in data.items():
            if any(sensitive in str(key).lower() for sensitive in self.SENSITIVE_FIELDS):
                masked[key] = "***REDACTED***"
            elif isinstance(value, (dict, list)):
                masked[key] = self._mask_sensitive(value)
            else:
                masked[key] = value
        return masked
