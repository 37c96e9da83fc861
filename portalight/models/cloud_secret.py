from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from portalight.shared.db.base import Base, utcnow


class SecretAccessType(str, Enum):
    READ = "read"
    WRITE = "write"


class CloudSecret(Base):
    """
    Stored cloud credential.

    `encrypted_credentials` holds a Fernet token of the JSON credential body
    ({"access_key_id", "secret_access_key", "session_token"?}); only the
    credential vault decrypts it.
    """

    __tablename__ = "cloud_secrets"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    provider: Mapped[str] = mapped_column(String(20), nullable=False, default="aws")
    region: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    account_id: Mapped[Optional[str]] = mapped_column(String(12), nullable=True)
    # read: discovery only | write: discovery and provisioning
    access_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=SecretAccessType.READ.value,
        server_default=SecretAccessType.READ.value,
    )
    encrypted_credentials: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
