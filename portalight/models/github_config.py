from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy_utils import StringEncryptedType
from sqlalchemy_utils.types.encrypted.encrypted_type import AesEngine

from portalight.models._encryption import get_encryption_key
from portalight.shared.db.base import Base, utcnow

GITHUB_CONFIG_ID = 1


class GitHubAuthType(str, Enum):
    PAT = "pat"
    GITHUB_APP = "github_app"


class GitHubConfig(Base):
    """Singleton row describing the catalog repository coordinate and its credentials."""

    __tablename__ = "github_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=GITHUB_CONFIG_ID)
    repo_owner: Mapped[str] = mapped_column(String(255), nullable=False)
    repo_name: Mapped[str] = mapped_column(String(255), nullable=False)
    branch: Mapped[str] = mapped_column(
        String(255), nullable=False, default="main", server_default="main"
    )
    projects_path: Mapped[str] = mapped_column(
        String(500), nullable=False, default="projects", server_default="projects"
    )
    auth_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=GitHubAuthType.PAT.value
    )
    personal_access_token: Mapped[Optional[str]] = mapped_column(
        StringEncryptedType(String, get_encryption_key, AesEngine, "pkcs5"),
        nullable=True,
    )
    app_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    installation_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    private_key: Mapped[Optional[str]] = mapped_column(
        StringEncryptedType(Text, get_encryption_key, AesEngine, "pkcs5"),
        nullable=True,
    )
    webhook_secret: Mapped[Optional[str]] = mapped_column(
        StringEncryptedType(String, get_encryption_key, AesEngine, "pkcs5"),
        nullable=True,
    )
    enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
