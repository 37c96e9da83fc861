from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.models.github_config import (
    GITHUB_CONFIG_ID,
    GitHubAuthType,
    GitHubConfig,
)
from portalight.modules.catalog.domain.reader import (
    CatalogSourceReader,
    RepositoryCoordinate,
)
from portalight.shared.adapters.github import build_github_client
from portalight.shared.core.exceptions import PortalightException
from portalight.shared.core.security import generate_webhook_secret

logger = structlog.get_logger()


class GitHubConfigUpdate(BaseModel):
    """Partial update; absent fields keep their stored value."""

    repo_owner: Optional[str] = Field(default=None, min_length=1)
    repo_name: Optional[str] = Field(default=None, min_length=1)
    branch: Optional[str] = Field(default=None, min_length=1)
    projects_path: Optional[str] = None
    auth_type: Optional[GitHubAuthType] = None
    personal_access_token: Optional[str] = None
    app_id: Optional[str] = None
    installation_id: Optional[str] = None
    private_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    rotate_webhook_secret: bool = False
    enabled: Optional[bool] = None


def serialize_config(config: GitHubConfig) -> dict[str, Any]:
    return {
        "repo_owner": config.repo_owner,
        "repo_name": config.repo_name,
        "branch": config.branch,
        "projects_path": config.projects_path,
        "auth_type": config.auth_type,
        "app_id": config.app_id,
        "installation_id": config.installation_id,
        "has_personal_access_token": bool(config.personal_access_token),
        "has_private_key": bool(config.private_key),
        "has_webhook_secret": bool(config.webhook_secret),
        "enabled": config.enabled,
        "updated_at": config.updated_at.isoformat() if config.updated_at else None,
    }


class GitHubSettingsService:
    """Reads and updates the singleton catalog repository configuration."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self) -> Optional[GitHubConfig]:
        return await self.db.get(GitHubConfig, GITHUB_CONFIG_ID)

    async def require_enabled(self) -> GitHubConfig:
        config = await self.get()
        if config is None or not config.enabled:
            raise PortalightException(
                "GitHub integration is not configured",
                code="github_not_configured",
                status_code=400,
            )
        return config

    async def update(self, patch: GitHubConfigUpdate) -> tuple[GitHubConfig, Optional[str]]:
        """
        Apply a partial update. Returns the config and, when a webhook secret
        was generated, its plaintext (shown to the operator exactly once).
        """
        config = await self.get()
        if config is None:
            if not (patch.repo_owner and patch.repo_name):
                raise PortalightException(
                    "repo_owner and repo_name are required",
                    code="github_config_invalid",
                    status_code=400,
                )
            config = GitHubConfig(
                id=GITHUB_CONFIG_ID,
                repo_owner=patch.repo_owner,
                repo_name=patch.repo_name,
                branch="main",
                projects_path="projects",
                auth_type=GitHubAuthType.PAT.value,
                enabled=True,
            )
            self.db.add(config)

        fields = patch.model_dump(
            exclude_unset=True, exclude={"rotate_webhook_secret", "auth_type"}
        )
        for key, value in fields.items():
            if value is not None:
                setattr(config, key, value)
        if patch.auth_type is not None:
            config.auth_type = patch.auth_type.value
        if config.projects_path is not None:
            config.projects_path = config.projects_path.strip("/")

        generated_secret: Optional[str] = None
        if patch.rotate_webhook_secret:
            generated_secret = generate_webhook_secret()
            config.webhook_secret = generated_secret

        self._validate(config)
        await self.db.commit()
        logger.info(
            "github_config_updated",
            repo=f"{config.repo_owner}/{config.repo_name}",
            branch=config.branch,
            auth_type=config.auth_type,
            webhook_secret_rotated=generated_secret is not None,
        )
        return config, generated_secret

    @staticmethod
    def _validate(config: GitHubConfig) -> None:
        if config.auth_type == GitHubAuthType.GITHUB_APP.value:
            missing = [
                name
                for name in ("app_id", "installation_id", "private_key")
                if not getattr(config, name)
            ]
        else:
            missing = [] if config.personal_access_token else ["personal_access_token"]
        if missing and config.enabled:
            raise PortalightException(
                f"Missing GitHub credentials: {', '.join(missing)}",
                code="github_config_invalid",
                status_code=400,
            )


def coordinate_for(config: GitHubConfig) -> RepositoryCoordinate:
    return RepositoryCoordinate(
        owner=config.repo_owner,
        repo=config.repo_name,
        branch=config.branch or "main",
        root=config.projects_path or "",
    )


def build_reader(
    config: GitHubConfig, http_client: Optional[httpx.AsyncClient] = None
) -> CatalogSourceReader:
    return CatalogSourceReader(
        build_github_client(config, http_client=http_client), coordinate_for(config)
    )
