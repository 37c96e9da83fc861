from typing import Annotated, Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.modules.catalog.adapters.sql_store import SQLProjectStore
from portalight.modules.catalog.domain.github_settings import (
    GitHubConfigUpdate,
    GitHubSettingsService,
    build_reader,
    serialize_config,
)
from portalight.modules.catalog.domain.sync import (
    CatalogSyncService,
    FileTeamMapping,
    SyncActor,
)
from portalight.modules.governance.domain.security.audit_log import (
    AuditAction,
    AuditLogger,
    AuditStatus,
)
from portalight.shared.core.auth import CurrentUser, requires_role
from portalight.shared.core.config import get_settings
from portalight.shared.core.exceptions import PortalightException
from portalight.shared.core.http import get_http_client
from portalight.shared.db.session import get_db

router = APIRouter(tags=["Catalog"])
logger = structlog.get_logger()


class SyncMappingRequest(BaseModel):
    file: str = ""
    # Kept as text: an empty or malformed id fails its own item, not the batch.
    team_id: Optional[str] = None


class BatchSyncRequest(BaseModel):
    mappings: list[SyncMappingRequest] = Field(default_factory=list)


def _actor(user: CurrentUser) -> SyncActor:
    return SyncActor(name=user.email, email=user.email)


async def _sync_service(db: AsyncSession) -> CatalogSyncService:
    config = await GitHubSettingsService(db).require_enabled()
    reader = build_reader(
        config, http_client=get_http_client(get_settings().GITHUB_TIMEOUT_SECONDS)
    )
    return CatalogSyncService(reader, SQLProjectStore(db), AuditLogger(db))


@router.get("/config")
async def get_catalog_config(
    user: Annotated[CurrentUser, Depends(requires_role("lead"))],
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    config = await GitHubSettingsService(db).get()
    if config is None:
        return {"configured": False}
    return {"configured": True, **serialize_config(config)}


@router.put("/config")
async def update_catalog_config(
    patch: GitHubConfigUpdate,
    user: Annotated[CurrentUser, Depends(requires_role("lead"))],
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """
    Update the catalog repository settings.

    When `rotate_webhook_secret` is set the new secret is returned once in
    `webhook_secret` and never again.
    """
    config, generated_secret = await GitHubSettingsService(db).update(patch)
    await AuditLogger(db).record(
        actor_email=user.email,
        action=AuditAction.CATALOG_CONFIG_UPDATED,
        resource_type="github_config",
        resource_name=f"{config.repo_owner}/{config.repo_name}",
        status=AuditStatus.SUCCESS,
        details={
            "fields": sorted(patch.model_dump(exclude_unset=True).keys()),
            "webhook_secret_rotated": generated_secret is not None,
        },
    )
    response: dict[str, Any] = {"configured": True, **serialize_config(config)}
    if generated_secret:
        response["webhook_secret"] = generated_secret
    return response


@router.get("/scan")
async def scan_catalog(
    user: Annotated[CurrentUser, Depends(requires_role("lead"))],
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """List catalog files in the repository and whether each is imported."""
    service = await _sync_service(db)
    statuses = await service.scan()
    return {"files": [status.to_dict() for status in statuses]}


@router.post("/sync")
async def sync_catalog_files(
    request: BatchSyncRequest,
    user: Annotated[CurrentUser, Depends(requires_role("lead"))],
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """
    Import or re-sync catalog files, each with the team that owns it.

    Items are processed in order; one failing item never fails the request.
    """
    if not request.mappings:
        raise PortalightException(
            "At least one file mapping is required",
            code="empty_batch",
            status_code=400,
        )
    service = await _sync_service(db)
    logger.info("catalog_batch_sync_requested", user_id=str(user.id), files=len(request.mappings))
    results = await service.sync_batch(
        [FileTeamMapping(file=m.file, team_id=m.team_id) for m in request.mappings],
        _actor(user),
    )
    return {"results": [result.to_dict() for result in results]}


@router.get("/history")
async def list_catalog_sync_history(
    user: Annotated[CurrentUser, Depends(requires_role("lead"))],
    db: AsyncSession = Depends(get_db),
    limit: int = Query(default=50, ge=1, le=500),
) -> dict[str, Any]:
    entries = await SQLProjectStore(db).list_sync_history(limit=limit)
    return {"history": [entry.to_dict() for entry in entries]}


@router.post("/projects/{project_id}/sync")
async def resync_catalog_project(
    project_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("lead"))],
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    service = await _sync_service(db)
    result = await service.resync_project(project_id, _actor(user))
    return result.to_dict()
