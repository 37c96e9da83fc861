from typing import Annotated, Any, Dict, List, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.models.discovered_resource import ResourceStatus
from portalight.models.project import Project
from portalight.modules.governance.domain.security.audit_log import (
    AuditAction,
    AuditLogger,
    AuditStatus,
)
from portalight.modules.inventory.adapters.sql_store import SQLResourceStore
from portalight.modules.inventory.domain.ports import ResourceCandidate
from portalight.modules.inventory.domain.reconciler import ResourceReconciler, sweep_locks
from portalight.shared.adapters.aws_utils import resolve_region
from portalight.shared.adapters.credential_vault import SQLCredentialVault
from portalight.shared.core.auth import CurrentUser, requires_role
from portalight.shared.core.config import SUPPORTED_DISCOVERY_TYPES
from portalight.shared.core.exceptions import PortalightException, ResourceNotFoundError
from portalight.shared.db.session import get_db

router = APIRouter(tags=["Discovery"])
logger = structlog.get_logger()


class DiscoveryRequest(BaseModel):
    secret_id: UUID
    region: Optional[str] = None
    types: Optional[List[str]] = None


class AssociateEntry(BaseModel):
    arn: str = Field(min_length=1)
    resource_type: str
    name: str = Field(min_length=1)
    region: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AssociateRequest(BaseModel):
    secret_id: Optional[UUID] = None
    resources: List[AssociateEntry] = Field(default_factory=list)


class ResourceStatusPatch(BaseModel):
    """Partial update of a discovered resource; absent fields are left unchanged."""

    status: Optional[ResourceStatus] = None


async def _require_project(db: AsyncSession, project_id: UUID) -> Project:
    project = await db.get(Project, project_id)
    if project is None:
        raise ResourceNotFoundError(f"Project {project_id} not found")
    return project


def _validate_types(types: Optional[List[str]]) -> None:
    unknown = sorted({t.lower() for t in types or []} - set(SUPPORTED_DISCOVERY_TYPES))
    if unknown:
        raise PortalightException(
            f"Unsupported resource types: {', '.join(unknown)}",
            code="unsupported_resource_type",
            status_code=400,
            details={"supported": list(SUPPORTED_DISCOVERY_TYPES)},
        )


@router.post("/{project_id}/discover")
async def preview_discovery(
    project_id: UUID,
    request: DiscoveryRequest,
    user: Annotated[CurrentUser, Depends(requires_role("lead"))],
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """List cloud resources not yet associated with the project. Writes nothing."""
    await _require_project(db, project_id)
    _validate_types(request.types)
    credentials = await SQLCredentialVault(db).get_decrypted_credential(request.secret_id)
    region = resolve_region(request.region, credentials.region)

    reconciler = ResourceReconciler(SQLResourceStore(db))
    discovery = await reconciler.preview(
        project_id, request.secret_id, region, request.types, credentials
    )
    return {"region": region, **discovery.to_dict()}


@router.post("/{project_id}/resources/sync")
async def sweep_resources(
    project_id: UUID,
    request: DiscoveryRequest,
    user: Annotated[CurrentUser, Depends(requires_role("lead"))],
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Re-observe the project's resources for one secret.

    Resources no longer reported by the provider move to `deleted`; sweeps of
    the same project and secret run one at a time.
    """
    await _require_project(db, project_id)
    _validate_types(request.types)
    credentials = await SQLCredentialVault(db).get_decrypted_credential(request.secret_id)
    region = resolve_region(request.region, credentials.region)

    lock = sweep_locks.lock_for(project_id, request.secret_id)
    if lock.locked():
        logger.info(
            "discovery_sweep_waiting",
            project_id=str(project_id),
            secret_id=str(request.secret_id),
        )
    async with lock:
        result = await ResourceReconciler(SQLResourceStore(db)).sweep(
            project_id, request.secret_id, region, request.types, credentials
        )

    await AuditLogger(db).record(
        actor_email=user.email,
        action=AuditAction.DISCOVERY_SWEEP,
        resource_type="project",
        resource_name=str(project_id),
        status=AuditStatus.FAILED if result.errors else AuditStatus.SUCCESS,
        details=result.to_dict(),
    )
    return result.to_dict()


@router.post("/{project_id}/resources/associate")
async def associate_resources(
    project_id: UUID,
    request: AssociateRequest,
    user: Annotated[CurrentUser, Depends(requires_role("lead"))],
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    await _require_project(db, project_id)
    if not request.resources:
        raise PortalightException(
            "At least one resource is required",
            code="empty_batch",
            status_code=400,
        )
    _validate_types([entry.resource_type for entry in request.resources])

    default_region = None
    if request.secret_id is not None:
        secret = await SQLCredentialVault(db).get_secret(request.secret_id)
        default_region = secret.region

    entries = [
        ResourceCandidate(
            arn=entry.arn,
            resource_type=entry.resource_type.lower(),
            name=entry.name,
            region=resolve_region(entry.region, default_region),
            metadata=entry.metadata,
        )
        for entry in request.resources
    ]
    results = await ResourceReconciler(SQLResourceStore(db)).associate(
        project_id, request.secret_id, entries
    )
    await AuditLogger(db).record(
        actor_email=user.email,
        action=AuditAction.RESOURCE_ASSOCIATE,
        resource_type="project",
        resource_name=str(project_id),
        status=AuditStatus.SUCCESS,
        details={"arns": [entry.arn for entry in entries]},
    )
    return {"results": [result.to_dict() for result in results]}


@router.get("/{project_id}/resources")
async def list_project_resources(
    project_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("dev"))],
    db: AsyncSession = Depends(get_db),
    status: Optional[ResourceStatus] = Query(default=None),
) -> Dict[str, Any]:
    await _require_project(db, project_id)
    resources = await SQLResourceStore(db).list_resources(
        project_id, status=status.value if status else None
    )
    return {
        "resources": [
            {
                "id": str(r.id),
                "arn": r.arn,
                "resource_type": r.resource_type,
                "name": r.name,
                "region": r.region,
                "status": r.status,
                "metadata": r.metadata,
                "secret_id": str(r.secret_id) if r.secret_id else None,
                "last_synced_at": r.last_synced_at.isoformat() if r.last_synced_at else None,
            }
            for r in resources
        ]
    }


@router.patch("/{project_id}/resources/{resource_id}")
async def update_resource_status(
    project_id: UUID,
    resource_id: UUID,
    patch: ResourceStatusPatch,
    user: Annotated[CurrentUser, Depends(requires_role("lead"))],
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    store = SQLResourceStore(db)
    resource = await store.get_resource(resource_id)
    if resource is None or resource.project_id != project_id:
        raise ResourceNotFoundError(f"Resource {resource_id} not found")
    if patch.status is None:
        return resource.to_dict()

    previous = resource.status
    resource = await store.set_status(resource, patch.status)
    await AuditLogger(db).record(
        actor_email=user.email,
        action=AuditAction.RESOURCE_STATUS_UPDATED,
        resource_type=resource.resource_type,
        resource_name=resource.arn,
        status=AuditStatus.SUCCESS,
        details={"from": previous, "to": resource.status},
    )
    return resource.to_dict()


@router.delete("/{project_id}/resources/{resource_id}")
async def delete_resource(
    project_id: UUID,
    resource_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("lead"))],
    db: AsyncSession = Depends(get_db),
) -> Dict[str, str]:
    """Remove the association. The cloud resource itself is not touched."""
    store = SQLResourceStore(db)
    resource = await store.get_resource(resource_id)
    if resource is None or resource.project_id != project_id:
        raise ResourceNotFoundError(f"Resource {resource_id} not found")

    arn, resource_type = resource.arn, resource.resource_type
    await store.delete_resource(resource)
    await AuditLogger(db).record(
        actor_email=user.email,
        action=AuditAction.RESOURCE_DELETE,
        resource_type=resource_type,
        resource_name=arn,
        status=AuditStatus.SUCCESS,
        details={"project_id": str(project_id)},
    )
    return {"status": "deleted", "id": str(resource_id)}
