from typing import Annotated, Any, Dict
from uuid import UUID

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.models.provisioned_resource import ProvisionedResource
from portalight.modules.provisioning.domain.service import (
    ProvisioningService,
    ProvisionRequest,
    run_provisioning_task,
)
from portalight.shared.core.auth import CurrentUser, requires_role
from portalight.shared.db.session import get_db

router = APIRouter(tags=["Provisioning"])
logger = structlog.get_logger()


@router.post("/{project_id}/provision", status_code=status.HTTP_202_ACCEPTED)
async def provision_resource(
    project_id: UUID,
    request: ProvisionRequest,
    background_tasks: BackgroundTasks,
    user: Annotated[CurrentUser, Depends(requires_role("dev"))],
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Request a new S3 bucket, SQS queue or SNS topic.

    Returns immediately with the `provisioning` row; poll the provisioned
    resources list for the outcome.
    """
    resource = await ProvisioningService(db).request(project_id, request, user)
    background_tasks.add_task(run_provisioning_task, resource.id, user.email)
    return {"status": "pending", "resource": resource.to_dict()}


@router.get("/{project_id}/provisioned")
async def list_provisioned_resources(
    project_id: UUID,
    user: Annotated[CurrentUser, Depends(requires_role("dev"))],
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    result = await db.execute(
        select(ProvisionedResource)
        .where(ProvisionedResource.project_id == project_id)
        .order_by(ProvisionedResource.created_at.desc())
    )
    return {"resources": [r.to_dict() for r in result.scalars().all()]}
