"""
Asynchronous provisioning workflow.

`request` validates and records a `provisioning` row inside the caller's
request; `run` performs the cloud call later with its own session, writes the
outcome back and registers the new resource with the discovery inventory so
it shows up as active without waiting for a sweep.
"""

from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.models.cloud_secret import SecretAccessType
from portalight.models.project import Project
from portalight.models.provisioned_resource import ProvisionedResource, ProvisioningStatus
from portalight.modules.governance.domain.security.audit_log import (
    AuditAction,
    AuditLogger,
    AuditStatus,
)
from portalight.modules.inventory.adapters.sql_store import SQLResourceStore
from portalight.modules.inventory.domain.ports import CredentialVault, ResourceCreator
from portalight.modules.inventory.domain.reconciler import ResourceReconciler
from portalight.modules.provisioning.adapters.aws.provisioner import AWSProvisioner
from portalight.modules.provisioning.domain.configs import parse_resource_config
from portalight.shared.adapters.aws_utils import resolve_region
from portalight.shared.adapters.credential_vault import SQLCredentialVault
from portalight.shared.core.auth import CurrentUser, require_provisioning_permission
from portalight.shared.core.exceptions import (
    ConflictError,
    CredentialNotFoundError,
    PortalightException,
    ProvisionError,
    ResourceNotFoundError,
)
from portalight.shared.db.session import async_session_maker

logger = structlog.get_logger()

GENERIC_PROVISIONING_ERROR = "Provisioning failed due to an internal error"


class ProvisionRequest(BaseModel):
    secret_id: UUID
    resource_type: str
    name: str = Field(min_length=1, max_length=255)
    config: Dict[str, Any] = Field(default_factory=dict)


class ProvisioningService:
    def __init__(
        self,
        db: AsyncSession,
        provisioner: Optional[ResourceCreator] = None,
        vault: Optional[CredentialVault] = None,
    ) -> None:
        self.db = db
        self.provisioner = provisioner or AWSProvisioner()
        self.vault = vault or SQLCredentialVault(db)

    async def request(
        self, project_id: UUID, payload: ProvisionRequest, user: CurrentUser
    ) -> ProvisionedResource:
        resource_type = payload.resource_type.strip().lower()
        config = parse_resource_config(resource_type, payload.config)
        require_provisioning_permission(user, resource_type)

        if await self.db.get(Project, project_id) is None:
            raise ResourceNotFoundError(f"Project {project_id} not found")

        secret = await SQLCredentialVault(self.db).get_secret(payload.secret_id)
        if secret.access_type != SecretAccessType.WRITE.value:
            raise PortalightException(
                "Provisioning requires a secret with write access",
                code="secret_read_only",
                status_code=400,
                details={"secret_id": str(payload.secret_id)},
            )

        existing = await self.db.execute(
            select(ProvisionedResource.id).where(
                ProvisionedResource.project_id == project_id,
                ProvisionedResource.resource_type == resource_type,
                ProvisionedResource.name == payload.name,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                f"A {resource_type} resource named {payload.name} already exists for this project",
                details={"resource_type": resource_type, "name": payload.name},
            )

        resource = ProvisionedResource(
            project_id=project_id,
            secret_id=payload.secret_id,
            resource_type=resource_type,
            name=payload.name,
            region=resolve_region(config.region, secret.region),
            config=config.model_dump(exclude_none=True),
            status=ProvisioningStatus.PROVISIONING.value,
            created_by=user.email,
        )
        self.db.add(resource)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise ConflictError(
                f"A {resource_type} resource named {payload.name} already exists for this project",
                details={"resource_type": resource_type, "name": payload.name},
            ) from exc

        await AuditLogger(self.db).record(
            actor_email=user.email,
            action=AuditAction.PROVISION_RESOURCE,
            resource_type=resource_type,
            resource_name=payload.name,
            status=AuditStatus.PENDING,
            details={
                "project_id": str(project_id),
                "resource_id": str(resource.id),
                "region": resource.region,
            },
        )
        logger.info(
            "provisioning_requested",
            resource_id=str(resource.id),
            project_id=str(project_id),
            resource_type=resource_type,
        )
        return resource

    async def run(self, resource_id: UUID, actor_email: Optional[str] = None) -> ProvisionedResource:
        resource = await self.db.get(ProvisionedResource, resource_id)
        if resource is None:
            raise ResourceNotFoundError(f"Provisioned resource {resource_id} not found")
        log = logger.bind(resource_id=str(resource_id), resource_type=resource.resource_type)

        try:
            if resource.secret_id is None:
                raise CredentialNotFoundError("Provisioning secret was removed")
            credentials = await self.vault.get_decrypted_credential(resource.secret_id)
            arn = await self.provisioner.create_resource(
                credentials,
                resource.resource_type,
                resource.name,
                dict(resource.config or {}),
                region=resource.region,
            )
        except (ProvisionError, CredentialNotFoundError) as exc:
            log.warning("provisioning_failed", error=exc.message)
            return await self._fail(resource, actor_email, exc.message)
        except Exception as exc:  # noqa: BLE001
            log.error("provisioning_crashed", error=str(exc), exc_info=True)
            # Session state is unknown after an unexpected error.
            await self.db.rollback()
            await self.db.refresh(resource)
            return await self._fail(resource, actor_email, GENERIC_PROVISIONING_ERROR)

        resource.status = ProvisioningStatus.ACTIVE.value
        resource.arn = arn
        resource.error = None
        await self.db.commit()

        try:
            await ResourceReconciler(SQLResourceStore(self.db)).register_provisioned(
                resource.project_id,
                resource.secret_id,
                arn=arn,
                resource_type=resource.resource_type,
                name=resource.name,
                region=resource.region,
                metadata={"provisioned_resource_id": str(resource.id)},
            )
        except PortalightException as exc:
            # The cloud resource exists; the next sweep will pick it up.
            log.warning("provisioned_resource_registration_failed", error=exc.message)

        log.info("provisioning_succeeded", arn=arn)
        await self._audit_complete(resource, actor_email, AuditStatus.SUCCESS, f"ARN: {arn}")
        return resource

    async def _fail(
        self, resource: ProvisionedResource, actor_email: Optional[str], message: str
    ) -> ProvisionedResource:
        resource.status = ProvisioningStatus.FAILED.value
        resource.error = message
        await self.db.commit()
        await self._audit_complete(resource, actor_email, AuditStatus.FAILED, message)
        return resource

    async def _audit_complete(
        self,
        resource: ProvisionedResource,
        actor_email: Optional[str],
        status: AuditStatus,
        message: str,
    ) -> None:
        await AuditLogger(self.db).record(
            actor_email=actor_email,
            action=AuditAction.PROVISION_RESOURCE_COMPLETE,
            resource_type=resource.resource_type,
            resource_name=resource.name,
            status=status,
            details={
                "project_id": str(resource.project_id),
                "resource_id": str(resource.id),
                "message": message,
            },
        )


async def run_provisioning_task(resource_id: UUID, actor_email: Optional[str] = None) -> None:
    """Background entry point; the request session is closed by the time this runs."""
    async with async_session_maker() as db:
        try:
            await ProvisioningService(db).run(resource_id, actor_email)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "provisioning_task_crashed",
                resource_id=str(resource_id),
                error=str(exc),
                exc_info=True,
            )
