from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.models.discovered_resource import DiscoveredResource, ResourceStatus
from portalight.modules.inventory.domain.ports import ResourceCandidate, StoredResource
from portalight.shared.core.exceptions import ConflictError

logger = structlog.get_logger()


def _to_stored(resource: DiscoveredResource) -> StoredResource:
    return StoredResource(
        id=resource.id,
        project_id=resource.project_id,
        secret_id=resource.secret_id,
        arn=resource.arn,
        resource_type=resource.resource_type,
        name=resource.name,
        region=resource.region,
        status=resource.status,
        metadata=dict(resource.resource_metadata or {}),
        last_synced_at=resource.last_synced_at,
    )


class SQLResourceStore:
    """Discovered-resource persistence. Every mutating call commits on its own."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _by_arn(self, project_id: UUID, arn: str) -> Optional[DiscoveredResource]:
        result = await self.db.execute(
            select(DiscoveredResource).where(
                DiscoveredResource.project_id == project_id,
                DiscoveredResource.arn == arn,
            )
        )
        return result.scalar_one_or_none()

    async def find_resource_by_arn(self, project_id: UUID, arn: str) -> Optional[StoredResource]:
        resource = await self._by_arn(project_id, arn)
        return _to_stored(resource) if resource else None

    async def get_resource(self, resource_id: UUID) -> Optional[DiscoveredResource]:
        return await self.db.get(DiscoveredResource, resource_id)

    async def upsert_resource(
        self,
        project_id: UUID,
        secret_id: Optional[UUID],
        candidate: ResourceCandidate,
        synced_at: datetime,
    ) -> tuple[StoredResource, bool]:
        resource = await self._by_arn(project_id, candidate.arn)
        created = resource is None
        if resource is None:
            resource = DiscoveredResource(
                project_id=project_id,
                arn=candidate.arn,
                discovered_at=synced_at,
            )
            self.db.add(resource)

        # A manual association without a secret keeps the discovering secret.
        if secret_id is not None:
            resource.secret_id = secret_id
        resource.resource_type = candidate.resource_type
        resource.name = candidate.name
        resource.region = candidate.region
        resource.resource_metadata = dict(candidate.metadata)
        resource.status = ResourceStatus.ACTIVE.value
        resource.last_synced_at = synced_at

        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise ConflictError(
                f"Resource {candidate.arn} is already linked to this project",
                details={"arn": candidate.arn, "project_id": str(project_id)},
            ) from exc
        return _to_stored(resource), created

    async def mark_resources_unknown(
        self,
        project_id: UUID,
        secret_id: UUID,
        resource_types: Optional[Sequence[str]] = None,
    ) -> int:
        stmt = (
            update(DiscoveredResource)
            .where(
                DiscoveredResource.project_id == project_id,
                DiscoveredResource.secret_id == secret_id,
                DiscoveredResource.status != ResourceStatus.DELETED.value,
            )
            .values(status=ResourceStatus.UNKNOWN.value)
        )
        if resource_types is not None:
            stmt = stmt.where(DiscoveredResource.resource_type.in_(list(resource_types)))
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount or 0

    async def mark_unknown_resources_deleted(self, project_id: UUID, secret_id: UUID) -> int:
        result = await self.db.execute(
            update(DiscoveredResource)
            .where(
                DiscoveredResource.project_id == project_id,
                DiscoveredResource.secret_id == secret_id,
                DiscoveredResource.status == ResourceStatus.UNKNOWN.value,
            )
            .values(status=ResourceStatus.DELETED.value)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def restore_unknown_resources(
        self, project_id: UUID, secret_id: UUID, resource_types: Sequence[str]
    ) -> int:
        if not resource_types:
            return 0
        result = await self.db.execute(
            update(DiscoveredResource)
            .where(
                DiscoveredResource.project_id == project_id,
                DiscoveredResource.secret_id == secret_id,
                DiscoveredResource.status == ResourceStatus.UNKNOWN.value,
                DiscoveredResource.resource_type.in_(list(resource_types)),
            )
            .values(status=ResourceStatus.ACTIVE.value)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def list_resources(
        self, project_id: UUID, status: Optional[str] = None
    ) -> list[StoredResource]:
        stmt = (
            select(DiscoveredResource)
            .where(DiscoveredResource.project_id == project_id)
            .order_by(DiscoveredResource.resource_type, DiscoveredResource.name)
        )
        if status:
            stmt = stmt.where(DiscoveredResource.status == status)
        result = await self.db.execute(stmt)
        return [_to_stored(r) for r in result.scalars().all()]

    async def list_arns(self, project_id: UUID, secret_id: Optional[UUID] = None) -> set[str]:
        stmt = select(DiscoveredResource.arn).where(
            DiscoveredResource.project_id == project_id
        )
        if secret_id is not None:
            stmt = stmt.where(DiscoveredResource.secret_id == secret_id)
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def set_status(self, resource: DiscoveredResource, status: ResourceStatus) -> DiscoveredResource:
        resource.status = status.value
        await self.db.commit()
        return resource

    async def delete_resource(self, resource: DiscoveredResource) -> None:
        await self.db.delete(resource)
        await self.db.commit()
        logger.info(
            "discovered_resource_deleted",
            resource_id=str(resource.id),
            project_id=str(resource.project_id),
            arn=resource.arn,
        )
