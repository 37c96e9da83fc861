from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.models.catalog_sync_history import CatalogSyncHistory
from portalight.models.project import Project, Service, SyncStatus
from portalight.models.team import Team
from portalight.modules.catalog.domain.declaration import CatalogDeclaration
from portalight.modules.catalog.domain.ports import (
    ProjectRecord,
    ProjectUpsert,
    SyncHistoryEntry,
)
from portalight.shared.core.exceptions import ConflictError

logger = structlog.get_logger()


def _to_record(project: Project) -> ProjectRecord:
    return ProjectRecord(
        id=project.id,
        name=project.name,
        title=project.title,
        description=project.description,
        owner_team_id=project.owner_team_id,
        catalog_file_path=project.catalog_file_path,
        catalog_metadata=project.catalog_metadata,
        last_synced_at=project.last_synced_at,
        sync_status=project.sync_status,
        sync_error=project.sync_error,
        auto_synced=project.auto_synced,
    )


class SQLProjectStore:
    """
    Project persistence for the catalog reconciler.

    Each mutating method commits on its own so every write is individually
    atomic.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _by_path(self, path: str) -> Optional[Project]:
        result = await self.db.execute(
            select(Project).where(Project.catalog_file_path == path)
        )
        return result.scalar_one_or_none()

    async def find_project_by_catalog_path(self, path: str) -> Optional[ProjectRecord]:
        project = await self._by_path(path)
        return _to_record(project) if project else None

    async def get_project(self, project_id: UUID) -> Optional[ProjectRecord]:
        project = await self.db.get(Project, project_id)
        return _to_record(project) if project else None

    async def upsert_project_from_catalog(
        self, upsert: ProjectUpsert
    ) -> tuple[ProjectRecord, bool]:
        project = await self._by_path(upsert.catalog_file_path)
        created = project is None
        if project is None:
            project = Project(catalog_file_path=upsert.catalog_file_path)
            self.db.add(project)

        project.name = upsert.name
        project.title = upsert.title
        project.description = upsert.description
        project.owner_team_id = upsert.owner_team_id
        project.catalog_metadata = upsert.catalog_metadata
        project.last_synced_at = upsert.synced_at
        project.sync_status = SyncStatus.SYNCED.value
        project.sync_error = None
        project.auto_synced = True

        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            # Lost a race with a concurrent first sync of the same path.
            raise ConflictError(
                f"Catalog file {upsert.catalog_file_path} is already linked to a project",
                details={"file": upsert.catalog_file_path},
            ) from exc
        return _to_record(project), created

    async def mark_project_sync_failed(self, project_id: UUID, error: str) -> None:
        await self.db.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(sync_status=SyncStatus.FAILED.value, sync_error=error)
        )
        await self.db.commit()

    async def sync_project_services(
        self,
        project_id: UUID,
        services: list[CatalogDeclaration],
        owner_team_id: UUID,
    ) -> dict[str, int]:
        result = await self.db.execute(
            select(Service).where(Service.project_id == project_id)
        )
        existing = {service.name: service for service in result.scalars().all()}

        counts = {"upserted": 0, "removed": 0}
        for declared in services:
            service = existing.get(declared.name)
            if service is None:
                service = Service(project_id=project_id, name=declared.name)
                self.db.add(service)

            service_owner = owner_team_id
            if declared.owner_team:
                service_owner = (
                    await self.find_team_id_by_name(declared.owner_team) or owner_team_id
                )

            service.title = declared.title
            service.description = declared.description
            service.language = declared.language
            service.environment = declared.environment
            service.repository_url = declared.repository
            service.owner_team_id = service_owner
            service.tags = list(declared.tags)
            service.links = [link.to_dict() for link in declared.links]
            service.dependencies = dict(declared.dependencies)
            service.catalog_managed = True
            counts["upserted"] += 1

        declared_names = {declared.name for declared in services}
        orphaned = [
            service.id
            for name, service in existing.items()
            if service.catalog_managed and name not in declared_names
        ]
        if orphaned:
            await self.db.execute(delete(Service).where(Service.id.in_(orphaned)))
            counts["removed"] = len(orphaned)
            logger.info(
                "catalog_services_removed", project_id=str(project_id), count=len(orphaned)
            )

        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise ConflictError(
                f"Services of project {project_id} changed concurrently",
                details={"project_id": str(project_id)},
            ) from exc
        return counts

    async def find_team_id_by_name(self, name: str) -> Optional[UUID]:
        result = await self.db.execute(select(Team.id).where(Team.name == name))
        return result.scalar_one_or_none()

    async def record_sync_history(self, entry: SyncHistoryEntry) -> None:
        self.db.add(
            CatalogSyncHistory(
                project_id=entry.project_id,
                project_name=entry.project_name,
                catalog_file_path=entry.catalog_file_path,
                sync_type=entry.sync_type,
                status=entry.status,
                error_message=entry.error_message,
                validation_errors=entry.validation_errors or None,
                duration_ms=entry.duration_ms,
                synced_by_name=entry.synced_by_name,
            )
        )
        await self.db.commit()

    async def list_sync_history(self, limit: int = 50) -> list[CatalogSyncHistory]:
        result = await self.db.execute(
            select(CatalogSyncHistory)
            .order_by(CatalogSyncHistory.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
