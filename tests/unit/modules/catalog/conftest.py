"""In-memory collaborators for the catalog reconciler."""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import pytest

from portalight.modules.catalog.domain.declaration import (
    CatalogDeclaration,
    parse_catalog_document,
)
from portalight.modules.catalog.domain.ports import (
    ProjectRecord,
    ProjectUpsert,
    SyncHistoryEntry,
)
from portalight.shared.core.exceptions import CatalogNotFoundError


class FakeReader:
    def __init__(self, files: Optional[dict[str, Any]] = None):
        # path -> bytes content, or an exception instance to raise
        self.files: dict[str, Any] = dict(files or {})
        self.fetched: list[str] = []

    async def list_candidate_files(self) -> list[str]:
        return sorted(self.files)

    async def fetch_and_parse(self, path: str) -> CatalogDeclaration:
        self.fetched.append(path)
        if path not in self.files:
            raise CatalogNotFoundError(f"File {path} not found")
        content = self.files[path]
        if isinstance(content, Exception):
            raise content
        return parse_catalog_document(content, path)


class FakeProjectStore:
    def __init__(self):
        self.projects: dict[UUID, ProjectRecord] = {}
        self.services: dict[UUID, list[str]] = {}
        self.teams: dict[str, UUID] = {}
        self.history: list[SyncHistoryEntry] = []

    def add_team(self, name: str) -> UUID:
        team_id = uuid4()
        self.teams[name] = team_id
        return team_id

    def add_project(self, **fields) -> ProjectRecord:
        record = ProjectRecord(id=uuid4(), **fields)
        self.projects[record.id] = record
        return record

    async def find_project_by_catalog_path(self, path: str) -> Optional[ProjectRecord]:
        for record in self.projects.values():
            if record.catalog_file_path == path:
                return record
        return None

    async def get_project(self, project_id: UUID) -> Optional[ProjectRecord]:
        return self.projects.get(project_id)

    async def upsert_project_from_catalog(self, upsert: ProjectUpsert):
        record = await self.find_project_by_catalog_path(upsert.catalog_file_path)
        created = record is None
        if record is None:
            record = ProjectRecord(
                id=uuid4(),
                name=upsert.name,
                owner_team_id=upsert.owner_team_id,
                catalog_file_path=upsert.catalog_file_path,
            )
            self.projects[record.id] = record
        record.name = upsert.name
        record.title = upsert.title
        record.description = upsert.description
        record.owner_team_id = upsert.owner_team_id
        record.catalog_metadata = upsert.catalog_metadata
        record.last_synced_at = upsert.synced_at
        record.sync_status = "synced"
        record.sync_error = None
        record.auto_synced = True
        return record, created

    async def mark_project_sync_failed(self, project_id: UUID, error: str) -> None:
        record = self.projects[project_id]
        record.sync_status = "failed"
        record.sync_error = error

    async def sync_project_services(self, project_id, services, owner_team_id):
        self.services[project_id] = [s.name for s in services]
        return {"upserted": len(services), "removed": 0}

    async def find_team_id_by_name(self, name: str) -> Optional[UUID]:
        return self.teams.get(name)

    async def record_sync_history(self, entry: SyncHistoryEntry) -> None:
        self.history.append(entry)


class FakeAudit:
    def __init__(self):
        self.entries: list[dict[str, Any]] = []

    async def record(self, actor_email, action, resource_type, resource_name, status, details=None):
        self.entries.append(
            {
                "actor_email": actor_email,
                "action": action,
                "resource_type": resource_type,
                "resource_name": resource_name,
                "status": status,
                "details": details or {},
                "at": datetime.now(),
            }
        )


@pytest.fixture
def reader():
    return FakeReader()


@pytest.fixture
def store():
    return FakeProjectStore()


@pytest.fixture
def audit():
    return FakeAudit()
