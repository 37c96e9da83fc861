from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol
from uuid import UUID

from portalight.modules.catalog.domain.declaration import CatalogDeclaration


@dataclass
class ProjectRecord:
    """Persisted project state as seen by the catalog reconciler."""

    id: UUID
    name: str
    owner_team_id: Optional[UUID]
    catalog_file_path: Optional[str]
    title: Optional[str] = None
    description: Optional[str] = None
    catalog_metadata: Optional[dict[str, Any]] = None
    last_synced_at: Optional[datetime] = None
    sync_status: str = "pending"
    sync_error: Optional[str] = None
    auto_synced: bool = False


@dataclass
class ProjectUpsert:
    """Fields written by a successful catalog sync."""

    catalog_file_path: str
    name: str
    owner_team_id: UUID
    synced_at: datetime
    title: Optional[str] = None
    description: Optional[str] = None
    catalog_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SyncHistoryEntry:
    catalog_file_path: str
    sync_type: str
    status: str
    duration_ms: int
    project_id: Optional[UUID] = None
    project_name: Optional[str] = None
    error_message: Optional[str] = None
    validation_errors: list[str] = field(default_factory=list)
    synced_by_name: Optional[str] = None


class SourceControlClient(Protocol):
    async def list_tree(self, owner: str, repo: str, branch: str, path: str) -> list[str]:
        """Blob paths under `path` on `branch`; empty when the tree is absent."""

    async def get_file_content(self, owner: str, repo: str, branch: str, path: str) -> bytes:
        """Raw file bytes; CatalogNotFoundError when the file is absent."""


class CatalogReader(Protocol):
    async def list_candidate_files(self) -> list[str]:
        """Catalog YAML files under the configured root."""

    async def fetch_and_parse(self, path: str) -> CatalogDeclaration:
        """Parsed declaration; CatalogParseError or CatalogNotFoundError otherwise."""


class ProjectStore(Protocol):
    async def find_project_by_catalog_path(self, path: str) -> Optional[ProjectRecord]:
        """Project linked to a catalog file, if any."""

    async def get_project(self, project_id: UUID) -> Optional[ProjectRecord]:
        """Project by id, if any."""

    async def upsert_project_from_catalog(self, project: ProjectUpsert) -> tuple[ProjectRecord, bool]:
        """Insert or update keyed by catalog path; returns (record, created)."""

    async def mark_project_sync_failed(self, project_id: UUID, error: str) -> None:
        """Record a failed sync without touching any other field."""

    async def sync_project_services(
        self,
        project_id: UUID,
        services: list[CatalogDeclaration],
        owner_team_id: UUID,
    ) -> dict[str, int]:
        """Upsert nested services by name, remove catalog-managed leftovers."""

    async def find_team_id_by_name(self, name: str) -> Optional[UUID]:
        """Team id for a human-readable team name, if any."""

    async def record_sync_history(self, entry: SyncHistoryEntry) -> None:
        """Append one sync attempt to the history."""


class AuditSink(Protocol):
    async def record(
        self,
        actor_email: str | None,
        action: Any,
        resource_type: str | None,
        resource_name: str | None,
        status: Any,
        details: dict[str, Any] | None = None,
    ) -> Any:
        """Fire-and-forget; must never raise."""
