"""
Catalog reconciliation.

Converges catalog-owned projects toward the declarations in the catalog
repository. The catalog file path is the identity of a project here, not its
name. Every attempt yields exactly one SyncResult and one audit entry.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Sequence
from uuid import UUID

import structlog

from portalight.modules.catalog.domain.declaration import CatalogDeclaration
from portalight.modules.catalog.domain.ports import (
    AuditSink,
    CatalogReader,
    ProjectStore,
    ProjectUpsert,
    SyncHistoryEntry,
)
from portalight.modules.catalog.domain.webhook import (
    PushEvent,
    detect_changed_catalog_files,
)
from portalight.modules.governance.domain.security.audit_log import (
    AuditAction,
    AuditStatus,
)
from portalight.shared.core.exceptions import (
    CatalogNotFoundError,
    CatalogParseError,
    PortalightException,
    ResourceNotFoundError,
    SourceUnavailableError,
)

logger = structlog.get_logger()

NEW_PROJECT_SKIP_MESSAGE = "New project - must be manually imported to select a team"


class SyncOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


class SyncType(str, Enum):
    MANUAL = "manual"
    WEBHOOK = "webhook"


@dataclass(frozen=True)
class SyncActor:
    name: str
    email: Optional[str] = None


WEBHOOK_ACTOR = SyncActor(name="GitHub Webhook")


@dataclass
class SyncResult:
    source: str
    status: SyncOutcome
    message: str
    project_name: Optional[str] = None
    project_id: Optional[UUID] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "file": self.source,
            "status": self.status.value,
            "message": self.message,
            "project_name": self.project_name,
            "project_id": str(self.project_id) if self.project_id else None,
        }
        if self.status == SyncOutcome.FAILED:
            data["error"] = self.message
        return data


@dataclass(frozen=True)
class FileTeamMapping:
    file: str
    # Raw strings come straight from the request and are parsed per item.
    team_id: UUID | str | None

    def resolved_team_id(self) -> Optional[UUID]:
        """UUID of the team; None when absent. ValueError when malformed."""
        if isinstance(self.team_id, UUID):
            return self.team_id
        raw = (self.team_id or "").strip()
        if not raw:
            return None
        return UUID(raw)


@dataclass
class CatalogFileStatus:
    path: str
    project_id: Optional[UUID] = None
    project_name: Optional[str] = None
    sync_status: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "imported": self.project_id is not None,
            "project_id": str(self.project_id) if self.project_id else None,
            "project_name": self.project_name,
            "sync_status": self.sync_status,
        }


class CatalogSyncService:
    def __init__(self, reader: CatalogReader, store: ProjectStore, audit: AuditSink) -> None:
        self.reader = reader
        self.store = store
        self.audit = audit

    async def scan(self) -> list[CatalogFileStatus]:
        """Candidate files annotated with the project each one is linked to."""
        statuses: list[CatalogFileStatus] = []
        for path in await self.reader.list_candidate_files():
            project = await self.store.find_project_by_catalog_path(path)
            statuses.append(
                CatalogFileStatus(
                    path=path,
                    project_id=project.id if project else None,
                    project_name=project.name if project else None,
                    sync_status=project.sync_status if project else None,
                )
            )
        return statuses

    async def sync_file(
        self,
        path: str,
        team_id: Optional[UUID],
        actor: SyncActor,
        sync_type: SyncType = SyncType.MANUAL,
    ) -> SyncResult:
        """
        Sync one catalog file. Every outcome, including an unexpected crash,
        becomes a `SyncResult` with exactly one audit entry.
        """
        try:
            return await self._sync_file(path, team_id, actor, sync_type)
        except Exception as exc:
            return await self._crashed(path, exc, actor, sync_type, team_id=team_id)

    async def _crashed(
        self,
        path: str,
        exc: Exception,
        actor: SyncActor,
        sync_type: SyncType,
        team_id: Optional[UUID] = None,
    ) -> SyncResult:
        logger.error(
            "catalog_sync_crashed",
            file=path,
            sync_type=sync_type.value,
            error=str(exc),
            exc_info=exc,
        )
        result = SyncResult(
            source=path,
            status=SyncOutcome.FAILED,
            message=f"Internal error while syncing {path}",
        )
        await self._audit(actor, result, sync_type, team_id=team_id)
        return result

    async def _sync_file(
        self,
        path: str,
        team_id: Optional[UUID],
        actor: SyncActor,
        sync_type: SyncType,
    ) -> SyncResult:
        started = time.perf_counter()
        log = logger.bind(file=path, sync_type=sync_type.value, actor=actor.name)

        try:
            declaration = await self.reader.fetch_and_parse(path)
        except CatalogNotFoundError:
            log.info("catalog_sync_file_missing")
            result = SyncResult(
                source=path,
                status=SyncOutcome.SKIPPED,
                message=f"Catalog file {path} no longer exists",
            )
            await self._audit(actor, result, sync_type)
            return result
        except CatalogParseError as exc:
            return await self._fail_parse(path, exc, actor, sync_type, started)
        except SourceUnavailableError as exc:
            # Transient: leave the project's sync status untouched.
            log.warning("catalog_sync_source_unavailable", error=exc.message)
            result = SyncResult(source=path, status=SyncOutcome.FAILED, message=exc.message)
            await self._audit(actor, result, sync_type)
            return result

        try:
            result = await self._apply(declaration, team_id)
        except PortalightException as exc:
            log.warning("catalog_sync_apply_failed", error=exc.message)
            result = SyncResult(
                source=path,
                status=SyncOutcome.FAILED,
                message=exc.message,
                project_name=declaration.name,
            )

        await self._record_history(
            SyncHistoryEntry(
                catalog_file_path=path,
                sync_type=sync_type.value,
                status=result.status.value,
                duration_ms=_elapsed_ms(started),
                project_id=result.project_id,
                project_name=result.project_name,
                error_message=result.message if result.status == SyncOutcome.FAILED else None,
                synced_by_name=actor.name,
            )
        )
        await self._audit(actor, result, sync_type, team_id=team_id)
        log.info(
            "catalog_sync_completed",
            status=result.status.value,
            project_name=result.project_name,
            duration_ms=_elapsed_ms(started),
        )
        return result

    async def _apply(
        self, declaration: CatalogDeclaration, team_id: Optional[UUID]
    ) -> SyncResult:
        path = declaration.path
        existing = await self.store.find_project_by_catalog_path(path)

        # An explicit team wins over the declared owner so a push cannot
        # silently reassign a project.
        owner_team_id = team_id
        if owner_team_id is None and declaration.owner_team:
            owner_team_id = await self.store.find_team_id_by_name(declaration.owner_team)
        if owner_team_id is None and existing is not None:
            owner_team_id = existing.owner_team_id
        if owner_team_id is None:
            return SyncResult(
                source=path,
                status=SyncOutcome.FAILED,
                message=(
                    f"Owner team {declaration.owner_team!r} could not be resolved; "
                    "a team_id is required"
                ),
                project_name=declaration.name,
            )

        record, created = await self.store.upsert_project_from_catalog(
            ProjectUpsert(
                catalog_file_path=path,
                name=declaration.name,
                title=declaration.title,
                description=declaration.description,
                owner_team_id=owner_team_id,
                catalog_metadata=declaration.raw,
                synced_at=datetime.now(timezone.utc),
            )
        )
        service_counts = await self.store.sync_project_services(
            record.id, declaration.services, owner_team_id
        )
        verb = "created" if created else "updated"
        return SyncResult(
            source=path,
            status=SyncOutcome.CREATED if created else SyncOutcome.UPDATED,
            message=(
                f"Project {record.name} {verb} from {path} "
                f"({service_counts.get('upserted', 0)} services)"
            ),
            project_name=record.name,
            project_id=record.id,
        )

    async def _fail_parse(
        self,
        path: str,
        exc: CatalogParseError,
        actor: SyncActor,
        sync_type: SyncType,
        started: float,
    ) -> SyncResult:
        existing = await self.store.find_project_by_catalog_path(path)
        if existing is not None:
            # Retrying will not help until the file is fixed; make it visible.
            await self.store.mark_project_sync_failed(existing.id, exc.message)

        logger.warning(
            "catalog_sync_parse_failed",
            file=path,
            errors=exc.errors,
            project_id=str(existing.id) if existing else None,
        )
        result = SyncResult(
            source=path,
            status=SyncOutcome.FAILED,
            message=exc.message,
            project_name=existing.name if existing else None,
            project_id=existing.id if existing else None,
        )
        await self._record_history(
            SyncHistoryEntry(
                catalog_file_path=path,
                sync_type=sync_type.value,
                status=SyncOutcome.FAILED.value,
                duration_ms=_elapsed_ms(started),
                project_id=result.project_id,
                project_name=result.project_name,
                error_message=exc.message,
                validation_errors=exc.errors,
                synced_by_name=actor.name,
            )
        )
        await self._audit(actor, result, sync_type)
        return result

    async def sync_batch(
        self,
        mappings: Sequence[FileTeamMapping],
        actor: SyncActor,
        sync_type: SyncType = SyncType.MANUAL,
    ) -> list[SyncResult]:
        """
        Sync mappings one at a time, in order.

        A failing item never stops the rest of the batch.
        """
        results: list[SyncResult] = []
        seen: set[str] = set()
        for index, mapping in enumerate(mappings, start=1):
            logger.info(
                "catalog_batch_item_started",
                index=index,
                total=len(mappings),
                file=mapping.file,
            )
            if not mapping.file:
                results.append(
                    SyncResult(source="", status=SyncOutcome.FAILED, message="file is required")
                )
                continue
            try:
                team_id = mapping.resolved_team_id()
            except ValueError:
                results.append(
                    SyncResult(
                        source=mapping.file,
                        status=SyncOutcome.FAILED,
                        message=(
                            f"team_id {mapping.team_id!r} is not a valid id "
                            f"for file {mapping.file}"
                        ),
                    )
                )
                continue
            if team_id is None:
                results.append(
                    SyncResult(
                        source=mapping.file,
                        status=SyncOutcome.FAILED,
                        message=f"team_id is required for file {mapping.file}",
                    )
                )
                continue
            if mapping.file in seen:
                results.append(
                    SyncResult(
                        source=mapping.file,
                        status=SyncOutcome.FAILED,
                        message=f"duplicate file in batch: {mapping.file}",
                    )
                )
                continue
            seen.add(mapping.file)
            results.append(
                await self.sync_file(mapping.file, team_id, actor, sync_type)
            )
        return results

    async def resync_project(self, project_id: UUID, actor: SyncActor) -> SyncResult:
        project = await self.store.get_project(project_id)
        if project is None:
            raise ResourceNotFoundError(f"Project {project_id} not found")
        if not project.catalog_file_path:
            raise PortalightException(
                "Project is not managed by the catalog",
                code="project_not_catalog_managed",
                status_code=400,
            )
        return await self.sync_file(
            project.catalog_file_path, project.owner_team_id, actor, SyncType.MANUAL
        )

    async def sync_push_event(
        self, event: PushEvent, branch: str, root: str, actor: SyncActor = WEBHOOK_ACTOR
    ) -> list[SyncResult]:
        """
        Re-sync files touched by a push. Files with no linked project are
        skipped: a team has to be chosen when a project is first imported.
        """
        results: list[SyncResult] = []
        for path in detect_changed_catalog_files(event, branch, root):
            try:
                results.append(await self._sync_pushed_file(path, actor))
            except Exception as exc:
                results.append(await self._crashed(path, exc, actor, SyncType.WEBHOOK))
        return results

    async def _sync_pushed_file(self, path: str, actor: SyncActor) -> SyncResult:
        project = await self.store.find_project_by_catalog_path(path)
        if project is None:
            result = SyncResult(
                source=path, status=SyncOutcome.SKIPPED, message=NEW_PROJECT_SKIP_MESSAGE
            )
            await self._audit(actor, result, SyncType.WEBHOOK)
            return result
        return await self.sync_file(path, project.owner_team_id, actor, SyncType.WEBHOOK)

    async def _record_history(self, entry: SyncHistoryEntry) -> None:
        try:
            await self.store.record_sync_history(entry)
        except Exception as exc:
            logger.warning(
                "catalog_sync_history_failed",
                file=entry.catalog_file_path,
                error=str(exc),
            )

    async def _audit(
        self,
        actor: SyncActor,
        result: SyncResult,
        sync_type: SyncType,
        team_id: Optional[UUID] = None,
    ) -> None:
        status = {
            SyncOutcome.CREATED: AuditStatus.SUCCESS,
            SyncOutcome.UPDATED: AuditStatus.SUCCESS,
            SyncOutcome.SKIPPED: AuditStatus.SKIPPED,
            SyncOutcome.FAILED: AuditStatus.FAILED,
        }[result.status]
        details: dict[str, Any] = {
            "file": result.source,
            "outcome": result.status.value,
            "sync_type": sync_type.value,
            "actor": actor.name,
            "message": result.message,
        }
        if result.project_id:
            details["project_id"] = str(result.project_id)
        if team_id:
            details["team_id"] = str(team_id)
        try:
            await self.audit.record(
                actor_email=actor.email,
                action=AuditAction.CATALOG_SYNC,
                resource_type="project",
                resource_name=result.project_name or result.source,
                status=status,
                details=details,
            )
        except Exception as exc:
            logger.warning("catalog_sync_audit_failed", file=result.source, error=str(exc))


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
