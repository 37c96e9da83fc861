"""
Discovery reconciliation.

A sweep converges the stored resources of one (project, secret) pair toward
what the cloud provider currently reports:

1. every stored resource of the swept types is marked `unknown`;
2. every observed resource is upserted as `active`;
3. whatever is still `unknown` is marked `deleted`.

The passes commit separately. A crash between them leaves rows at `unknown`
until the next sweep. Rows are never hard-deleted here, so a resource that
reappears is reactivated in place via the (project_id, arn) key.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

import structlog

from portalight.modules.inventory.domain.ports import (
    ResourceCandidate,
    ResourceLister,
    ResourceStore,
    StoredResource,
)
from portalight.modules.inventory.domain.scanner import (
    DiscoveryResult,
    DiscoveryScanner,
    normalize_resource_types,
)
from portalight.shared.core.config import get_settings
from portalight.shared.core.credentials import AWSCredentials

logger = structlog.get_logger()


@dataclass
class SweepResult:
    project_id: UUID
    secret_id: UUID
    region: str
    resources_found: int = 0
    resources_added: int = 0
    resources_updated: int = 0
    resources_deleted: int = 0
    errors: Dict[str, str] = field(default_factory=dict)
    synced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": str(self.project_id),
            "secret_id": str(self.secret_id),
            "region": self.region,
            "resources_found": self.resources_found,
            "resources_added": self.resources_added,
            "resources_updated": self.resources_updated,
            "resources_deleted": self.resources_deleted,
            "errors": dict(self.errors),
            "synced_at": self.synced_at.isoformat(),
        }


@dataclass
class AssociationResult:
    arn: str
    status: str
    resource: Optional[StoredResource] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"arn": self.arn, "status": self.status}
        if self.resource is not None:
            data["id"] = str(self.resource.id)
            data["name"] = self.resource.name
            data["resource_type"] = self.resource.resource_type
        return data


class SweepLockRegistry:
    """
    One asyncio.Lock per (project, secret) pair.

    Two interleaved sweeps of the same pair could mark each other's freshly
    upserted rows unknown and then deleted, so callers hold the pair's lock
    for the whole sweep. Only serializes within one process.
    """

    def __init__(self) -> None:
        self._locks: Dict[tuple[UUID, UUID], asyncio.Lock] = {}

    def lock_for(self, project_id: UUID, secret_id: UUID) -> asyncio.Lock:
        key = (project_id, secret_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def is_locked(self, project_id: UUID, secret_id: UUID) -> bool:
        lock = self._locks.get((project_id, secret_id))
        return bool(lock and lock.locked())


sweep_locks = SweepLockRegistry()


class ResourceReconciler:
    def __init__(self, store: ResourceStore, scanner: Optional[ResourceLister] = None) -> None:
        self.store = store
        self.scanner = scanner or DiscoveryScanner()

    async def sweep(
        self,
        project_id: UUID,
        secret_id: UUID,
        region: str,
        types: Optional[Sequence[str]],
        credentials: AWSCredentials,
    ) -> SweepResult:
        swept_types = normalize_resource_types(types)
        result = SweepResult(project_id=project_id, secret_id=secret_id, region=region)
        log = logger.bind(
            project_id=str(project_id), secret_id=str(secret_id), region=region
        )

        marked = await self.store.mark_resources_unknown(
            project_id, secret_id, resource_types=swept_types
        )
        discovery = await self.scanner.discover(credentials, region, swept_types)
        result.errors = dict(discovery.errors)
        result.resources_found = len(discovery.candidates)

        synced_at = result.synced_at
        for candidate in discovery.candidates:
            _, created = await self.store.upsert_resource(
                project_id, secret_id, candidate, synced_at
            )
            if created:
                result.resources_added += 1
            else:
                result.resources_updated += 1

        if discovery.errors and get_settings().DISCOVERY_PROTECT_FAILED_TYPES:
            restored = await self.store.restore_unknown_resources(
                project_id, secret_id, discovery.failed_types
            )
            if restored:
                log.warning(
                    "discovery_sweep_failed_types_protected",
                    failed_types=discovery.failed_types,
                    restored=restored,
                )

        result.resources_deleted = await self.store.mark_unknown_resources_deleted(
            project_id, secret_id
        )
        log.info(
            "discovery_sweep_completed",
            types=swept_types,
            marked_unknown=marked,
            found=result.resources_found,
            added=result.resources_added,
            updated=result.resources_updated,
            deleted=result.resources_deleted,
            failed_types=discovery.failed_types,
        )
        return result

    async def associate(
        self,
        project_id: UUID,
        secret_id: Optional[UUID],
        entries: Sequence[ResourceCandidate],
    ) -> List[AssociationResult]:
        """Upsert explicit entries as active; other resources are left alone."""
        synced_at = datetime.now(timezone.utc)
        results: List[AssociationResult] = []
        for entry in entries:
            resource, created = await self.store.upsert_resource(
                project_id, secret_id, entry, synced_at
            )
            results.append(
                AssociationResult(
                    arn=entry.arn,
                    status="created" if created else "updated",
                    resource=resource,
                )
            )
        logger.info(
            "resources_associated",
            project_id=str(project_id),
            created=sum(1 for r in results if r.status == "created"),
            updated=sum(1 for r in results if r.status == "updated"),
        )
        return results

    async def register_provisioned(
        self,
        project_id: UUID,
        secret_id: Optional[UUID],
        arn: str,
        resource_type: str,
        name: str,
        region: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StoredResource:
        resource, _ = await self.store.upsert_resource(
            project_id,
            secret_id,
            ResourceCandidate(
                arn=arn,
                resource_type=resource_type,
                name=name,
                region=region,
                metadata={**(metadata or {}), "provisioned": True},
            ),
            datetime.now(timezone.utc),
        )
        return resource

    async def preview(
        self,
        project_id: UUID,
        secret_id: UUID,
        region: str,
        types: Optional[Sequence[str]],
        credentials: AWSCredentials,
    ) -> DiscoveryResult:
        """Scan without writing; drop resources already stored for the pair."""
        discovery = await self.scanner.discover(
            credentials, region, normalize_resource_types(types)
        )
        known = await self.store.list_arns(project_id, secret_id)
        return DiscoveryResult(
            candidates=[c for c in discovery.candidates if c.arn not in known],
            errors=discovery.errors,
        )
