"""In-memory resource store and a scripted scanner for reconciler tests."""
from dataclasses import replace
from typing import Optional, Sequence
from uuid import UUID, uuid4

import pytest

from portalight.modules.inventory.domain.ports import ResourceCandidate, StoredResource
from portalight.modules.inventory.domain.scanner import DiscoveryResult
from portalight.shared.core.credentials import AWSCredentials


class FakeResourceStore:
    def __init__(self):
        self.rows: dict[tuple[UUID, str], StoredResource] = {}

    def seed(self, project_id, secret_id, arn, resource_type="s3", status="active"):
        row = StoredResource(
            id=uuid4(),
            project_id=project_id,
            secret_id=secret_id,
            arn=arn,
            resource_type=resource_type,
            name=arn.rsplit(":", 1)[-1],
            region="us-east-1",
            status=status,
        )
        self.rows[(project_id, arn)] = row
        return row

    def status_of(self, project_id, arn) -> str:
        return self.rows[(project_id, arn)].status

    def _pair(self, project_id, secret_id):
        return [
            r for r in self.rows.values() if r.project_id == project_id and r.secret_id == secret_id
        ]

    async def find_resource_by_arn(self, project_id, arn) -> Optional[StoredResource]:
        return self.rows.get((project_id, arn))

    async def upsert_resource(self, project_id, secret_id, candidate: ResourceCandidate, synced_at):
        existing = self.rows.get((project_id, candidate.arn))
        row = StoredResource(
            id=existing.id if existing else uuid4(),
            project_id=project_id,
            secret_id=secret_id if secret_id is not None else (existing.secret_id if existing else None),
            arn=candidate.arn,
            resource_type=candidate.resource_type,
            name=candidate.name,
            region=candidate.region,
            status="active",
            metadata=dict(candidate.metadata),
            last_synced_at=synced_at,
        )
        self.rows[(project_id, candidate.arn)] = row
        return replace(row), existing is None

    async def mark_resources_unknown(self, project_id, secret_id, resource_types=None) -> int:
        count = 0
        for row in self._pair(project_id, secret_id):
            if row.status == "deleted":
                continue
            if resource_types is not None and row.resource_type not in resource_types:
                continue
            row.status = "unknown"
            count += 1
        return count

    async def mark_unknown_resources_deleted(self, project_id, secret_id) -> int:
        count = 0
        for row in self._pair(project_id, secret_id):
            if row.status == "unknown":
                row.status = "deleted"
                count += 1
        return count

    async def restore_unknown_resources(self, project_id, secret_id, resource_types: Sequence[str]) -> int:
        count = 0
        for row in self._pair(project_id, secret_id):
            if row.status == "unknown" and row.resource_type in resource_types:
                row.status = "active"
                count += 1
        return count

    async def list_resources(self, project_id, status=None):
        return [
            r
            for r in self.rows.values()
            if r.project_id == project_id and (status is None or r.status == status)
        ]

    async def list_arns(self, project_id, secret_id=None) -> set[str]:
        return {
            r.arn
            for r in self.rows.values()
            if r.project_id == project_id and (secret_id is None or r.secret_id == secret_id)
        }


class ScriptedScanner:
    """Returns a fixed DiscoveryResult and records the requested types."""

    def __init__(self, candidates=None, errors=None):
        self.result = DiscoveryResult(candidates=list(candidates or []), errors=dict(errors or {}))
        self.calls: list[list[str]] = []

    async def discover(self, credentials, region, types=None):
        self.calls.append(list(types or []))
        return DiscoveryResult(
            candidates=list(self.result.candidates), errors=dict(self.result.errors)
        )


def bucket(name: str) -> ResourceCandidate:
    return ResourceCandidate(
        arn=f"arn:aws:s3:::{name}", resource_type="s3", name=name, region="us-east-1"
    )


@pytest.fixture
def resource_store():
    return FakeResourceStore()


@pytest.fixture
def credentials():
    return AWSCredentials(
        access_key_id="AKIATEST",
        secret_access_key="secret",
        region="us-east-1",
        access_type="read",
    )


@pytest.fixture
def make_bucket():
    return bucket


@pytest.fixture
def scripted_scanner():
    return ScriptedScanner
