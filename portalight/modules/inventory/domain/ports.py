from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol, Sequence
from uuid import UUID

from portalight.shared.core.credentials import AWSCredentials


@dataclass
class ResourceCandidate:
    """A cloud resource as reported by a provider listing, before persistence."""

    arn: str
    resource_type: str
    name: str
    region: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "arn": self.arn,
            "resource_type": self.resource_type,
            "name": self.name,
            "region": self.region,
            "metadata": self.metadata,
        }


@dataclass
class StoredResource:
    id: UUID
    project_id: UUID
    secret_id: Optional[UUID]
    arn: str
    resource_type: str
    name: str
    region: str
    status: str
    metadata: dict[str, Any] = field(default_factory=dict)
    last_synced_at: Optional[datetime] = None


class ResourceStore(Protocol):
    async def find_resource_by_arn(self, project_id: UUID, arn: str) -> Optional[StoredResource]:
        """Resource of the project with this ARN, if any."""

    async def upsert_resource(
        self,
        project_id: UUID,
        secret_id: Optional[UUID],
        candidate: ResourceCandidate,
        synced_at: datetime,
    ) -> tuple[StoredResource, bool]:
        """
        Insert or reactivate keyed by (project_id, arn); returns (resource, created).

        A None secret_id keeps the secret already stored on the row.
        """

    async def mark_resources_unknown(
        self,
        project_id: UUID,
        secret_id: UUID,
        resource_types: Optional[Sequence[str]] = None,
    ) -> int:
        """Provisional pre-sweep marker; None means every type."""

    async def mark_unknown_resources_deleted(self, project_id: UUID, secret_id: UUID) -> int:
        """Resources still unknown after a sweep become deleted."""

    async def restore_unknown_resources(
        self, project_id: UUID, secret_id: UUID, resource_types: Sequence[str]
    ) -> int:
        """Unknown resources of the given types go back to active."""

    async def list_resources(
        self, project_id: UUID, status: Optional[str] = None
    ) -> list[StoredResource]:
        """Resources of the project, optionally filtered by status."""

    async def list_arns(self, project_id: UUID, secret_id: Optional[UUID] = None) -> set[str]:
        """ARNs already linked to the project."""


class CredentialVault(Protocol):
    async def get_decrypted_credential(self, secret_id: UUID) -> AWSCredentials:
        """Decrypted credentials; CredentialNotFoundError when absent."""


class ResourceLister(Protocol):
    async def discover(
        self,
        credentials: AWSCredentials,
        region: str,
        types: Optional[Sequence[str]] = None,
    ) -> Any:
        """Returns a DiscoveryResult."""


class ResourceCreator(Protocol):
    async def create_resource(
        self,
        credentials: AWSCredentials,
        resource_type: str,
        name: str,
        config: dict[str, Any],
        region: Optional[str] = None,
    ) -> str:
        """Create the resource and return its ARN."""
