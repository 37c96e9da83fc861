from abc import ABC, abstractmethod
from typing import Any, Dict, List

from portalight.modules.inventory.domain.ports import ResourceCandidate
from portalight.shared.adapters.aws_utils import client_kwargs


class DiscoveryPlugin(ABC):
    """
    Abstract base class for resource discovery plugins.
    Each plugin lists every resource of a single type in one region.

    Plugins let provider errors propagate; the scanner turns them into
    per-type errors so one failing listing never hides the others.
    """

    @property
    @abstractmethod
    def resource_type(self) -> str:
        """
        The short type key (e.g., 's3', 'lambda').
        Used to select plugins and to key per-type errors.
        """
        raise NotImplementedError

    @abstractmethod
    async def scan(
        self,
        session: Any,
        region: str,
        credentials: Dict[str, str] | None = None,
        config: Any = None,
    ) -> List[ResourceCandidate]:
        """List all resources of this type, following pagination."""
        raise NotImplementedError

    def _get_client(
        self,
        session: Any,
        service_name: str,
        region: str,
        credentials: Dict[str, str] | None = None,
        config: Any = None,
    ) -> Any:
        """Helper to get AWS client with optional credentials and config."""
        return session.client(service_name, **client_kwargs(region, credentials, config))
