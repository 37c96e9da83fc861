"""
AWS resource discovery.

Runs one plugin per requested resource type against a single region. A
failing type is reported in `DiscoveryResult.errors` and never aborts the
other types; callers use the error keys to know which listings are
incomplete.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import structlog
from botocore.exceptions import BotoCoreError, ClientError

# Registers the AWS plugins with the registry.
import portalight.modules.inventory.adapters.aws.plugins  # noqa: F401
from portalight.modules.inventory.domain.plugin import DiscoveryPlugin
from portalight.modules.inventory.domain.ports import ResourceCandidate
from portalight.modules.inventory.domain.registry import PluginRegistry, registry
from portalight.shared.adapters.aws_utils import DEFAULT_BOTO_CONFIG, get_boto_session
from portalight.shared.core.config import get_settings
from portalight.shared.core.credentials import AWSCredentials

logger = structlog.get_logger()


@dataclass
class DiscoveryResult:
    candidates: List[ResourceCandidate] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def failed_types(self) -> List[str]:
        return sorted(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resources": [candidate.to_dict() for candidate in self.candidates],
            "errors": dict(self.errors),
        }


def _describe_error(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = error.get("Code", "Unknown")
        return f"{code}: {error.get('Message', str(exc))}"
    return str(exc)


def normalize_resource_types(types: Optional[Sequence[str]]) -> List[str]:
    """Lower-cased, de-duplicated types in request order; empty means the defaults."""
    resolved: List[str] = []
    for t in types or ():
        key = str(t).strip().lower()
        if key and key not in resolved:
            resolved.append(key)
    return resolved or list(get_settings().DISCOVERY_DEFAULT_TYPES)


class DiscoveryScanner:
    """Lists provider resources through the registered discovery plugins."""

    def __init__(
        self,
        session: Any = None,
        plugin_registry: PluginRegistry = registry,
        provider: str = "aws",
    ) -> None:
        self.session = session
        self.registry = plugin_registry
        self.provider = provider

    def _resolve_types(self, types: Optional[Sequence[str]]) -> List[str]:
        return normalize_resource_types(types)

    async def discover(
        self,
        credentials: AWSCredentials,
        region: str,
        types: Optional[Sequence[str]] = None,
    ) -> DiscoveryResult:
        session = self.session or get_boto_session()
        boto_credentials = credentials.to_boto_credentials()
        result = DiscoveryResult()

        plugins: List[DiscoveryPlugin] = []
        for resource_type in self._resolve_types(types):
            plugin = self.registry.get(self.provider, resource_type)
            if plugin is None:
                result.errors[resource_type] = f"Unsupported resource type: {resource_type}"
                continue
            plugins.append(plugin)

        outcomes = await asyncio.gather(
            *(
                self._scan_one(plugin, session, region, boto_credentials)
                for plugin in plugins
            )
        )
        for plugin, (candidates, error) in zip(plugins, outcomes):
            if error is not None:
                result.errors[plugin.resource_type] = error
                continue
            result.candidates.extend(candidates)

        logger.info(
            "discovery_completed",
            region=region,
            types=[p.resource_type for p in plugins],
            found=len(result.candidates),
            failed_types=result.failed_types,
        )
        return result

    async def _scan_one(
        self,
        plugin: DiscoveryPlugin,
        session: Any,
        region: str,
        credentials: Dict[str, str],
    ) -> tuple[List[ResourceCandidate], Optional[str]]:
        try:
            candidates = await plugin.scan(
                session, region, credentials, config=DEFAULT_BOTO_CONFIG
            )
            return candidates, None
        except (ClientError, BotoCoreError) as exc:
            message = _describe_error(exc)
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or exc.__class__.__name__
        logger.warning(
            "discovery_type_failed",
            resource_type=plugin.resource_type,
            region=region,
            error=message,
        )
        return [], message
