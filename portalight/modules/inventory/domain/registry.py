from typing import Callable, Dict, List, Optional, Type, TypeVar

import structlog

from portalight.modules.inventory.domain.plugin import DiscoveryPlugin

logger = structlog.get_logger()

P = TypeVar("P", bound=DiscoveryPlugin)


class PluginRegistry:
    """
    Discovery plugins keyed by provider, then by resource type.

    Usage:
        @registry.register("aws")
        class S3BucketsPlugin(DiscoveryPlugin):
            ...
    """

    def __init__(self) -> None:
        self._plugins: Dict[str, Dict[str, DiscoveryPlugin]] = {}

    def register(self, provider: str) -> Callable[[Type[P]], Type[P]]:
        def decorator(plugin_cls: Type[P]) -> Type[P]:
            plugin = plugin_cls()
            by_type = self._plugins.setdefault(provider, {})
            if plugin.resource_type in by_type:
                logger.warning(
                    "discovery_plugin_replaced",
                    provider=provider,
                    resource_type=plugin.resource_type,
                )
            by_type[plugin.resource_type] = plugin
            return plugin_cls

        return decorator

    def get(self, provider: str, resource_type: str) -> Optional[DiscoveryPlugin]:
        return self._plugins.get(provider, {}).get(resource_type)

    def get_plugins(self, provider: str) -> List[DiscoveryPlugin]:
        return list(self._plugins.get(provider, {}).values())

    def resource_types(self, provider: str) -> List[str]:
        return sorted(self._plugins.get(provider, {}))


registry = PluginRegistry()
