from typing import Any, Dict, List

from portalight.modules.inventory.domain.plugin import DiscoveryPlugin
from portalight.modules.inventory.domain.ports import ResourceCandidate
from portalight.modules.inventory.domain.registry import registry


@registry.register("aws")
class LambdaFunctionsPlugin(DiscoveryPlugin):
    @property
    def resource_type(self) -> str:
        return "lambda"

    async def scan(
        self,
        session: Any,
        region: str,
        credentials: Dict[str, str] | None = None,
        config: Any = None,
    ) -> List[ResourceCandidate]:
        functions: List[ResourceCandidate] = []
        async with self._get_client(
            session, "lambda", region, credentials, config=config
        ) as lambda_client:
            paginator = lambda_client.get_paginator("list_functions")
            async for page in paginator.paginate():
                for fn in page.get("Functions", []):
                    functions.append(
                        ResourceCandidate(
                            arn=fn["FunctionArn"],
                            resource_type=self.resource_type,
                            name=fn["FunctionName"],
                            region=region,
                            metadata={
                                "runtime": fn.get("Runtime", ""),
                                "memory_mb": fn.get("MemorySize", 0),
                                "timeout_sec": fn.get("Timeout", 0),
                                "handler": fn.get("Handler", ""),
                            },
                        )
                    )
        return functions
