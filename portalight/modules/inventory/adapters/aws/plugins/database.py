from typing import Any, Dict, List

from portalight.modules.inventory.domain.plugin import DiscoveryPlugin
from portalight.modules.inventory.domain.ports import ResourceCandidate
from portalight.modules.inventory.domain.registry import registry


@registry.register("aws")
class RdsInstancesPlugin(DiscoveryPlugin):
    @property
    def resource_type(self) -> str:
        return "rds"

    async def scan(
        self,
        session: Any,
        region: str,
        credentials: Dict[str, str] | None = None,
        config: Any = None,
    ) -> List[ResourceCandidate]:
        instances: List[ResourceCandidate] = []
        async with self._get_client(session, "rds", region, credentials, config=config) as rds:
            paginator = rds.get_paginator("describe_db_instances")
            async for page in paginator.paginate():
                for db in page.get("DBInstances", []):
                    instances.append(
                        ResourceCandidate(
                            arn=db.get("DBInstanceArn", ""),
                            resource_type=self.resource_type,
                            name=db["DBInstanceIdentifier"],
                            region=region,
                            metadata={
                                "engine": db.get("Engine", ""),
                                "engine_version": db.get("EngineVersion", ""),
                                "instance_class": db.get("DBInstanceClass", ""),
                                "storage_gb": db.get("AllocatedStorage", 0),
                                "multi_az": bool(db.get("MultiAZ", False)),
                                "status": db.get("DBInstanceStatus", "unknown"),
                            },
                        )
                    )
        return instances
