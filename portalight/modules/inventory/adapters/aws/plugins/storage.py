from typing import Any, Dict, List

import structlog

from portalight.modules.inventory.domain.plugin import DiscoveryPlugin
from portalight.modules.inventory.domain.ports import ResourceCandidate
from portalight.modules.inventory.domain.registry import registry

logger = structlog.get_logger()


@registry.register("aws")
class S3BucketsPlugin(DiscoveryPlugin):
    @property
    def resource_type(self) -> str:
        return "s3"

    async def scan(
        self,
        session: Any,
        region: str,
        credentials: Dict[str, str] | None = None,
        config: Any = None,
    ) -> List[ResourceCandidate]:
        # ListBuckets is global; buckets are attributed to the scanned region.
        buckets: List[ResourceCandidate] = []
        async with self._get_client(session, "s3", region, credentials, config=config) as s3:
            response = await s3.list_buckets()
            for bucket in response.get("Buckets", []):
                name = bucket["Name"]
                created = bucket.get("CreationDate")
                buckets.append(
                    ResourceCandidate(
                        arn=f"arn:aws:s3:::{name}",
                        resource_type=self.resource_type,
                        name=name,
                        region=region,
                        metadata={"created": created.isoformat() if created else None},
                    )
                )
        logger.debug("s3_buckets_listed", region=region, count=len(buckets))
        return buckets
