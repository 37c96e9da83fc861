from typing import Any, Dict, List, Optional

import structlog
from botocore.exceptions import ClientError

from portalight.modules.inventory.domain.plugin import DiscoveryPlugin
from portalight.modules.inventory.domain.ports import ResourceCandidate
from portalight.modules.inventory.domain.registry import registry

logger = structlog.get_logger()


def queue_name_from_url(queue_url: str) -> str:
    return queue_url.rstrip("/").rsplit("/", 1)[-1]


def topic_name_from_arn(topic_arn: str) -> str:
    return topic_arn.rsplit(":", 1)[-1]


def _account_from_queue_url(queue_url: str) -> Optional[str]:
    # https://sqs.<region>.amazonaws.com/<account>/<name>
    parts = queue_url.rstrip("/").split("/")
    if len(parts) >= 2 and parts[-2].isdigit():
        return parts[-2]
    return None


@registry.register("aws")
class SqsQueuesPlugin(DiscoveryPlugin):
    @property
    def resource_type(self) -> str:
        return "sqs"

    async def scan(
        self,
        session: Any,
        region: str,
        credentials: Dict[str, str] | None = None,
        config: Any = None,
    ) -> List[ResourceCandidate]:
        queues: List[ResourceCandidate] = []
        async with self._get_client(session, "sqs", region, credentials, config=config) as sqs:
            paginator = sqs.get_paginator("list_queues")
            async for page in paginator.paginate():
                for queue_url in page.get("QueueUrls", []):
                    name = queue_name_from_url(queue_url)
                    arn = await self._queue_arn(sqs, queue_url)
                    if not arn:
                        account = _account_from_queue_url(queue_url) or "*"
                        arn = f"arn:aws:sqs:{region}:{account}:{name}"
                    queues.append(
                        ResourceCandidate(
                            arn=arn,
                            resource_type=self.resource_type,
                            name=name,
                            region=region,
                            metadata={"queue_url": queue_url},
                        )
                    )
        return queues

    @staticmethod
    async def _queue_arn(sqs: Any, queue_url: str) -> Optional[str]:
        try:
            response = await sqs.get_queue_attributes(
                QueueUrl=queue_url, AttributeNames=["QueueArn"]
            )
        except ClientError as e:
            # Queue deleted between list and describe, or no sqs:GetQueueAttributes.
            logger.debug("sqs_queue_arn_lookup_failed", queue_url=queue_url, error=str(e))
            return None
        return response.get("Attributes", {}).get("QueueArn")


@registry.register("aws")
class SnsTopicsPlugin(DiscoveryPlugin):
    @property
    def resource_type(self) -> str:
        return "sns"

    async def scan(
        self,
        session: Any,
        region: str,
        credentials: Dict[str, str] | None = None,
        config: Any = None,
    ) -> List[ResourceCandidate]:
        topics: List[ResourceCandidate] = []
        async with self._get_client(session, "sns", region, credentials, config=config) as sns:
            paginator = sns.get_paginator("list_topics")
            async for page in paginator.paginate():
                for topic in page.get("Topics", []):
                    arn = topic["TopicArn"]
                    topics.append(
                        ResourceCandidate(
                            arn=arn,
                            resource_type=self.resource_type,
                            name=topic_name_from_arn(arn),
                            region=region,
                        )
                    )
        return topics
