from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from portalight.modules.inventory.domain.plugin import DiscoveryPlugin
from portalight.modules.inventory.domain.ports import ResourceCandidate
from portalight.modules.inventory.domain.registry import PluginRegistry
from portalight.modules.inventory.domain.scanner import DiscoveryScanner

test_registry = PluginRegistry()


@test_registry.register("aws")
class FakeBucketsPlugin(DiscoveryPlugin):
    @property
    def resource_type(self) -> str:
        return "s3"

    async def scan(self, session, region, credentials=None, config=None):
        assert credentials["aws_access_key_id"] == "AKIATEST"
        return [
            ResourceCandidate(
                arn="arn:aws:s3:::my-bucket", resource_type="s3", name="my-bucket", region=region
            )
        ]


@test_registry.register("aws")
class DeniedQueuesPlugin(DiscoveryPlugin):
    @property
    def resource_type(self) -> str:
        return "sqs"

    async def scan(self, session, region, credentials=None, config=None):
        raise ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "not authorized to ListQueues"}},
            "ListQueues",
        )


@test_registry.register("aws")
class CrashingTopicsPlugin(DiscoveryPlugin):
    @property
    def resource_type(self) -> str:
        return "sns"

    async def scan(self, session, region, credentials=None, config=None):
        raise RuntimeError("endpoint exploded")


@pytest.fixture
def scanner():
    return DiscoveryScanner(session=MagicMock(), plugin_registry=test_registry)


@pytest.mark.asyncio
async def test_failing_type_does_not_hide_others(scanner, credentials):
    result = await scanner.discover(credentials, "us-east-1", ["s3", "sqs", "sns"])

    assert [c.name for c in result.candidates] == ["my-bucket"]
    assert result.errors == {
        "sqs": "AccessDenied: not authorized to ListQueues",
        "sns": "endpoint exploded",
    }
    assert result.failed_types == ["sns", "sqs"]


@pytest.mark.asyncio
async def test_unknown_type_is_reported(scanner, credentials):
    result = await scanner.discover(credentials, "us-east-1", ["s3", "dynamodb"])

    assert result.errors == {"dynamodb": "Unsupported resource type: dynamodb"}
    assert len(result.candidates) == 1


@pytest.mark.asyncio
async def test_types_are_normalized_and_deduplicated(scanner, credentials):
    result = await scanner.discover(credentials, "us-east-1", ["S3", " s3 "])

    assert len(result.candidates) == 1
    assert result.errors == {}


@pytest.mark.asyncio
async def test_default_types_come_from_settings(scanner, credentials, monkeypatch):
    from portalight.shared.core.config import get_settings

    monkeypatch.setattr(get_settings(), "DISCOVERY_DEFAULT_TYPES", ["s3"])

    result = await scanner.discover(credentials, "us-east-1")

    assert result.to_dict() == {
        "resources": [
            {
                "arn": "arn:aws:s3:::my-bucket",
                "resource_type": "s3",
                "name": "my-bucket",
                "region": "us-east-1",
                "metadata": {},
            }
        ],
        "errors": {},
    }
