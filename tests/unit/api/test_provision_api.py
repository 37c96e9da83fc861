from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select

from portalight.models.discovered_resource import DiscoveredResource

PROVISIONER = "portalight.modules.provisioning.domain.service.AWSProvisioner"
TOPIC_ARN = "arn:aws:sns:us-east-1:123456789012:alerts"


def _provisioner(**kwargs):
    instance = MagicMock()
    instance.create_resource = AsyncMock(**kwargs)
    return MagicMock(return_value=instance), instance


@pytest.mark.asyncio
async def test_provision_is_accepted_and_completed_in_background(
    async_client, as_user, lead_user, db, project, secret_factory
):
    as_user(lead_user)
    secret = await secret_factory(access_type="write")
    factory, instance = _provisioner(return_value=TOPIC_ARN)

    with patch(PROVISIONER, factory):
        response = await async_client.post(
            f"/api/v1/projects/{project.id}/provision",
            json={"secret_id": str(secret.id), "resource_type": "sns", "name": "alerts"},
        )

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["resource"]["status"] == "provisioning"
    assert body["resource"]["region"] == "us-east-1"
    instance.create_resource.assert_awaited_once()

    db.expunge_all()
    listing = await async_client.get(f"/api/v1/projects/{project.id}/provisioned")
    provisioned = listing.json()["resources"]
    assert [(r["name"], r["status"], r["arn"]) for r in provisioned] == [
        ("alerts", "active", TOPIC_ARN)
    ]

    discovered = (await db.execute(select(DiscoveredResource))).scalar_one()
    assert discovered.arn == TOPIC_ARN
    assert discovered.resource_metadata["provisioned"] is True


@pytest.mark.asyncio
async def test_provision_failure_is_visible(
    async_client, as_user, lead_user, db, project, secret_factory
):
    from portalight.shared.core.exceptions import ProvisionError

    as_user(lead_user)
    secret = await secret_factory(access_type="write")
    factory, _ = _provisioner(side_effect=ProvisionError("Topic limit reached"))

    with patch(PROVISIONER, factory):
        response = await async_client.post(
            f"/api/v1/projects/{project.id}/provision",
            json={"secret_id": str(secret.id), "resource_type": "sns", "name": "alerts"},
        )
    assert response.status_code == 202

    db.expunge_all()
    provisioned = (
        await async_client.get(f"/api/v1/projects/{project.id}/provisioned")
    ).json()["resources"]
    assert provisioned[0]["status"] == "failed"
    assert provisioned[0]["error"] == "Topic limit reached"


@pytest.mark.asyncio
async def test_dev_without_grant_is_forbidden(
    async_client, as_user, dev_user, project, secret_factory
):
    as_user(dev_user)
    secret = await secret_factory(access_type="write")

    response = await async_client.post(
        f"/api/v1/projects/{project.id}/provision",
        json={"secret_id": str(secret.id), "resource_type": "s3", "name": "bucket"},
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_config_is_rejected(async_client, as_user, lead_user, project, secret_factory):
    as_user(lead_user)
    secret = await secret_factory(access_type="write")

    response = await async_client.post(
        f"/api/v1/projects/{project.id}/provision",
        json={
            "secret_id": str(secret.id),
            "resource_type": "sqs",
            "name": "jobs",
            "config": {"visibility_timeout": -5},
        },
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_resource_config"
