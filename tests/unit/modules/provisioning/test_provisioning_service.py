from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from portalight.models.discovered_resource import DiscoveredResource
from portalight.modules.governance.domain.security.audit_log import AuditLog
from portalight.modules.provisioning.domain.service import (
    GENERIC_PROVISIONING_ERROR,
    ProvisioningService,
    ProvisionRequest,
)
from portalight.shared.core.exceptions import (
    ConflictError,
    PortalightException,
    ProvisionError,
    ResourceNotFoundError,
)

QUEUE_ARN = "arn:aws:sqs:us-east-1:123456789012:jobs"


@pytest.fixture
def provisioner():
    creator = AsyncMock()
    creator.create_resource.return_value = QUEUE_ARN
    return creator


async def _audit_actions(db):
    result = await db.execute(select(AuditLog.action, AuditLog.status))
    return [tuple(row) for row in result.all()]


@pytest.mark.asyncio
async def test_request_records_pending_row(db, project, secret_factory, dev_user, provisioner):
    secret = await secret_factory(access_type="write")
    service = ProvisioningService(db, provisioner=provisioner)

    resource = await service.request(
        project.id,
        ProvisionRequest(
            secret_id=secret.id,
            resource_type="SQS",
            name="jobs",
            config={"visibility_timeout": 30},
        ),
        dev_user,
    )

    assert resource.status == "provisioning"
    assert resource.resource_type == "sqs"
    assert resource.region == "us-east-1"
    assert resource.config == {
        "queue_type": "standard",
        "visibility_timeout": 30,
        "message_retention_days": 0,
        "delay_seconds": 0,
    }
    assert resource.created_by == dev_user.email
    assert ("provision_resource", "pending") in await _audit_actions(db)
    provisioner.create_resource.assert_not_called()


@pytest.mark.asyncio
async def test_request_requires_type_permission(db, project, secret_factory, dev_user, provisioner):
    secret = await secret_factory(access_type="write")
    service = ProvisioningService(db, provisioner=provisioner)

    with pytest.raises(HTTPException) as exc_info:
        await service.request(
            project.id,
            ProvisionRequest(secret_id=secret.id, resource_type="s3", name="bucket"),
            dev_user,
        )

    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_request_rejects_read_only_secret(db, project, secret_factory, lead_user, provisioner):
    secret = await secret_factory(access_type="read")

    with pytest.raises(PortalightException) as exc_info:
        await ProvisioningService(db, provisioner=provisioner).request(
            project.id,
            ProvisionRequest(secret_id=secret.id, resource_type="sns", name="alerts"),
            lead_user,
        )

    assert exc_info.value.code == "secret_read_only"


@pytest.mark.asyncio
async def test_request_unknown_project(db, secret_factory, lead_user, provisioner):
    secret = await secret_factory(access_type="write")

    with pytest.raises(ResourceNotFoundError):
        await ProvisioningService(db, provisioner=provisioner).request(
            uuid4(),
            ProvisionRequest(secret_id=secret.id, resource_type="sns", name="alerts"),
            lead_user,
        )


@pytest.mark.asyncio
async def test_duplicate_request_conflicts(db, project, secret_factory, lead_user, provisioner):
    secret = await secret_factory(access_type="write")
    service = ProvisioningService(db, provisioner=provisioner)
    payload = ProvisionRequest(secret_id=secret.id, resource_type="sns", name="alerts")

    await service.request(project.id, payload, lead_user)
    with pytest.raises(ConflictError):
        await service.request(project.id, payload, lead_user)


@pytest.mark.asyncio
async def test_run_success_registers_discovered_resource(
    db, project, secret_factory, dev_user, provisioner
):
    secret = await secret_factory(access_type="write")
    service = ProvisioningService(db, provisioner=provisioner)
    resource = await service.request(
        project.id,
        ProvisionRequest(secret_id=secret.id, resource_type="sqs", name="jobs"),
        dev_user,
    )

    done = await service.run(resource.id, dev_user.email)

    assert done.status == "active"
    assert done.arn == QUEUE_ARN
    credentials, resource_type, name, config = provisioner.create_resource.call_args.args
    assert credentials.access_key_id == "AKIATEST"
    assert credentials.can_write is True
    assert (resource_type, name) == ("sqs", "jobs")
    assert provisioner.create_resource.call_args.kwargs["region"] == "us-east-1"

    discovered = (await db.execute(select(DiscoveredResource))).scalar_one()
    assert discovered.arn == QUEUE_ARN
    assert discovered.status == "active"
    assert discovered.resource_metadata["provisioned"] is True
    assert discovered.resource_metadata["provisioned_resource_id"] == str(resource.id)
    assert ("provision_resource_complete", "success") in await _audit_actions(db)


@pytest.mark.asyncio
async def test_run_failure_is_persisted(db, project, secret_factory, dev_user, provisioner):
    secret = await secret_factory(access_type="write")
    provisioner.create_resource.side_effect = ProvisionError("A queue with this name already exists.")
    service = ProvisioningService(db, provisioner=provisioner)
    resource = await service.request(
        project.id,
        ProvisionRequest(secret_id=secret.id, resource_type="sqs", name="jobs"),
        dev_user,
    )

    done = await service.run(resource.id, dev_user.email)

    assert done.status == "failed"
    assert done.error == "A queue with this name already exists."
    assert (await db.execute(select(DiscoveredResource))).scalars().all() == []
    assert ("provision_resource_complete", "failed") in await _audit_actions(db)


@pytest.mark.asyncio
async def test_run_unexpected_error_marks_row_failed(
    db, project, secret_factory, dev_user, provisioner
):
    secret = await secret_factory(access_type="write")
    provisioner.create_resource.side_effect = KeyError("QueueUrl")
    service = ProvisioningService(db, provisioner=provisioner)
    resource = await service.request(
        project.id,
        ProvisionRequest(secret_id=secret.id, resource_type="sqs", name="jobs"),
        dev_user,
    )

    done = await service.run(resource.id, dev_user.email)

    assert done.status == "failed"
    assert done.error == GENERIC_PROVISIONING_ERROR
    assert "QueueUrl" not in done.error
    assert ("provision_resource_complete", "failed") in await _audit_actions(db)


@pytest.mark.asyncio
async def test_run_with_missing_secret_fails_cleanly(db, project, secret_factory, dev_user, provisioner):
    secret = await secret_factory(access_type="write")
    service = ProvisioningService(db, provisioner=provisioner)
    resource = await service.request(
        project.id,
        ProvisionRequest(secret_id=secret.id, resource_type="sqs", name="jobs"),
        dev_user,
    )
    await db.delete(secret)
    await db.commit()

    done = await service.run(resource.id, dev_user.email)

    assert done.status == "failed"
    assert done.error
    provisioner.create_resource.assert_not_called()


@pytest.mark.asyncio
async def test_run_unknown_resource(db, provisioner):
    with pytest.raises(ResourceNotFoundError):
        await ProvisioningService(db, provisioner=provisioner).run(uuid4())
