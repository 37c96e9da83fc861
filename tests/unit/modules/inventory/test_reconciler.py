import asyncio
from uuid import uuid4

import pytest

from portalight.modules.inventory.domain.ports import ResourceCandidate
from portalight.modules.inventory.domain.reconciler import (
    ResourceReconciler,
    SweepLockRegistry,
)


@pytest.fixture
def project_id():
    return uuid4()


@pytest.fixture
def secret_id():
    return uuid4()


@pytest.mark.asyncio
async def test_sweep_adds_observed_and_deletes_missing(
    resource_store, scripted_scanner, make_bucket, credentials, project_id, secret_id
):
    resource_store.seed(project_id, secret_id, "arn:aws:s3:::old-bucket")
    scanner = scripted_scanner(candidates=[make_bucket("my-bucket")])
    reconciler = ResourceReconciler(resource_store, scanner=scanner)

    result = await reconciler.sweep(project_id, secret_id, "us-east-1", ["s3"], credentials)

    assert resource_store.status_of(project_id, "arn:aws:s3:::my-bucket") == "active"
    assert resource_store.status_of(project_id, "arn:aws:s3:::old-bucket") == "deleted"
    assert result.resources_found == 1
    assert result.resources_added == 1
    assert result.resources_updated == 0
    assert result.resources_deleted == 1
    assert scanner.calls == [["s3"]]


@pytest.mark.asyncio
async def test_sweep_types_are_case_insensitive(
    resource_store, scripted_scanner, make_bucket, credentials, project_id, secret_id
):
    resource_store.seed(project_id, secret_id, "arn:aws:s3:::old-bucket")
    scanner = scripted_scanner(candidates=[make_bucket("my-bucket")])
    reconciler = ResourceReconciler(resource_store, scanner=scanner)

    result = await reconciler.sweep(project_id, secret_id, "us-east-1", ["S3", "s3"], credentials)

    assert resource_store.status_of(project_id, "arn:aws:s3:::old-bucket") == "deleted"
    assert result.resources_deleted == 1
    assert scanner.calls == [["s3"]]


@pytest.mark.asyncio
async def test_reappearing_resource_is_reactivated_in_place(
    resource_store, scripted_scanner, make_bucket, credentials, project_id, secret_id
):
    original = resource_store.seed(project_id, secret_id, "arn:aws:s3:::logs")

    empty = ResourceReconciler(resource_store, scanner=scripted_scanner())
    await empty.sweep(project_id, secret_id, "us-east-1", ["s3"], credentials)
    assert resource_store.status_of(project_id, "arn:aws:s3:::logs") == "deleted"

    again = ResourceReconciler(
        resource_store, scanner=scripted_scanner(candidates=[make_bucket("logs")])
    )
    result = await again.sweep(project_id, secret_id, "us-east-1", ["s3"], credentials)

    assert resource_store.status_of(project_id, "arn:aws:s3:::logs") == "active"
    assert resource_store.rows[(project_id, "arn:aws:s3:::logs")].id == original.id
    assert len(resource_store.rows) == 1
    assert result.resources_updated == 1
    assert result.resources_added == 0


@pytest.mark.asyncio
async def test_failed_type_keeps_its_resources(
    resource_store, scripted_scanner, make_bucket, credentials, project_id, secret_id
):
    resource_store.seed(project_id, secret_id, "arn:aws:s3:::old-bucket")
    resource_store.seed(
        project_id, secret_id, "arn:aws:sqs:us-east-1:123456789012:orders", resource_type="sqs"
    )
    scanner = scripted_scanner(
        candidates=[make_bucket("my-bucket")],
        errors={"sqs": "AccessDenied: not authorized"},
    )
    reconciler = ResourceReconciler(resource_store, scanner=scanner)

    result = await reconciler.sweep(project_id, secret_id, "us-east-1", ["s3", "sqs"], credentials)

    assert resource_store.status_of(project_id, "arn:aws:sqs:us-east-1:123456789012:orders") == "active"
    assert resource_store.status_of(project_id, "arn:aws:s3:::old-bucket") == "deleted"
    assert result.errors == {"sqs": "AccessDenied: not authorized"}
    assert result.resources_deleted == 1


@pytest.mark.asyncio
async def test_failed_type_is_swept_when_protection_disabled(
    resource_store, scripted_scanner, credentials, project_id, secret_id, monkeypatch
):
    from portalight.shared.core.config import get_settings

    monkeypatch.setattr(get_settings(), "DISCOVERY_PROTECT_FAILED_TYPES", False)
    resource_store.seed(
        project_id, secret_id, "arn:aws:sqs:us-east-1:123456789012:orders", resource_type="sqs"
    )
    scanner = scripted_scanner(errors={"sqs": "Throttling: slow down"})

    await ResourceReconciler(resource_store, scanner=scanner).sweep(
        project_id, secret_id, "us-east-1", ["sqs"], credentials
    )

    assert resource_store.status_of(project_id, "arn:aws:sqs:us-east-1:123456789012:orders") == "deleted"


@pytest.mark.asyncio
async def test_partial_type_sweep_leaves_other_types_alone(
    resource_store, scripted_scanner, credentials, project_id, secret_id
):
    resource_store.seed(
        project_id, secret_id, "arn:aws:sns:us-east-1:123456789012:alerts", resource_type="sns"
    )

    await ResourceReconciler(resource_store, scanner=scripted_scanner()).sweep(
        project_id, secret_id, "us-east-1", ["s3"], credentials
    )

    assert resource_store.status_of(project_id, "arn:aws:sns:us-east-1:123456789012:alerts") == "active"


@pytest.mark.asyncio
async def test_sweep_is_scoped_to_the_secret(
    resource_store, scripted_scanner, credentials, project_id, secret_id
):
    other_secret = uuid4()
    resource_store.seed(project_id, other_secret, "arn:aws:s3:::other-account")

    await ResourceReconciler(resource_store, scanner=scripted_scanner()).sweep(
        project_id, secret_id, "us-east-1", ["s3"], credentials
    )

    assert resource_store.status_of(project_id, "arn:aws:s3:::other-account") == "active"


@pytest.mark.asyncio
async def test_preview_hides_known_resources_and_writes_nothing(
    resource_store, scripted_scanner, make_bucket, credentials, project_id, secret_id
):
    resource_store.seed(project_id, secret_id, "arn:aws:s3:::known")
    scanner = scripted_scanner(candidates=[make_bucket("known"), make_bucket("fresh")])

    result = await ResourceReconciler(resource_store, scanner=scanner).preview(
        project_id, secret_id, "us-east-1", ["s3"], credentials
    )

    assert [c.name for c in result.candidates] == ["fresh"]
    assert len(resource_store.rows) == 1


@pytest.mark.asyncio
async def test_preview_normalizes_types(
    resource_store, scripted_scanner, make_bucket, credentials, project_id, secret_id
):
    scanner = scripted_scanner(candidates=[make_bucket("fresh")])

    result = await ResourceReconciler(resource_store, scanner=scanner).preview(
        project_id, secret_id, "us-east-1", [" S3 "], credentials
    )

    assert scanner.calls == [["s3"]]
    assert [c.name for c in result.candidates] == ["fresh"]


@pytest.mark.asyncio
async def test_associate_upserts_without_touching_others(
    resource_store, make_bucket, project_id, secret_id
):
    resource_store.seed(project_id, secret_id, "arn:aws:s3:::untouched")
    resource_store.seed(project_id, secret_id, "arn:aws:s3:::existing", status="deleted")

    results = await ResourceReconciler(resource_store).associate(
        project_id, secret_id, [make_bucket("existing"), make_bucket("linked")]
    )

    assert [r.status for r in results] == ["updated", "created"]
    assert resource_store.status_of(project_id, "arn:aws:s3:::existing") == "active"
    assert resource_store.status_of(project_id, "arn:aws:s3:::untouched") == "active"
    assert results[1].to_dict()["name"] == "linked"


@pytest.mark.asyncio
async def test_association_without_secret_keeps_row_in_sweep_scope(
    resource_store, scripted_scanner, make_bucket, credentials, project_id, secret_id
):
    resource_store.seed(project_id, secret_id, "arn:aws:s3:::old-bucket")

    await ResourceReconciler(resource_store).associate(
        project_id, None, [make_bucket("old-bucket")]
    )
    assert resource_store.rows[(project_id, "arn:aws:s3:::old-bucket")].secret_id == secret_id

    await ResourceReconciler(resource_store, scanner=scripted_scanner()).sweep(
        project_id, secret_id, "us-east-1", ["s3"], credentials
    )

    assert resource_store.status_of(project_id, "arn:aws:s3:::old-bucket") == "deleted"


@pytest.mark.asyncio
async def test_register_provisioned_flags_metadata(resource_store, project_id, secret_id):
    resource = await ResourceReconciler(resource_store).register_provisioned(
        project_id,
        secret_id,
        arn="arn:aws:sqs:us-east-1:123456789012:jobs",
        resource_type="sqs",
        name="jobs",
        region="us-east-1",
        metadata={"provisioned_resource_id": "abc"},
    )

    assert resource.status == "active"
    assert resource.metadata == {"provisioned_resource_id": "abc", "provisioned": True}


@pytest.mark.asyncio
async def test_sweep_lock_serializes_same_pair(project_id, secret_id):
    locks = SweepLockRegistry()
    order = []

    async def sweep(tag):
        async with locks.lock_for(project_id, secret_id):
            order.append(f"{tag}-start")
            await asyncio.sleep(0.01)
            order.append(f"{tag}-end")

    await asyncio.gather(sweep("a"), sweep("b"))

    assert order == ["a-start", "a-end", "b-start", "b-end"]
    assert locks.lock_for(project_id, secret_id) is locks.lock_for(project_id, secret_id)
    assert locks.lock_for(project_id, uuid4()) is not locks.lock_for(project_id, secret_id)
    assert locks.is_locked(project_id, secret_id) is False


def test_sweep_result_serializes():
    from portalight.modules.inventory.domain.reconciler import SweepResult

    data = SweepResult(project_id=uuid4(), secret_id=uuid4(), region="us-east-1").to_dict()

    assert data["resources_deleted"] == 0
    assert data["errors"] == {}
    assert "synced_at" in data


def test_candidate_to_dict():
    candidate = ResourceCandidate(
        arn="arn:aws:s3:::x", resource_type="s3", name="x", region="us-east-1"
    )
    assert candidate.to_dict()["metadata"] == {}
