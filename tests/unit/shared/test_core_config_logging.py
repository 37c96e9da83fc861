import pytest
from pydantic import ValidationError

from portalight.shared.adapters.aws_utils import client_kwargs, map_aws_credentials, resolve_region
from portalight.shared.core.config import Settings, get_settings
from portalight.shared.core.logging import pii_redactor


def test_discovery_default_types_are_normalized():
    settings = Settings(TESTING=True, DISCOVERY_DEFAULT_TYPES=[" S3 ", "sqs", ""])

    assert settings.DISCOVERY_DEFAULT_TYPES == ["s3", "sqs"]


def test_unknown_discovery_type_is_rejected():
    with pytest.raises(ValidationError, match="Unsupported DISCOVERY_DEFAULT_TYPES"):
        Settings(TESTING=True, DISCOVERY_DEFAULT_TYPES=["s3", "ec2"])


def test_production_requires_secrets():
    with pytest.raises(ValidationError, match="must be configured"):
        Settings(
            TESTING=False,
            ENVIRONMENT="production",
            ENCRYPTION_KEY=None,
            KDF_SALT=None,
            JWT_SECRET=None,
        )


def test_production_rejects_disabled_db_ssl():
    with pytest.raises(ValidationError, match="DB_SSL_MODE=disable"):
        Settings(
            TESTING=False,
            ENVIRONMENT="production",
            ENCRYPTION_KEY="k" * 32,
            KDF_SALT="S0RGX1NBTFRfRk9SX1RFU1RJTkdfMzJfQllURVNfT0s=",
            JWT_SECRET="j" * 32,
            DB_SSL_MODE="disable",
        )


def test_pii_redactor_masks_secrets_and_emails():
    event = {
        "event": "github_config_updated",
        "personal_access_token": "ghp_abc",
        "access_key_id": "AKIATEST",
        "nested": {"aws_secret_access_key": "shh", "note": "ping lead@portalight.dev"},
    }

    redacted = pii_redactor(None, "info", event)

    assert redacted["personal_access_token"] == "[REDACTED]"
    assert redacted["access_key_id"] == "AKIATEST"
    assert redacted["nested"]["aws_secret_access_key"] == "[REDACTED]"
    assert redacted["nested"]["note"] == "ping [EMAIL_REDACTED]"


def test_client_kwargs_and_region_resolution(monkeypatch):
    monkeypatch.setattr(get_settings(), "AWS_ENDPOINT_URL", "http://localhost:4566")

    kwargs = client_kwargs("us-west-2", {"AccessKeyId": "AKIA", "SecretAccessKey": "shh"})

    assert kwargs["region_name"] == "us-west-2"
    assert kwargs["endpoint_url"] == "http://localhost:4566"
    assert kwargs["aws_access_key_id"] == "AKIA"
    assert map_aws_credentials(None) == {}
    assert resolve_region(None, " ", "eu-west-1") == "eu-west-1"
    assert resolve_region(None) == get_settings().AWS_DEFAULT_REGION
