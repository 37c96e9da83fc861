import base64
import json

import pytest

from portalight.shared.adapters.credential_vault import (
    SQLCredentialVault,
    seal_aws_credentials,
)
from portalight.shared.core.exceptions import CredentialNotFoundError
from portalight.shared.core.security import (
    EncryptionKeyManager,
    compute_hmac_sha256,
    constant_time_equals,
    decrypt_string,
    encrypt_string,
    generate_webhook_secret,
)


def test_encrypt_decrypt():
    token = encrypt_string("ghp_secret")

    assert token != "ghp_secret"
    assert decrypt_string(token) == "ghp_secret"
    assert encrypt_string("") is None


def test_decrypt_garbage_returns_none():
    assert decrypt_string("not-a-fernet-token") is None


def test_salt_validation():
    salt = EncryptionKeyManager.generate_salt()
    assert len(base64.b64decode(salt)) == EncryptionKeyManager.KDF_SALT_LENGTH

    with pytest.raises(ValueError, match="Invalid KDF salt length"):
        EncryptionKeyManager.derive_key("key", base64.b64encode(b"short").decode())


def test_hmac_helpers():
    digest = compute_hmac_sha256("s3cret", b"payload")

    assert constant_time_equals(digest, compute_hmac_sha256("s3cret", b"payload"))
    assert not constant_time_equals(digest, compute_hmac_sha256("other", b"payload"))
    assert len(generate_webhook_secret()) == 64


@pytest.mark.asyncio
async def test_vault_decrypts_into_typed_credentials(db, secret_factory):
    secret = await secret_factory(access_type="write", region="eu-central-1")

    credentials = await SQLCredentialVault(db).get_decrypted_credential(secret.id)

    assert credentials.access_key_id == "AKIATEST"
    assert credentials.secret_access_key.get_secret_value() == "secret-key"
    assert credentials.region == "eu-central-1"
    assert credentials.account_id == "123456789012"
    assert credentials.can_write is True
    assert credentials.to_boto_credentials() == {
        "aws_access_key_id": "AKIATEST",
        "aws_secret_access_key": "secret-key",
    }


@pytest.mark.asyncio
async def test_vault_missing_secret(db):
    from uuid import uuid4

    with pytest.raises(CredentialNotFoundError):
        await SQLCredentialVault(db).get_decrypted_credential(uuid4())


@pytest.mark.asyncio
async def test_vault_rejects_bad_payload(db, secret_factory):
    secret = await secret_factory()
    secret.encrypted_credentials = encrypt_string(json.dumps({"unexpected": True}))
    await db.commit()

    with pytest.raises(CredentialNotFoundError) as exc_info:
        await SQLCredentialVault(db).get_decrypted_credential(secret.id)

    assert exc_info.value.code == "credential_unreadable"


def test_sealed_credentials_include_session_token():
    sealed = seal_aws_credentials("AKIA", "shh", session_token="tok")

    assert json.loads(decrypt_string(sealed)) == {
        "access_key_id": "AKIA",
        "secret_access_key": "shh",
        "session_token": "tok",
    }
