import json
from uuid import UUID

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.models.cloud_secret import CloudSecret
from portalight.shared.core.credentials import AWSCredentials
from portalight.shared.core.exceptions import CredentialNotFoundError
from portalight.shared.core.security import decrypt_string, encrypt_string

logger = structlog.get_logger()


def seal_aws_credentials(
    access_key_id: str, secret_access_key: str, session_token: str | None = None
) -> str:
    """Encrypt an AWS key pair into the form stored on CloudSecret."""
    body = {"access_key_id": access_key_id, "secret_access_key": secret_access_key}
    if session_token:
        body["session_token"] = session_token
    sealed = encrypt_string(json.dumps(body))
    if sealed is None:
        raise ValueError("Credential body must not be empty")
    return sealed


class SQLCredentialVault:
    """Looks up cloud secrets by id and decrypts them into typed credentials."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_secret(self, secret_id: UUID) -> CloudSecret:
        secret = await self.db.get(CloudSecret, secret_id)
        if secret is None:
            raise CredentialNotFoundError(
                f"Secret {secret_id} not found", details={"secret_id": str(secret_id)}
            )
        return secret

    async def get_decrypted_credential(self, secret_id: UUID) -> AWSCredentials:
        secret = await self.get_secret(secret_id)
        plaintext = decrypt_string(secret.encrypted_credentials)
        if plaintext is None:
            raise CredentialNotFoundError(
                f"Secret {secret_id} could not be decrypted",
                code="credential_unreadable",
                details={"secret_id": str(secret_id)},
            )
        try:
            body = json.loads(plaintext)
            return AWSCredentials(
                **body,
                region=secret.region,
                account_id=secret.account_id,
                access_type=secret.access_type,
            )
        except (json.JSONDecodeError, TypeError, ValidationError) as exc:
            logger.error(
                "credential_payload_invalid", secret_id=str(secret_id), error=str(exc)
            )
            raise CredentialNotFoundError(
                f"Secret {secret_id} has an invalid credential payload",
                code="credential_unreadable",
                details={"secret_id": str(secret_id)},
            ) from exc
