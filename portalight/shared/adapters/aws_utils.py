import aioboto3
from typing import Any, Dict, Optional
from botocore.config import Config as BotoConfig
from portalight.shared.core.config import get_settings

# Standardized boto config with timeouts to prevent indefinite hangs
DEFAULT_BOTO_CONFIG = BotoConfig(
    read_timeout=30, connect_timeout=10, retries={"max_attempts": 3, "mode": "adaptive"}
)

# Mapping CamelCase to snake_case for aioboto3/boto3 credentials
AWS_CREDENTIAL_MAPPING = {
    "AccessKeyId": "aws_access_key_id",
    "SecretAccessKey": "aws_secret_access_key",
    "SessionToken": "aws_session_token",
    "aws_access_key_id": "aws_access_key_id",
    "aws_secret_access_key": "aws_secret_access_key",
    "aws_session_token": "aws_session_token",
}


def map_aws_credentials(credentials: Optional[Dict[str, str]]) -> Dict[str, str]:
    """
    Maps credentials dictionary to valid boto3/aioboto3 kwargs.
    Handles both CamelCase (AWS standard) and snake_case (boto3) keys.
    """
    mapped: Dict[str, str] = {}
    if not credentials:
        return mapped

    for src, dst in AWS_CREDENTIAL_MAPPING.items():
        if src in credentials:
            mapped[dst] = credentials[src]

    return mapped


def get_boto_session() -> aioboto3.Session:
    """Returns a centralized aioboto3 session."""
    return aioboto3.Session()


def client_kwargs(
    region: str,
    credentials: Optional[Dict[str, str]] = None,
    config: Any = None,
) -> Dict[str, Any]:
    """Keyword arguments for `session.client(...)` honouring AWS_ENDPOINT_URL."""
    settings = get_settings()
    kwargs: Dict[str, Any] = {"region_name": region}
    if settings.AWS_ENDPOINT_URL:
        kwargs["endpoint_url"] = settings.AWS_ENDPOINT_URL
    kwargs.update(map_aws_credentials(credentials))
    kwargs["config"] = config or DEFAULT_BOTO_CONFIG
    return kwargs


def resolve_region(*candidates: Optional[str]) -> str:
    """First non-empty region hint, else AWS_DEFAULT_REGION."""
    for candidate in candidates:
        value = str(candidate or "").strip()
        if value:
            return value
    return get_settings().AWS_DEFAULT_REGION
