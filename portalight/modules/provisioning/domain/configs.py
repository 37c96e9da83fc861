from typing import Any, Dict, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from portalight.shared.core.exceptions import PortalightException

PROVISIONABLE_TYPES = ("s3", "sqs", "sns")

# Upper bound SQS accepts for MessageRetentionPeriod (14 days).
MAX_SQS_RETENTION_SECONDS = 1_209_600


class ResourceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    region: Optional[str] = None


class S3Config(ResourceConfig):
    versioning: bool = False
    encryption: Optional[Literal["AES256", "aws:kms"]] = None
    public_access_blocked: bool = True


class SQSConfig(ResourceConfig):
    queue_type: Literal["standard", "fifo"] = "standard"
    visibility_timeout: int = Field(default=0, ge=0, le=43_200)
    message_retention_days: int = Field(default=0, ge=0)
    delay_seconds: int = Field(default=0, ge=0, le=900)


class SNSConfig(ResourceConfig):
    topic_type: Literal["standard", "fifo"] = "standard"


CONFIG_MODELS: Dict[str, Type[ResourceConfig]] = {
    "s3": S3Config,
    "sqs": SQSConfig,
    "sns": SNSConfig,
}


def parse_resource_config(resource_type: str, raw: Optional[Dict[str, Any]]) -> ResourceConfig:
    """Validate a per-type config payload, raising a 400 listing every problem."""
    model = CONFIG_MODELS.get(resource_type)
    if model is None:
        raise PortalightException(
            f"Unsupported resource type: {resource_type}",
            code="unsupported_resource_type",
            status_code=400,
            details={"supported": list(PROVISIONABLE_TYPES)},
        )
    try:
        return model.model_validate(raw or {})
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise PortalightException(
            f"Invalid {resource_type} configuration",
            code="invalid_resource_config",
            status_code=400,
            details={"validation_errors": errors},
        ) from exc
