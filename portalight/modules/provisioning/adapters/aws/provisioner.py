"""
AWS resource creation for the provisioning workflow.

Every provider failure is translated into a ProvisionError whose message is
safe to show to the requesting developer.
"""

from typing import Any, Dict, Optional

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from portalight.modules.provisioning.domain.configs import (
    MAX_SQS_RETENTION_SECONDS,
    S3Config,
    SNSConfig,
    SQSConfig,
    parse_resource_config,
)
from portalight.shared.adapters.aws_utils import (
    client_kwargs,
    get_boto_session,
    resolve_region,
)
from portalight.shared.core.credentials import AWSCredentials
from portalight.shared.core.exceptions import ProvisionError

logger = structlog.get_logger()

_SERVICE_LABELS = {"s3": "S3", "sqs": "SQS", "sns": "SNS"}


def parse_aws_error(exc: Exception, service: str) -> str:
    """Map an AWS error to a message a developer can act on."""
    if not isinstance(exc, ClientError):
        return f"{service} error: {exc}"

    error = exc.response.get("Error", {})
    code = error.get("Code", "Unknown")
    message = error.get("Message", "")

    if code == "BucketAlreadyExists":
        return (
            "A bucket with this name already exists globally. "
            "S3 bucket names must be unique across all AWS accounts."
        )
    if code == "BucketAlreadyOwnedByYou":
        return "You already own a bucket with this name."
    if code == "InvalidBucketName":
        return (
            f"Invalid bucket name: {message}. Bucket names must be 3-63 characters, "
            "lowercase, and can contain only letters, numbers, and hyphens."
        )
    if code == "QueueAlreadyExists":
        return "A queue with this name already exists."
    if code == "QueueNameExists":
        return "A queue with this name already exists with different attributes."
    if code == "TopicLimitExceeded":
        return "You have reached the maximum number of SNS topics for your account."
    if code == "InvalidClientTokenId":
        return "Invalid AWS credentials. Please check your Access Key ID."
    if code == "SignatureDoesNotMatch":
        return "Invalid AWS credentials. Please check your Secret Access Key."
    if code in ("AccessDenied", "AccessDeniedException"):
        return f"Access denied. Ensure your IAM user has permissions to create {service} resources."
    if code == "UnauthorizedAccess":
        return "Unauthorized access. Please check your AWS credentials and permissions."
    if code == "InvalidParameterValue":
        return f"Invalid parameter: {message}"
    if code == "ValidationError":
        return f"Validation error: {message}"
    return f"{service} error ({code}): {message}"


def fifo_name(name: str) -> str:
    return name if name.endswith(".fifo") else f"{name}.fifo"


class AWSProvisioner:
    """Creates S3 buckets, SQS queues and SNS topics with static IAM keys."""

    def __init__(self, session: Any = None) -> None:
        self.session = session or get_boto_session()

    def _client(self, service: str, region: str, credentials: AWSCredentials) -> Any:
        return self.session.client(
            service, **client_kwargs(region, credentials.to_boto_credentials())
        )

    async def create_resource(
        self,
        credentials: AWSCredentials,
        resource_type: str,
        name: str,
        config: Dict[str, Any],
        region: Optional[str] = None,
    ) -> str:
        parsed = parse_resource_config(resource_type, config)
        target_region = resolve_region(parsed.region, region, credentials.region)
        service = _SERVICE_LABELS[resource_type]
        log = logger.bind(resource_type=resource_type, name=name, region=target_region)

        log.info("aws_provision_started")
        try:
            if isinstance(parsed, S3Config):
                arn = await self._create_bucket(credentials, name, target_region, parsed)
            elif isinstance(parsed, SQSConfig):
                arn = await self._create_queue(credentials, name, target_region, parsed)
            else:
                arn = await self._create_topic(credentials, name, target_region, parsed)
        except ProvisionError:
            raise
        except (ClientError, BotoCoreError) as exc:
            message = parse_aws_error(exc, service)
            log.warning("aws_provision_failed", error=message)
            raise ProvisionError(message, details={"resource_type": resource_type}) from exc

        log.info("aws_provision_succeeded", arn=arn)
        return arn

    async def _create_bucket(
        self, credentials: AWSCredentials, name: str, region: str, config: S3Config
    ) -> str:
        async with self._client("s3", region, credentials) as s3:
            params: Dict[str, Any] = {"Bucket": name}
            if region != "us-east-1":
                params["CreateBucketConfiguration"] = {"LocationConstraint": region}
            await s3.create_bucket(**params)

            steps = []
            if config.public_access_blocked:
                steps.append(
                    (
                        "configure public access block",
                        s3.put_public_access_block,
                        {
                            "PublicAccessBlockConfiguration": {
                                "BlockPublicAcls": True,
                                "BlockPublicPolicy": True,
                                "IgnorePublicAcls": True,
                                "RestrictPublicBuckets": True,
                            }
                        },
                    )
                )
            if config.versioning:
                steps.append(
                    (
                        "enable versioning",
                        s3.put_bucket_versioning,
                        {"VersioningConfiguration": {"Status": "Enabled"}},
                    )
                )
            if config.encryption:
                steps.append(
                    (
                        "configure encryption",
                        s3.put_bucket_encryption,
                        {
                            "ServerSideEncryptionConfiguration": {
                                "Rules": [
                                    {
                                        "ApplyServerSideEncryptionByDefault": {
                                            "SSEAlgorithm": config.encryption
                                        }
                                    }
                                ]
                            }
                        },
                    )
                )

            # The bucket exists from here on; follow-up failures say so.
            for label, call, kwargs in steps:
                try:
                    await call(Bucket=name, **kwargs)
                except ClientError as exc:
                    raise ProvisionError(
                        f"Bucket created but failed to {label}: {parse_aws_error(exc, 'S3')}",
                        details={"resource_type": "s3", "bucket_created": True},
                    ) from exc

        return f"arn:aws:s3:::{name}"

    async def _create_queue(
        self, credentials: AWSCredentials, name: str, region: str, config: SQSConfig
    ) -> str:
        is_fifo = config.queue_type == "fifo"
        queue_name = fifo_name(name) if is_fifo else name

        attributes: Dict[str, str] = {}
        if config.visibility_timeout > 0:
            attributes["VisibilityTimeout"] = str(config.visibility_timeout)
        if config.message_retention_days > 0:
            retention = min(config.message_retention_days * 86400, MAX_SQS_RETENTION_SECONDS)
            attributes["MessageRetentionPeriod"] = str(retention)
        if config.delay_seconds > 0:
            attributes["DelaySeconds"] = str(config.delay_seconds)
        if is_fifo:
            attributes["FifoQueue"] = "true"

        async with self._client("sqs", region, credentials) as sqs:
            created = await sqs.create_queue(QueueName=queue_name, Attributes=attributes)
            queue_url = created["QueueUrl"]
            try:
                attrs = await sqs.get_queue_attributes(
                    QueueUrl=queue_url, AttributeNames=["QueueArn"]
                )
            except ClientError as exc:
                logger.warning("sqs_queue_arn_lookup_failed", queue_url=queue_url, error=str(exc))
                return queue_url
        return attrs.get("Attributes", {}).get("QueueArn") or queue_url

    async def _create_topic(
        self, credentials: AWSCredentials, name: str, region: str, config: SNSConfig
    ) -> str:
        params: Dict[str, Any] = {"Name": name}
        if config.topic_type == "fifo":
            params["Name"] = fifo_name(name)
            params["Attributes"] = {"FifoTopic": "true"}

        async with self._client("sns", region, credentials) as sns:
            created = await sns.create_topic(**params)
        return created["TopicArn"]
