import re
import sys
import structlog
import logging
from typing import Any, cast
from portalight.shared.core.config import get_settings

_EMAIL_RE = re.compile(r"[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+")

_SENSITIVE_FIELDS = {
    "password",
    "token",
    "secret",
    "authorization",
    "api_key",
    "access_token",
    "private_key",
    "personal_access_token",
    "webhook_secret",
    "secret_access_key",
    "aws_secret_access_key",
    "aws_session_token",
}
_SENSITIVE_SUFFIXES = ("_token", "_secret", "_password", "_key")


def _is_sensitive_key(key: Any) -> bool:
    key_norm = str(key).lower().strip().replace("-", "_")
    if key_norm in _SENSITIVE_FIELDS:
        return True
    # access_key_id is an identifier, not a secret
    if key_norm.endswith("_key_id"):
        return False
    return key_norm.endswith(_SENSITIVE_SUFFIXES)


def pii_redactor(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Recursively redact credentials and email addresses from log events.
    Secret material from cloud credentials and GitHub tokens must never reach
    the log sink.
    """

    def redact_recursive(data: Any) -> Any:
        if isinstance(data, dict):
            return {
                k: ("[REDACTED]" if _is_sensitive_key(k) else redact_recursive(v))
                for k, v in data.items()
            }
        elif isinstance(data, list):
            return [redact_recursive(item) for item in data]
        elif isinstance(data, str):
            return _EMAIL_RE.sub("[EMAIL_REDACTED]", data)
        return data

    redacted = redact_recursive(event_dict)
    if isinstance(redacted, dict):
        return cast(dict[str, Any], redacted)
    return {}


def setup_logging() -> None:
    settings = get_settings()

    base_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        pii_redactor,
    ]

    if settings.DEBUG:
        renderer: Any = structlog.dev.ConsoleRenderer()
        processors = base_processors + [renderer]
        min_level = logging.DEBUG
    else:
        renderer = structlog.processors.JSONRenderer()
        processors = base_processors + [structlog.processors.dict_tracebacks, renderer]
        min_level = logging.INFO

    structlog.configure(
        processors=cast(Any, processors),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Route stdlib logging (uvicorn, botocore, httpx) through stderr too.
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=min_level,
    )


def audit_log(
    event: str,
    actor: str,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Standardized helper for security-relevant events that do not map to a
    persisted audit entry (signature failures, auth rejections).
    """
    logger = structlog.get_logger("audit")
    logger.info(
        event,
        actor=str(actor),
        metadata=details or {},
    )
