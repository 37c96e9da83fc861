"""
Unified Error Governance

Centrally classifies exceptions, logs them with structured context and
renders one JSON error shape for every failing request.
"""

from typing import Any, Dict, Optional
from uuid import uuid4

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from portalight.shared.core.config import get_settings
from portalight.shared.core.exceptions import PortalightException

logger = structlog.get_logger()

# Codes whose message and details are safe to return in production.
SAFE_CODES = {
    "auth_error",
    "not_found",
    "already_exists",
    "catalog_parse_error",
    "catalog_not_found",
    "credential_not_found",
    "provision_error",
    "source_unavailable",
    "empty_batch",
    "github_not_configured",
    "github_config_invalid",
    "unsupported_resource_type",
    "invalid_resource_config",
    "secret_read_only",
    "project_not_catalog_managed",
}


def handle_exception(
    request: Request, exc: Exception, error_id: Optional[str] = None
) -> JSONResponse:
    """
    Classifies and records exceptions, returning a standardized JSON response.
    """
    error_id = error_id or str(uuid4())
    is_prod = get_settings().is_production

    if isinstance(exc, PortalightException):
        app_exc = exc
        if is_prod and app_exc.code not in SAFE_CODES and app_exc.status_code >= 500:
            app_exc = PortalightException(
                message="An error occurred while processing your request",
                code=app_exc.code,
                status_code=app_exc.status_code,
            )
    elif isinstance(exc, ValueError):
        # Business logic validation errors should be 400
        app_exc = PortalightException(
            message="Invalid request parameters" if is_prod else str(exc),
            code="value_error",
            status_code=400,
        )
        logger.warning(
            "business_validation_error",
            error=str(exc),
            error_id=error_id,
            path=request.url.path,
        )
    else:
        # Never echo raw exception text; it may carry secrets.
        app_exc = PortalightException(
            message="An unexpected internal error occurred",
            code="internal_error",
            status_code=500,
        )
        logger.exception(
            "unhandled_raw_exception",
            error=str(exc),
            error_id=error_id,
            path=request.url.path,
        )

    log_method = logger.error if app_exc.status_code >= 500 else logger.warning
    log_method(
        "api_error",
        error_id=error_id,
        code=app_exc.code,
        message=app_exc.message,
        status_code=app_exc.status_code,
        path=request.url.path,
        method=request.method,
        details=app_exc.details,
    )

    response_details: Optional[Dict[str, Any]] = app_exc.details or None
    if is_prod and app_exc.code not in SAFE_CODES:
        response_details = None

    return JSONResponse(
        status_code=app_exc.status_code,
        content={
            "error": {
                "message": app_exc.message,
                "code": app_exc.code,
                "id": error_id,
                "details": response_details,
            }
        },
    )
