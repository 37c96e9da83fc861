import json
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Sequence

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portalight.shared.core.app_routes import (
    register_api_routers,
    register_lifecycle_routes,
)
from portalight.shared.core.config import get_settings, reload_settings_from_environment
from portalight.shared.core.error_governance import handle_exception
from portalight.shared.core.exceptions import PortalightException
from portalight.shared.core.http import close_http_client, init_http_client
from portalight.shared.core.logging import setup_logging
from portalight.shared.db.session import get_engine

settings = get_settings()
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global settings
    settings = reload_settings_from_environment()
    logger.info(
        "app_starting",
        app_name=settings.APP_NAME,
        environment=settings.ENVIRONMENT,
    )

    # One pooled client for all GitHub traffic
    await init_http_client(timeout=settings.GITHUB_TIMEOUT_SECONDS)

    yield

    logger.info("app_shutting_down")
    await close_http_client()
    await get_engine().dispose()
    logger.info("db_engine_disposed")


portalight_app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
)
# Uvicorn looks for `app` by default.
app: FastAPI = portalight_app

__all__ = ["app", "portalight_app", "lifespan"]


@portalight_app.exception_handler(PortalightException)
async def portalight_exception_handler(
    request: Request, exc: PortalightException
) -> JSONResponse:
    """Handle custom application exceptions."""
    return handle_exception(request, exc)


@portalight_app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions with standardized format."""
    detail_text = str(exc.detail) if isinstance(exc.detail, str) else "Request failed"
    if settings.is_production and exc.status_code >= 500:
        error_text = "Internal Server Error"
        message_text = "An unexpected internal error occurred"
    else:
        error_text = detail_text
        message_text = detail_text

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": error_text,
            "code": "HTTP_ERROR",
            "message": message_text,
        },
        headers=getattr(exc, "headers", None),
    )


@portalight_app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors."""

    def _json_safe(value: Any) -> Any:
        if isinstance(value, Exception):
            return str(value)
        try:
            json.dumps(value)
            return value
        except (TypeError, ValueError):
            return str(value)

    def _sanitize_errors(errors: Sequence[Any]) -> List[Dict[str, Any]]:
        sanitized = []
        for err in errors:
            clean = dict(err)
            if "ctx" in clean and isinstance(clean["ctx"], dict):
                clean["ctx"] = {k: _json_safe(v) for k, v in clean["ctx"].items()}
            if "input" in clean:
                clean["input"] = _json_safe(clean["input"])
            sanitized.append(clean)
        return sanitized

    return JSONResponse(
        status_code=422,
        content={
            "error": "Unprocessable Entity",
            "code": "VALIDATION_ERROR",
            "message": "The request body or parameters are invalid.",
            "details": _sanitize_errors(exc.errors()),
        },
    )


@portalight_app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Handle business logic ValueErrors via central governance."""
    return handle_exception(request, exc)


@portalight_app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions with sanitized responses."""
    return handle_exception(request, exc)


register_lifecycle_routes(
    portalight_app,
    app_name=settings.APP_NAME,
    version=settings.VERSION,
)
register_api_routers(portalight_app)

# allow_credentials=True forbids wildcard origins
if settings.CORS_ORIGINS and "*" in settings.CORS_ORIGINS:
    logger.error(
        "insecure_cors_config_detected",
        msg="allow_credentials=True with '*' origin is forbidden",
    )
    cors_allowed_origins = [o for o in settings.CORS_ORIGINS if o != "*"]
else:
    cors_allowed_origins = settings.CORS_ORIGINS

portalight_app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Authorization", "Content-Type", "X-GitHub-Event", "X-Hub-Signature-256"],
)
