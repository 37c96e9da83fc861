import json
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.modules.catalog.adapters.sql_store import SQLProjectStore
from portalight.modules.catalog.domain.github_settings import (
    GitHubSettingsService,
    build_reader,
)
from portalight.modules.catalog.domain.sync import WEBHOOK_ACTOR, CatalogSyncService
from portalight.modules.catalog.domain.webhook import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    PushEvent,
    verify_signature,
)
from portalight.modules.governance.domain.security.audit_log import AuditLogger
from portalight.shared.core.config import get_settings
from portalight.shared.core.http import get_http_client
from portalight.shared.core.logging import audit_log
from portalight.shared.db.session import get_db

router = APIRouter(tags=["Webhooks"])
logger = structlog.get_logger()


@router.post("/github")
async def github_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """
    Handle GitHub push events for the catalog repository.

    Unauthenticated; the HMAC signature over the raw body is checked before
    the payload is parsed. Always answers 200 for events we choose to ignore
    so GitHub does not mark the hook as failing.
    """
    payload = await request.body()
    settings_service = GitHubSettingsService(db)
    config = await settings_service.get()

    secret = config.webhook_secret if config else None
    if not verify_signature(secret, payload, request.headers.get(SIGNATURE_HEADER)):
        audit_log(
            "github_webhook_signature_invalid",
            actor="github",
            details={"event": request.headers.get(EVENT_HEADER), "bytes": len(payload)},
        )
        raise HTTPException(401, "Invalid signature")

    event_type = request.headers.get(EVENT_HEADER, "")
    if event_type != "push":
        logger.info("github_webhook_ignored", event_type=event_type)
        return {"message": "Event type not processed"}

    if config is None or not config.enabled:
        return {"message": "GitHub integration not enabled"}

    try:
        event = PushEvent.model_validate(json.loads(payload))
    except (json.JSONDecodeError, ValidationError) as exc:
        logger.warning("github_webhook_payload_invalid", error=str(exc))
        raise HTTPException(400, "Invalid webhook payload") from exc

    branch = config.branch or "main"
    if event.ref != f"refs/heads/{branch}":
        logger.info("github_webhook_branch_ignored", ref=event.ref, branch=branch)
        return {"message": "Branch not monitored"}

    reader = build_reader(
        config, http_client=get_http_client(get_settings().GITHUB_TIMEOUT_SECONDS)
    )
    service = CatalogSyncService(reader, SQLProjectStore(db), AuditLogger(db))
    results = await service.sync_push_event(
        event, branch=branch, root=config.projects_path or "", actor=WEBHOOK_ACTOR
    )
    logger.info(
        "github_webhook_processed",
        ref=event.ref,
        commits=len(event.commits),
        files=len(results),
    )
    return {
        "message": f"Processed {len(results)} catalog file(s)",
        "results": [result.to_dict() for result in results],
    }
