"""
Push-event delta detection for the catalog repository.

Only files added or modified under the catalog root on the monitored branch
are returned. Removed files are never returned: deleting a catalog file does
not delete its project.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from portalight.modules.catalog.domain.declaration import is_catalog_file
from portalight.shared.core.security import compute_hmac_sha256, constant_time_equals

logger = structlog.get_logger()

SIGNATURE_HEADER = "X-Hub-Signature-256"
EVENT_HEADER = "X-GitHub-Event"
SIGNATURE_PREFIX = "sha256="


class PushCommit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    added: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


class PushEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ref: str = ""
    commits: list[PushCommit] = Field(default_factory=list)


def normalize_root(root: str) -> str:
    root = root.strip().lstrip("/")
    if root and not root.endswith("/"):
        root += "/"
    return root


def detect_changed_catalog_files(event: PushEvent, branch: str, root: str) -> list[str]:
    """
    Distinct catalog paths touched by the push, in first-seen order.

    Empty when the ref is not exactly refs/heads/<branch>.
    """
    if event.ref != f"refs/heads/{branch}":
        return []

    prefix = normalize_root(root)
    changed: list[str] = []
    seen: set[str] = set()
    for commit in event.commits:
        for path in [*commit.added, *commit.modified]:
            if path in seen:
                continue
            if not path.startswith(prefix) or not is_catalog_file(path):
                continue
            seen.add(path)
            changed.append(path)
    return changed


def verify_signature(secret: Optional[str], body: bytes, signature_header: Optional[str]) -> bool:
    """
    Check the HMAC-SHA256 signature GitHub sends over the raw body.

    With no secret configured verification is skipped and the call succeeds;
    the endpoint then runs unauthenticated.
    """
    if not secret:
        logger.warning("webhook_signature_check_skipped", reason="no_secret_configured")
        return True
    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        return False
    expected = compute_hmac_sha256(secret, body)
    return constant_time_equals(signature_header[len(SIGNATURE_PREFIX):], expected)
