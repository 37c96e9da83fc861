"""
GitHub source-control client for the catalog repository.

Two auth modes are supported: a personal access token, or a GitHub App
installation (an RS256 app JWT exchanged for a short-lived installation
token). Transport and auth failures surface as SourceUnavailableError; a
missing file surfaces as CatalogNotFoundError.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import time
from datetime import datetime
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
import jwt
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from portalight.models.github_config import GitHubAuthType, GitHubConfig
from portalight.shared.adapters.http_retry import execute_with_http_retry
from portalight.shared.core.config import get_settings
from portalight.shared.core.exceptions import (
    CatalogNotFoundError,
    ConfigurationError,
    ExternalAPIError,
    SourceUnavailableError,
)
from portalight.shared.core.http import get_http_client

logger = structlog.get_logger()

GITHUB_ACCEPT = "application/vnd.github.v3+json"
_AUTH_FAILURE_STATUSES = {401, 403}


class GitHubTokenProvider(Protocol):
    async def get_token(self, http_client: httpx.AsyncClient) -> str:
        """Token for the Authorization header."""

    @property
    def scheme(self) -> str:
        """Authorization scheme, `token` or `Bearer`."""


class StaticTokenProvider:
    """Personal access token auth."""

    scheme = "token"

    def __init__(self, token: str) -> None:
        if not token:
            raise ConfigurationError("GitHub personal access token is not configured")
        self._token = token

    async def get_token(self, http_client: httpx.AsyncClient) -> str:
        return self._token


class GitHubAppTokenProvider:
    """
    GitHub App installation auth.

    The installation token is cached until it is within the configured
    refresh margin of its expiry.
    """

    scheme = "Bearer"

    def __init__(self, app_id: str, installation_id: str, private_key: str) -> None:
        if not (app_id and installation_id and private_key):
            raise ConfigurationError(
                "GitHub App auth requires app_id, installation_id and private_key"
            )
        self.app_id = app_id
        self.installation_id = installation_id
        self._private_key = private_key
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    def _app_jwt(self) -> str:
        now = int(time.time())
        payload = {
            # Backdated to tolerate clock drift between us and GitHub.
            "iat": now - 60,
            "exp": now + 9 * 60,
            "iss": str(self.app_id),
        }
        return jwt.encode(payload, self._private_key, algorithm="RS256")

    async def get_token(self, http_client: httpx.AsyncClient) -> str:
        margin = get_settings().GITHUB_APP_TOKEN_REFRESH_MARGIN_SECONDS
        async with self._lock:
            if self._token and time.time() < self._expires_at - margin:
                return self._token
            try:
                token, expires_at = await self._exchange(http_client)
            except httpx.HTTPError as exc:
                raise SourceUnavailableError(
                    f"GitHub App token exchange failed: {exc}"
                ) from exc
            self._token = token
            self._expires_at = expires_at
            return token

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _exchange(self, http_client: httpx.AsyncClient) -> tuple[str, float]:
        settings = get_settings()
        url = (
            f"{settings.GITHUB_API_URL}/app/installations/"
            f"{self.installation_id}/access_tokens"
        )
        response = await http_client.post(
            url,
            headers={
                "Authorization": f"Bearer {self._app_jwt()}",
                "Accept": GITHUB_ACCEPT,
            },
        )
        if response.status_code >= 400:
            logger.warning(
                "github_app_token_exchange_failed",
                status_code=response.status_code,
                installation_id=self.installation_id,
            )
            raise SourceUnavailableError(
                f"GitHub App token exchange failed with status {response.status_code}"
            )
        body = response.json()
        expires_at = time.time() + 3600
        raw_expiry = body.get("expires_at")
        if isinstance(raw_expiry, str):
            try:
                expires_at = datetime.fromisoformat(
                    raw_expiry.replace("Z", "+00:00")
                ).timestamp()
            except ValueError:
                logger.warning("github_app_token_expiry_unparseable", value=raw_expiry)
        return str(body["token"]), expires_at


class GitHubClient:
    """Read-only access to repository trees and file contents."""

    def __init__(
        self,
        token_provider: GitHubTokenProvider,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        api_url: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.token_provider = token_provider
        self._http_client = http_client
        self.api_url = (api_url or settings.GITHUB_API_URL).rstrip("/")
        self.max_retries = max_retries or settings.GITHUB_MAX_RETRIES

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = get_http_client(get_settings().GITHUB_TIMEOUT_SECONDS)
        return self._http_client

    async def _headers(self) -> dict[str, str]:
        token = await self.token_provider.get_token(self.http_client)
        return {
            "Authorization": f"{self.token_provider.scheme} {token}",
            "Accept": GITHUB_ACCEPT,
        }

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        headers = await self._headers()
        response = await execute_with_http_retry(
            request=lambda: self.http_client.get(url, headers=headers, params=params),
            url=url,
            max_retries=self.max_retries,
            retry_http_status_log_event="github_api_retry_http_status",
            retry_transport_log_event="github_api_retry_transport_error",
            status_error_prefix="GitHub API request failed",
            transport_error_prefix="GitHub API request failed",
        )
        return response.json()

    async def list_tree(self, owner: str, repo: str, branch: str, path: str) -> list[str]:
        """
        All blob paths under `path` at `branch`.

        Returns an empty list when the branch tree does not exist.
        """
        url = (
            f"{self.api_url}/repos/{quote(owner)}/{quote(repo)}"
            f"/git/trees/{quote(branch, safe='')}"
        )
        try:
            payload = await self._get_json(url, params={"recursive": "1"})
        except ExternalAPIError as exc:
            if exc.upstream_status == 404:
                logger.warning(
                    "github_tree_not_found", owner=owner, repo=repo, branch=branch
                )
                return []
            raise self._unavailable(exc, owner=owner, repo=repo) from exc

        if payload.get("truncated"):
            logger.warning("github_tree_truncated", owner=owner, repo=repo, branch=branch)

        prefix = path.strip("/")
        prefix = f"{prefix}/" if prefix else ""
        return [
            entry["path"]
            for entry in payload.get("tree", [])
            if entry.get("type") == "blob"
            and str(entry.get("path", "")).startswith(prefix)
        ]

    async def get_file_content(self, owner: str, repo: str, branch: str, path: str) -> bytes:
        url = (
            f"{self.api_url}/repos/{quote(owner)}/{quote(repo)}"
            f"/contents/{quote(path.lstrip('/'))}"
        )
        try:
            payload = await self._get_json(url, params={"ref": branch})
        except ExternalAPIError as exc:
            if exc.upstream_status == 404:
                raise CatalogNotFoundError(
                    f"File {path} not found on branch {branch}",
                    details={"path": path, "branch": branch},
                ) from exc
            raise self._unavailable(exc, owner=owner, repo=repo) from exc

        if not isinstance(payload, dict) or payload.get("type") != "file":
            raise CatalogNotFoundError(
                f"Path {path} is not a file", details={"path": path, "branch": branch}
            )
        try:
            return base64.b64decode(payload.get("content") or "")
        except (binascii.Error, ValueError) as exc:
            raise SourceUnavailableError(
                f"GitHub returned undecodable content for {path}"
            ) from exc

    @staticmethod
    def _unavailable(exc: ExternalAPIError, **context: str) -> SourceUnavailableError:
        if exc.upstream_status in _AUTH_FAILURE_STATUSES:
            logger.warning("github_auth_rejected", status_code=exc.upstream_status, **context)
            return SourceUnavailableError(
                "GitHub rejected the configured credentials",
                code="source_auth_failed",
                details={"status_code": exc.upstream_status},
            )
        logger.warning("github_unavailable", error=exc.message, **context)
        return SourceUnavailableError(exc.message)


def build_github_client(
    config: GitHubConfig, http_client: Optional[httpx.AsyncClient] = None
) -> GitHubClient:
    """Build a client from the stored singleton configuration."""
    provider: GitHubTokenProvider
    if config.auth_type == GitHubAuthType.GITHUB_APP.value:
        provider = GitHubAppTokenProvider(
            app_id=config.app_id or "",
            installation_id=config.installation_id or "",
            private_key=config.private_key or "",
        )
    else:
        provider = StaticTokenProvider(config.personal_access_token or "")
    return GitHubClient(provider, http_client=http_client)
