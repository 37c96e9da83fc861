"""
Shared async HTTP client.

One httpx.AsyncClient is reused across the FastAPI lifespan and background
provisioning tasks so GitHub calls share a connection pool.
"""

import inspect
from typing import Optional
import httpx
import structlog

logger = structlog.get_logger()

_client: Optional[httpx.AsyncClient] = None

USER_AGENT = "Portalight/0.1"


def _build_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        http2=True,
        timeout=httpx.Timeout(timeout, connect=10.0),
        limits=httpx.Limits(
            max_connections=100,
            max_keepalive_connections=20,
            keepalive_expiry=30.0,
        ),
        headers={"User-Agent": USER_AGENT},
    )


def get_http_client(timeout: Optional[float] = None) -> httpx.AsyncClient:
    """
    Returns the global shared httpx.AsyncClient, creating it lazily if the
    lifespan hook has not run (workers, scripts).
    """
    global _client
    if _client is None:
        logger.warning(
            "http_client_lazy_initialized",
            msg="Client was not pre-initialized",
        )
        _client = _build_client(timeout or 20.0)
    return _client


async def init_http_client(timeout: float = 20.0) -> None:
    global _client
    if _client is not None:
        logger.warning("http_client_already_initialized")
        return
    _client = _build_client(timeout)
    logger.info("http_client_initialized", timeout=timeout)


async def close_http_client() -> None:
    """Gracefully shuts down the global client, flushing its connection pool."""
    global _client
    if _client is None:
        return
    close_result = _client.aclose()
    if inspect.isawaitable(close_result):
        await close_result
    _client = None
    logger.info("http_client_closed")
