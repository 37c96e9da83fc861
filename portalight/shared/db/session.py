import ssl
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, AsyncGenerator, Dict

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from portalight.shared.core.config import get_settings

logger = structlog.get_logger()

# Ensure ORM mappings are registered for workers that import the DB layer
# without importing `portalight/main.py`.
import portalight.models  # noqa: F401, E402


@dataclass(slots=True)
class _DBRuntime:
    engine: AsyncEngine
    session_maker: async_sessionmaker[AsyncSession]
    effective_url: str


_db_runtime: _DBRuntime | None = None
_db_runtime_lock = Lock()


def _normalize_db_url(raw_url: str) -> str:
    url = (raw_url or "").strip()
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _resolve_effective_url(settings_obj: Any) -> str:
    db_url = _normalize_db_url(settings_obj.DATABASE_URL)
    if settings_obj.TESTING and "sqlite" not in db_url:
        # Protect tests from accidental writes to real databases.
        return "sqlite+aiosqlite:///:memory:"
    return db_url


def _build_connect_args(settings_obj: Any, effective_url: str) -> dict[str, Any]:
    if "postgresql" not in effective_url:
        return {}

    connect_args: dict[str, Any] = {"statement_cache_size": 0}
    ssl_mode = str(settings_obj.DB_SSL_MODE).lower()

    if ssl_mode == "disable":
        logger.warning(
            "database_ssl_disabled",
            msg="SSL disabled - do not use in production!",
        )
        connect_args["ssl"] = False
        return connect_args

    if ssl_mode == "require":
        ssl_context = ssl.create_default_context()
        if settings_obj.DB_SSL_CA_CERT_PATH:
            ssl_context.load_verify_locations(cafile=settings_obj.DB_SSL_CA_CERT_PATH)
            ssl_context.verify_mode = ssl.CERT_REQUIRED
        else:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
            logger.warning(
                "database_ssl_require_insecure",
                msg="SSL enabled but CA verification skipped.",
            )
        connect_args["ssl"] = ssl_context
        return connect_args

    if ssl_mode in {"verify-ca", "verify-full"}:
        ca_cert = settings_obj.DB_SSL_CA_CERT_PATH
        if not ca_cert:
            raise ValueError(f"DB_SSL_CA_CERT_PATH required for ssl_mode={ssl_mode}")
        ssl_context = ssl.create_default_context(cafile=ca_cert)
        ssl_context.verify_mode = ssl.CERT_REQUIRED
        ssl_context.check_hostname = ssl_mode == "verify-full"
        connect_args["ssl"] = ssl_context
        return connect_args

    raise ValueError(
        f"Invalid DB_SSL_MODE: {ssl_mode}. Use: disable, require, verify-ca, verify-full"
    )


def _build_pool_config(settings_obj: Any, effective_url: str) -> dict[str, Any]:
    pool_config: dict[str, Any] = {
        "pool_pre_ping": True,
        "echo": settings_obj.DB_ECHO,
    }
    if "sqlite" in effective_url:
        pool_config["poolclass"] = StaticPool
    else:
        pool_config.update(
            {
                "pool_size": settings_obj.DB_POOL_SIZE,
                "max_overflow": settings_obj.DB_MAX_OVERFLOW,
                "pool_recycle": 3600,
            }
        )
    return pool_config


def _build_db_runtime() -> _DBRuntime:
    settings_obj = get_settings()
    if not settings_obj.DATABASE_URL and not settings_obj.TESTING:
        raise ValueError("DATABASE_URL is not set. The application cannot start.")

    effective_url = _resolve_effective_url(settings_obj)
    engine = create_async_engine(
        effective_url,
        **_build_pool_config(settings_obj, effective_url),
        connect_args=_build_connect_args(settings_obj, effective_url),
    )
    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return _DBRuntime(
        engine=engine, session_maker=session_maker, effective_url=effective_url
    )


def _get_db_runtime() -> _DBRuntime:
    global _db_runtime
    runtime = _db_runtime
    if runtime is not None:
        return runtime
    with _db_runtime_lock:
        if _db_runtime is None:
            _db_runtime = _build_db_runtime()
        return _db_runtime


def get_engine() -> AsyncEngine:
    """Return the active async engine."""
    return _get_db_runtime().engine


def async_session_maker(*args: Any, **kwargs: Any) -> Any:
    """Return a new async session from the active session factory."""
    return _get_db_runtime().session_maker(*args, **kwargs)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def health_check() -> Dict[str, Any]:
    """Database health check for monitoring."""
    start_time = time.perf_counter()
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
        return {
            "status": "up",
            "latency_ms": round((time.perf_counter() - start_time) * 1000, 2),
            "engine": get_engine().dialect.name,
        }
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return {
            "status": "down",
            "error": str(e),
            "latency_ms": (time.perf_counter() - start_time) * 1000,
        }
