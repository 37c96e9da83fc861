import asyncio
import ssl
from logging.config import fileConfig
from typing import Any

import sqlalchemy as sa
from alembic import context
from sqlalchemy import pool
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

# Import all models so Base knows about them!
import portalight.models  # noqa: F401 # pylint: disable=unused-import
from portalight.shared.core.config import get_settings
from portalight.shared.db.base import Base
from portalight.shared.db.session import _normalize_db_url

settings = get_settings()

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def compare_type(context, inspected_column, metadata_column, inspected_type, metadata_type):
    """
    Suppress type diffs that are semantically equivalent in this codebase.
    """
    inspected_name = type(inspected_type).__name__
    metadata_name = type(metadata_type).__name__

    # JSON columns carry a JSONB variant on PostgreSQL.
    if inspected_name in {"JSON", "JSONB"} and metadata_name in {"JSON", "JSONB"}:
        return False
    if isinstance(inspected_type, postgresql.JSON) and isinstance(metadata_type, sa.JSON):
        return False

    # SQLAlchemy-Utils encrypted type stores as text-ish DB types.
    if metadata_name == "StringEncryptedType":
        return False

    return None


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to the script output."""
    url = config.get_main_option("sqlalchemy.url") or _normalize_db_url(settings.DATABASE_URL)
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=compare_type,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=compare_type,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


def _connect_args(url: str) -> dict[str, Any]:
    if "postgresql" not in url:
        return {}

    ssl_mode = (settings.DB_SSL_MODE or "require").lower()
    connect_args: dict[str, Any] = {"statement_cache_size": 0}
    if ssl_mode == "disable":
        connect_args["ssl"] = False
    elif ssl_mode == "require":
        connect_args["ssl"] = "require"
    elif ssl_mode in {"verify-ca", "verify-full"}:
        if not settings.DB_SSL_CA_CERT_PATH:
            raise ValueError(f"DB_SSL_CA_CERT_PATH is required when DB_SSL_MODE={ssl_mode}")
        ssl_context = ssl.create_default_context(cafile=settings.DB_SSL_CA_CERT_PATH)
        ssl_context.check_hostname = ssl_mode == "verify-full"
        ssl_context.verify_mode = ssl.CERT_REQUIRED
        connect_args["ssl"] = ssl_context
    else:
        raise ValueError(
            f"Invalid DB_SSL_MODE: {ssl_mode}. Use: disable, require, verify-ca, verify-full"
        )
    return connect_args


async def run_async_migrations() -> None:
    url = _normalize_db_url(settings.DATABASE_URL)
    connectable = create_async_engine(
        url,
        poolclass=pool.NullPool,
        connect_args=_connect_args(url),
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    # Escape % characters for ConfigParser interpolation
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL.replace("%", "%%"))
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
