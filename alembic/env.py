"""Alembic migration environment for the snapshot database."""
import asyncio
import sys
from logging.config import fileConfig
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from alembic import context

from tierscan.core.config import settings
from tierscan.core.database import Base, mask_db_url
import tierscan.models  # noqa: F401  registers accounts and thresholds on Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# DATABASE_URL from settings always wins over alembic.ini
DATABASE_URL = settings.database_url
config.set_main_option("sqlalchemy.url", DATABASE_URL)
print(f"Migrating {mask_db_url(DATABASE_URL)}", file=sys.stderr)

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    # Batch mode lets ALTER TABLE work on SQLite
    context.configure(
        target_metadata=target_metadata,
        render_as_batch=True,
        compare_type=True,
        **kwargs
    )


def run_migrations_offline() -> None:
    """Emit SQL to stdout without connecting."""
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(DATABASE_URL, poolclass=NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_with_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
