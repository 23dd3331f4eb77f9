"""Database setup with async SQLAlchemy (SQLite via aiosqlite, or PostgreSQL)."""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from pathlib import Path
import logging
import re

logger = logging.getLogger(__name__)


# Mask password in database URL for logging
def mask_db_url(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r'://([^:]+):([^@]+)@', r'://\1:****@', url)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def _ensure_sqlite_directory(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    match = re.match(r'sqlite\+\w+:///(.+)', url)
    if not match or match.group(1) == ":memory:":
        return
    Path(match.group(1)).parent.mkdir(parents=True, exist_ok=True)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create the async engine for the snapshot store.

    SQLite gets a single shared connection for in-memory databases and no
    pool sizing; PostgreSQL gets the usual connection pool settings.
    """
    logger.info(f"Connecting to database: {mask_db_url(database_url)}")

    if database_url.startswith("sqlite"):
        engine_args = {"echo": echo}
        if ":memory:" in database_url:
            engine_args["poolclass"] = StaticPool
        else:
            _ensure_sqlite_directory(database_url)
    else:
        engine_args = {
            "echo": echo,
            "pool_pre_ping": True,  # Verify connections before using
            "pool_size": 10,
            "max_overflow": 20,
            "pool_timeout": 30,
            "pool_recycle": 3600,
        }
        logger.info(
            "Configuring connection pool: pool_size=10, max_overflow=20, "
            "pool_timeout=30s, pool_recycle=3600s"
        )

    engine = create_async_engine(database_url, **engine_args)
    logger.debug(f"Database engine created: {engine.dialect.name}")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )


async def init_db(engine: AsyncEngine):
    """Initialize database tables."""
    # Import models so they register with Base.metadata
    from tierscan import models  # noqa: F401

    logger.info("Initializing database tables...")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database tables: {str(e)}", exc_info=True)
        raise
