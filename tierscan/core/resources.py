"""Process-wide resources opened at startup and closed at shutdown."""
import logging
from typing import Optional
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from tierscan.core.config import Settings, settings as default_settings
from tierscan.core.database import create_engine, create_session_factory, init_db
from tierscan.core.redis import create_redis


logger = logging.getLogger(__name__)


class Resources:
    """
    Owns the database engine, session factory and Redis client.

    Entry points (API lifespan, scheduler, CLI) open one instance and pass
    it down explicitly; nothing is created lazily on first use.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or default_settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self.redis: Optional[redis.Redis] = None

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    async def open(self, create_tables: bool = True) -> "Resources":
        """Create the engine and Redis client; optionally create tables."""
        if self.is_open:
            return self

        logger.info("Opening resources...")
        self.engine = create_engine(self.settings.database_url)
        self.session_factory = create_session_factory(self.engine)
        self.redis = create_redis(self.settings.redis_url)

        if create_tables:
            await init_db(self.engine)

        logger.info("Resources ready")
        return self

    async def close(self) -> None:
        if self.redis is not None:
            try:
                await self.redis.aclose()
            except Exception as e:
                logger.warning(f"Error closing Redis client: {e}")
            self.redis = None

        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None

        logger.info("Resources closed")

    async def __aenter__(self) -> "Resources":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
