"""Core package initialization."""
from tierscan.core.config import settings, Settings
from tierscan.core.database import Base, create_engine, create_session_factory, init_db
from tierscan.core.redis import create_redis
from tierscan.core.resources import Resources

__all__ = [
    "settings",
    "Settings",
    "Base",
    "create_engine",
    "create_session_factory",
    "init_db",
    "create_redis",
    "Resources",
]
