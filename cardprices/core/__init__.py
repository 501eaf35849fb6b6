from .config import settings
from .database import get_db, engine, async_session_factory
from .redis import get_redis, redis_client

__all__ = [
    "settings",
    "get_db",
    "engine",
    "async_session_factory",
    "get_redis",
    "redis_client",
]
