"""Infrastructure helpers (Redis, etc.)

Expose a small public surface for Redis helpers used by stores and app startup.
"""
from .redis import (
    RedisClient,
    FieldCache,
    SessionLookup,
    init_default_redis,
    close_default_redis,
)

__all__ = [
    "RedisClient",
    "FieldCache",
    "SessionLookup",
    "init_default_redis",
    "close_default_redis",
]
