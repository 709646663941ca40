from typing import Optional

try:
    import redis.asyncio as redis
except Exception as e:
    raise ImportError(
        "redis.asyncio is required for infrastructure.redis. Install 'redis>=4.2.0'."
    ) from e


class RedisClient:
    """Simple async Redis client wrapper with lifecycle management.

    Usage:
        client = RedisClient("redis://localhost:6379/0")
        await client.init()
        r = client.get()
        await r.set("foo", "bar")
        await client.close()
    """

    def __init__(self, url: str, *, decode_responses: bool = True):
        self.url = url
        self.decode_responses = decode_responses
        self._client: Optional[redis.Redis] = None

    async def init(self) -> None:
        """Initialize the underlying redis connection. Must be awaited."""
        if self._client is not None:
            return
        self._client = redis.from_url(self.url, decode_responses=self.decode_responses)
        # verify connectivity
        await self._client.ping()

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None

    def get(self) -> redis.Redis:
        """Return the underlying `redis.Redis` client. Raises if not initialized."""
        if self._client is None:
            raise RuntimeError("Redis client not initialized; call init() first")
        return self._client


class FieldCache:
    """Short-lived cache of persisted field values (JSON strings).

    Stores consult it on reads and delete the affected keys on every write,
    so a hit is never older than the last write through the same store.
    """

    def __init__(self, client: RedisClient, *, prefix: str = "territory:"):
        self.client = client
        self.prefix = prefix

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get().get(self.prefix + key)

    async def set(self, key: str, value: str, expire_seconds: int) -> None:
        await self.client.get().set(self.prefix + key, value, ex=expire_seconds)

    async def delete(self, *keys: str) -> None:
        if keys:
            await self.client.get().delete(*(self.prefix + k for k in keys))


class SessionLookup:
    """Resolve a session token to a user id (`session:<token>` -> user id)."""

    def __init__(self, client: RedisClient, *, prefix: str = "session:"):
        self.client = client
        self.prefix = prefix

    async def get_user_id(self, token: str) -> Optional[str]:
        if not token:
            return None
        return await self.client.get().get(self.prefix + token)


# Module-level convenience: a single default client
_default_client: Optional[RedisClient] = None


async def init_default_redis(url: str, *, decode_responses: bool = True) -> RedisClient:
    """Initialize and register a module-level default RedisClient.

    Returns the initialized client.
    """
    global _default_client
    if _default_client is None:
        _default_client = RedisClient(url, decode_responses=decode_responses)
    await _default_client.init()
    return _default_client


async def close_default_redis() -> None:
    global _default_client
    if _default_client is not None:
        await _default_client.close()
        _default_client = None
