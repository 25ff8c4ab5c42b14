import logging

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..settings import get_settings

logger = logging.getLogger(__name__)


class RedisStore:
    """Read-only async access to a Redis key-value store."""

    def __init__(self, url: str) -> None:
        """Create a Redis client for the given URL (e.g. redis://localhost:6379/0)."""
        self._url = url
        self._client: Redis | None = None

    async def connect(self) -> None:
        """Establish connection to Redis. Idempotent."""
        if self._client is not None:
            return
        self._client = Redis.from_url(
            self._url,
            decode_responses=True,
        )
        try:
            await self._client.ping()
            logger.info("Redis connection established: %s", self._url.split("@")[-1])
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis ping failed: %s", e)
            await self._client.aclose()
            self._client = None
            raise

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Redis connection closed")

    @property
    def client(self) -> Redis | None:
        """Return the underlying Redis client, or None if not connected."""
        return self._client

    async def get(self, key: str) -> str | None:
        """Return the value for key, or None if the key is missing.

        Connects lazily. Connection and timeout errors propagate so callers can
        tell a failed read apart from an absent key.
        """
        if self._client is None:
            await self.connect()
        value = await self._client.get(key)
        return value if value is None else str(value)


def get_redis_store() -> RedisStore | None:
    """Return a Redis store if redis_url is configured, else None."""
    settings = get_settings()
    if not settings.redis_url or not settings.redis_url.strip():
        return None
    return RedisStore(settings.redis_url.strip())
