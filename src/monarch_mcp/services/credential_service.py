import logging

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..results import Err, ErrorKind, Ok, Result, error_message
from ..settings import get_settings
from .redis import RedisStore, get_redis_store

logger = logging.getLogger(__name__)

CREDENTIAL_KEY_PREFIX = "credential:"


class CredentialStore:
    """Resolves per-user bearer credentials from Redis. Never writes."""

    def __init__(
        self,
        redis_store: RedisStore | None,
        key_prefix: str = CREDENTIAL_KEY_PREFIX,
    ) -> None:
        self._redis = redis_store
        self._prefix = key_prefix

    def _key(self, user_id: str) -> str:
        return f"{self._prefix}{user_id}"

    async def resolve_credential(self, user_id: str) -> Result[str | None]:
        """Look up the credential for user_id.

        Returns:
            Ok(str) when a credential is stored, Ok(None) when it is absent,
            Err(STORE) when the read itself failed.
        """
        if self._redis is None:
            return Err(ErrorKind.STORE, "Credential store is not configured")
        try:
            raw = await self._redis.get(self._key(user_id))
        except RedisError as e:
            logger.warning("Credential lookup failed for user_id=%s: %s", user_id, e)
            return Err(ErrorKind.STORE, error_message(e))
        if not raw:
            logger.debug("No credential stored for user_id=%s", user_id)
            return Ok(None)
        return Ok(raw)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.close()


# Lazy singleton, connected once at startup
_credential_store_instance: CredentialStore | None = None


async def get_credential_store_async() -> CredentialStore:
    """Return the credential store after ensuring Redis is connected. Cached.

    When Redis is unconfigured or unreachable the store is still returned; every
    lookup then resolves to a store failure rather than to an absent credential.
    """
    global _credential_store_instance
    if _credential_store_instance is not None:
        return _credential_store_instance
    settings = get_settings()
    redis_store = get_redis_store()
    if redis_store is None:
        logger.warning("REDIS_URL is not set; credential lookups will fail")
    else:
        try:
            await redis_store.connect()
        except (RedisConnectionError, RedisTimeoutError, ConnectionError, TimeoutError) as e:
            logger.warning("Credential store unavailable (Redis): %s", e)
    _credential_store_instance = CredentialStore(
        redis_store=redis_store,
        key_prefix=settings.credential_key_prefix,
    )
    return _credential_store_instance


async def close_credential_store() -> None:
    """Close the Redis connection used by the credential store. Idempotent."""
    global _credential_store_instance
    if _credential_store_instance is not None:
        await _credential_store_instance.close()
        _credential_store_instance = None
        logger.debug("Credential store (Redis) closed")
