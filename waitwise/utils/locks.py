"""
Redis distributed locks - serializes queue mutations per barber.
Uses Redis SET NX with TTL for automatic expiration.

The lock is the first line of defence across app instances. The row lock
taken on the barber inside the transaction and the partial unique indexes on
queue_entries keep the queue consistent if Redis is unavailable.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger(__name__)

LOCK_POLL_INTERVAL = 0.1  # 100ms

_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout."""
    pass


@asynccontextmanager
async def barber_queue_lock(
    barber_id: str,
    ttl: Optional[int] = None,
    wait: Optional[float] = None,
):
    """
    Acquire the queue lock for one barber.

    Usage:
        async with barber_queue_lock(str(barber.id)):
            # read positions, write new position
    """
    if ttl is None or wait is None:
        from waitwise.config import get_settings
        settings = get_settings()
        ttl = ttl if ttl is not None else settings.queue_lock_ttl_seconds
        wait = wait if wait is not None else settings.queue_lock_wait_seconds

    lock_key = f"waitwise:lock:barber_queue:{barber_id}"
    lock_value = uuid.uuid4().hex

    acquired = False
    try:
        acquired = await _acquire_lock(lock_key, lock_value, ttl, wait)
        if not acquired:
            raise LockTimeoutError(
                f"Could not acquire queue lock for barber {barber_id[:8]} within {wait}s"
            )
        yield
    finally:
        if acquired:
            await _release_lock(lock_key, lock_value)


async def _acquire_lock(key: str, value: str, ttl: int, wait: float) -> bool:
    """Try to acquire a Redis lock with polling."""
    try:
        from waitwise.utils.redis_client import get_redis
        redis = await get_redis()

        was_set = await redis.set(key, value, nx=True, ex=ttl)
        if was_set:
            return True

        elapsed = 0.0
        while elapsed < wait:
            await asyncio.sleep(LOCK_POLL_INTERVAL)
            elapsed += LOCK_POLL_INTERVAL
            was_set = await redis.set(key, value, nx=True, ex=ttl)
            if was_set:
                return True

        logger.warning("Lock acquisition timed out for %s", key)
        return False
    except Exception as e:
        # Database row locks still serialize the write
        logger.warning("Redis lock error for %s: %s. Proceeding without lock.", key, str(e))
        return True


async def _release_lock(key: str, value: str) -> None:
    """Release a Redis lock only if we still own it (compare-and-delete)."""
    try:
        from waitwise.utils.redis_client import get_redis
        redis = await get_redis()
        await redis.eval(_RELEASE_SCRIPT, 1, key, value)
    except Exception as e:
        logger.warning("Redis lock release error for %s: %s", key, str(e))
