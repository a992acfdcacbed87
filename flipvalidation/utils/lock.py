from contextlib import contextmanager
import time
import uuid

from redis.exceptions import RedisError

from flipvalidation.settings import settings
from flipvalidation.store.redis_conn import get_redis


class SessionLockTimeout(RuntimeError):
    pass


_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


@contextmanager
def session_lock(epoch, coinbase: str, ttl_ms: int = None, attempts: int = 20, wait_sec: float = 0.1):
    """
    Distributed lock so one validation session has a single writer across
    API workers and submission jobs. The TTL must outlive a submission call.
    """
    r = get_redis()
    key = f"lock:validation:{int(epoch)}:{(coinbase or '').lower()}"
    token = uuid.uuid4().hex
    ttl = int(ttl_ms if ttl_ms is not None else settings.SESSION_LOCK_TTL_MS)

    acquired = bool(r.set(key, token, px=ttl, nx=True))
    for _ in range(max(0, attempts)):
        if acquired:
            break
        time.sleep(wait_sec)
        acquired = bool(r.set(key, token, px=ttl, nx=True))

    if not acquired:
        raise SessionLockTimeout(f"Could not acquire lock for validation session {epoch}:{coinbase}")

    try:
        yield
    finally:
        # Release only if we own it
        try:
            r.eval(_RELEASE_SCRIPT, 1, key, token)
        except RedisError:
            pass
