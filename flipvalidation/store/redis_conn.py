from redis import Redis
from redis.exceptions import RedisError
from flipvalidation.settings import settings


def get_redis() -> Redis:
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)


def redis_available() -> bool:
    """Used by /health; persistence is best effort, so a down Redis degrades rather than fails."""
    try:
        return bool(get_redis().ping())
    except RedisError:
        return False
