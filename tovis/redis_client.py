# tovis/redis_client.py

from redis import Redis

from .config import settings

REDIS_SOCKET_TIMEOUT = 2.0

# None when no Redis is configured: slot caching and event delivery are skipped
redis_client: Redis | None = (
    Redis.from_url(
        settings.redis_url,
        socket_timeout=REDIS_SOCKET_TIMEOUT,
        decode_responses=True,
    )
    if settings.redis_url
    else None
)
