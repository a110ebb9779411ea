from redis.asyncio import Redis
from .config import settings


# every socket wait is bounded
redis_client = Redis.from_url(
    settings.REDIS_URL,
    decode_responses=True,
    socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
    socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
    health_check_interval=settings.REDIS_HEALTH_CHECK_INTERVAL,
)


async def ping() -> bool:
    try:
        return await redis_client.ping()
    except Exception:
        return False
