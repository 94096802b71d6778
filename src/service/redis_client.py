import redis.asyncio as aioredis
import os
import logging
from typing import Optional

logger = logging.getLogger('cvboost.service.redis_client')

redis_clients: dict[str, aioredis.Redis] = {}


def get_redis_client(redis_url: Optional[str] = None) -> Optional[aioredis.Redis]:
    """
    Return the shared Redis client for a URL, creating it on first use.

    Returns None when no URL is given and REDIS_URL is not set, in which case
    callers fall back to in-memory stores.
    """
    redis_url = redis_url or os.getenv("REDIS_URL")
    if not redis_url:
        return None

    if redis_url not in redis_clients:
        logger.info(f"Creating new Redis client with: URL {redis_url}")
        redis_clients[redis_url] = aioredis.from_url(redis_url, decode_responses=True)

    return redis_clients[redis_url]


async def close_redis_clients() -> None:
    for url, client in list(redis_clients.items()):
        try:
            await client.aclose()
        except Exception as e:
            logger.warning(f"Error closing Redis client {url}: {e}")
        redis_clients.pop(url, None)
