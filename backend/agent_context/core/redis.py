"""
Redis client for working memory.

Connection is configured via the REDIS_URL setting and handed to
WorkingMemory explicitly; nothing here is cached at module level.
"""
from typing import Optional

from redis.asyncio import Redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, TimeoutError
from redis.retry import Retry

from agent_context.core.config import Settings, settings as default_settings


def create_redis(
    settings: Optional[Settings] = None,
    url: Optional[str] = None
) -> Redis:
    """
    Create an asyncio Redis client.

    Responses are decoded to str since working memory values are text.
    Connection errors are retried by the client with exponential backoff
    (capped at 5s); the stores themselves never retry.
    """
    settings = settings or default_settings

    return Redis.from_url(
        url or settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
        retry=Retry(ExponentialBackoff(cap=5.0, base=0.2), settings.REDIS_MAX_RETRIES),
        retry_on_error=[ConnectionError, TimeoutError],
    )
