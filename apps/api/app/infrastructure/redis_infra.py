from __future__ import annotations

from typing import Sequence, Type

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from nettrailers_logging.logger import DebugLogger
from nettrailers_store.redis_store import RedisDocumentStore

# Errors that indicate a stale / broken connection and are safe to retry at
# the connection level. WATCH conflicts are handled by the store itself.
_RETRY_ERRORS: Sequence[Type[Exception]] = (
    RedisConnectionError,
    RedisTimeoutError,
    ConnectionResetError,
)

_RETRY = Retry(ExponentialBackoff(cap=0.5, base=0.05), retries=3)


def make_redis_client(redis_url: str) -> Redis:
    """Text client (decode_responses=True): documents are JSON strings."""
    return redis.from_url(
        redis_url,
        decode_responses=True,
        health_check_interval=10,
        socket_keepalive=True,
        socket_connect_timeout=2,
        socket_timeout=5,
        retry=_RETRY,
        retry_on_error=list(_RETRY_ERRORS),
    )


def make_redis_store(
    redis_url: str, *, namespace: str, debug: DebugLogger | None = None
) -> RedisDocumentStore:
    return RedisDocumentStore(
        client=make_redis_client(redis_url), namespace=namespace, debug=debug
    )
