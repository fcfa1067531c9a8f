"""
Shared Redis client for the networked store backend.

All Redis connections go through this module so there is exactly one
client per URL.
"""

import logging
import threading

import redis

_LOG = logging.getLogger(__name__)

_lock = threading.Lock()
_clients: dict[str, "redis.Redis | None"] = {}


def get_redis(url: str) -> "redis.Redis | None":
    """Return a shared Redis client for ``url`` (str values).

    Returns ``None`` when the initial ping fails; the result is cached so a
    missing Redis is probed only once per process.
    """
    if url in _clients:
        return _clients[url]
    with _lock:
        if url not in _clients:
            _clients[url] = _create_client(url)
        return _clients[url]


def _create_client(url: str) -> "redis.Redis | None":
    try:
        r = redis.Redis.from_url(url, decode_responses=True)
        r.ping()
        return r
    except redis.RedisError as e:
        _LOG.warning("Redis unavailable at %s: %s", url, e)
        return None


def ping(url: str) -> bool:
    """Quick health check: True if the shared client can PING."""
    client = get_redis(url)
    if client is None:
        return False
    try:
        return bool(client.ping())
    except redis.RedisError:
        return False


def reset_clients() -> None:
    """Drop cached clients (tests, config reload)."""
    with _lock:
        _clients.clear()
