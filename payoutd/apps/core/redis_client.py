"""
Shared Redis connection for the payout subsystem.

One lazily created client per process. Every caller reuses it: redis-py
multiplexes commands over its connection pool, so no per-call clients are
created. The cache helpers in ``RedisCache`` are best-effort and never raise.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional
from urllib.parse import quote

import redis
from django.conf import settings
from redis.backoff import AbstractBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

logger = logging.getLogger(__name__)


class RedisUnavailableError(RedisConnectionError):
    """Raised when no connection to the store can be established."""


class LinearBackoff(AbstractBackoff):
    """Waits ``failures * step`` seconds between reconnects, capped."""

    def __init__(self, step: float = 0.1, cap: float = 3.0) -> None:
        self._step = step
        self._cap = cap

    def reset(self) -> None:
        pass

    def compute(self, failures: int) -> float:
        return min(failures * self._step, self._cap)


def _mask(url: str) -> str:
    if '@' not in url:
        return url
    scheme, _, rest = url.partition('://')
    return f"{scheme}://***@{rest.split('@', 1)[1]}"


class RedisManager:
    def __init__(self) -> None:
        self._client: Optional[redis.Redis] = None
        # Single slot: whoever holds it is connecting, everyone else waits for that result
        self._connect_lock = threading.Lock()

    def get_redis_config(self) -> Dict[str, Any]:
        """Resolve connection parameters from settings.

        REDIS_URL wins. Otherwise host, port and password (all three) are
        assembled into a URL. Otherwise discrete values with localhost defaults.
        """
        if settings.REDIS_URL:
            return {'url': settings.REDIS_URL}

        host = settings.REDIS_HOST
        port = settings.REDIS_PORT
        password = settings.REDIS_PASSWORD
        username = settings.REDIS_USERNAME or 'default'
        database = settings.REDIS_DB or 0
        if host and port and password:
            userinfo = f"{quote(username, safe='')}:{quote(password, safe='')}"
            return {'url': f"redis://{userinfo}@{host}:{port}/{database}"}

        return {
            'host': host or 'localhost',
            'port': int(port or 6379),
            'password': password,
            'username': username if password else None,
            'db': int(database),
        }

    def _build_client(self) -> redis.Redis:
        config = self.get_redis_config()
        timeout = settings.REDIS_CONNECT_TIMEOUT
        common = {
            'decode_responses': True,
            'socket_connect_timeout': timeout,
            'retry': Retry(
                LinearBackoff(settings.REDIS_BACKOFF_STEP, settings.REDIS_BACKOFF_CAP),
                settings.REDIS_MAX_RETRIES,
            ),
            'retry_on_error': [RedisConnectionError, RedisTimeoutError],
            'health_check_interval': 30,
        }
        if 'url' in config:
            logger.info(f"Connecting to Redis at {_mask(config['url'])}")
            return redis.Redis.from_url(config['url'], **common)
        logger.info(f"Connecting to Redis at {config['host']}:{config['port']}/{config['db']}")
        return redis.Redis(
            host=config['host'],
            port=config['port'],
            password=config['password'],
            username=config['username'],
            db=config['db'],
            **common,
        )

    def _connect(self) -> redis.Redis:
        client = self._build_client()
        try:
            client.ping()
        except redis.RedisError:
            logger.exception("Failed to connect to Redis")
            client.close()
            raise
        logger.info("Redis connection established successfully")
        return client

    def get_client(self) -> redis.Redis:
        client = self._client
        if client is not None:
            return client

        timeout = settings.REDIS_CONNECT_TIMEOUT
        if not self._connect_lock.acquire(timeout=timeout):
            raise RedisUnavailableError(f"Timed out after {timeout}s waiting for Redis connection")
        try:
            # Another caller may have finished connecting while we waited
            if self._client is None:
                self._client = self._connect()
            return self._client
        finally:
            self._connect_lock.release()

    def disconnect(self) -> None:
        with self._connect_lock:
            client, self._client = self._client, None
        if client is not None:
            client.close()
            logger.info("Redis client disconnected")

    def ping(self):
        return self.get_client().ping()

    def is_healthy(self) -> bool:
        try:
            return bool(self.ping())
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Redis health check failed: {exc}")
            return False


class RedisCache:
    """Cache operations that log and return a safe default on any store error."""

    def __init__(self, manager: Optional[RedisManager] = None) -> None:
        self.manager = manager or redis_manager

    def get(self, key: str) -> Optional[str]:
        try:
            return self.manager.get_client().get(key)
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Redis GET error for key {key}: {exc}")
            return None

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        try:
            self.manager.get_client().set(key, value, ex=ttl_seconds or None)
            return True
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Redis SET error for key {key}: {exc}")
            return False

    def delete(self, key: str) -> bool:
        try:
            return self.manager.get_client().delete(key) > 0
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Redis DEL error for key {key}: {exc}")
            return False

    def exists(self, key: str) -> bool:
        try:
            return self.manager.get_client().exists(key) == 1
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Redis EXISTS error for key {key}: {exc}")
            return False

    def ping(self):
        return self.manager.ping()

    def is_healthy(self) -> bool:
        return self.manager.is_healthy()

    def disconnect(self) -> None:
        self.manager.disconnect()


redis_manager = RedisManager()
cache = RedisCache(redis_manager)
