"""
Redis cache for read-mostly collaborator data (store settings).

The counter must keep billing when Redis is down, so every failure here is
logged and answered as a cache miss. After the first failed command the cache
switches itself off until the next app start.
"""

import logging
import json
from typing import Any, Optional, Callable
from decimal import Decimal

import redis
from redis.exceptions import RedisError
from flask import Flask

logger = logging.getLogger(__name__)

DECIMAL_TAG = '__decimal__'


def _encode(value: Any) -> str:
    def tag_decimal(obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return {DECIMAL_TAG: str(obj)}
        raise TypeError(f"{type(obj).__name__} is not cacheable")
    return json.dumps(value, default=tag_decimal, sort_keys=True)


def _decode(raw: str) -> Any:
    return json.loads(raw, object_hook=lambda d: Decimal(d[DECIMAL_TAG]) if DECIMAL_TAG in d else d)


class CacheService:
    """
    Cache-aside store with keys of the form {prefix}:{module}:{key}.

    A client can be passed in directly; otherwise init_app() connects to
    REDIS_URL when CACHE_ENABLED is set.
    """

    def __init__(self, app: Optional[Flask] = None, client: Any = None,
                 prefix: str = 'pos', default_ttl: int = 300):
        self.client = client
        self.prefix = prefix
        self.default_ttl = default_ttl

        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.prefix = app.config.get('CACHE_KEY_PREFIX', self.prefix)
        self.default_ttl = app.config.get('SETTINGS_CACHE_TTL', self.default_ttl)

        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] Disabled via config")
            self.client = None
            return

        redis_url = app.config.get('REDIS_URL', 'redis://localhost:6379/0')
        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except RedisError as e:
            self._disable(e)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _disable(self, error: Exception) -> None:
        logger.warning(f"[CACHE] Redis unavailable, caching off: {error}")
        self.client = None

    def key(self, module: str, key: str) -> str:
        return f"{self.prefix}:{module}:{key}"

    def get(self, module: str, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            raw = self.client.get(self.key(module, key))
        except RedisError as e:
            self._disable(e)
            return None
        if raw is None:
            return None
        try:
            return _decode(raw)
        except ValueError:
            logger.warning(f"[CACHE] Dropping unreadable entry {self.key(module, key)}")
            return None

    def set(self, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.setex(self.key(module, key), ttl or self.default_ttl, _encode(value))
        except TypeError as e:
            logger.warning(f"[CACHE] Not caching {self.key(module, key)}: {e}")
            return False
        except RedisError as e:
            self._disable(e)
            return False
        return True

    def delete(self, module: str, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.delete(self.key(module, key))
        except RedisError as e:
            self._disable(e)
            return False
        logger.info(f"[CACHE] Invalidated {self.key(module, key)}")
        return True

    def memoize(self, module: str, key: str, loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Cached value, or loader_fn() stored for next time. Loader errors propagate."""
        cached = self.get(module, key)
        if cached is not None:
            return cached
        value = loader_fn()
        self.set(module, key, value, ttl)
        return value


def init_cache(app: Flask) -> CacheService:
    """Create the cache and register it on the app for injection."""
    cache = CacheService(app)
    app.extensions['cache'] = cache
    return cache
