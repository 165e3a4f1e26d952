"""
Durable cache for the computed training set.

The cache is shared across processes so one of them can pay for embedding the
knowledge base and the rest reuse the vectors. It is an optimisation only:
every implementation swallows its own failures and reports a miss.
"""
from __future__ import annotations

import fnmatch
import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import redis

from spendsort.config import get_settings
from spendsort.utils.logger import get_logger

log = get_logger("cache")


class TrainingSetCache(ABC):
    """get / set-with-ttl / invalidate-by-key-or-pattern. A ttl of 0 means no expiry."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int = 0) -> None:
        pass

    @abstractmethod
    def invalidate(self, key_or_pattern: str) -> None:
        """Drop one key, or every key matching a glob pattern such as `ml:*`."""


class NullCache(TrainingSetCache):
    """No shared cache configured; every lookup misses."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl: int = 0) -> None:
        return None

    def invalidate(self, key_or_pattern: str) -> None:
        return None


class InMemoryCache(TrainingSetCache):
    """Process-local cache, for tests and single-process deployments."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int = 0) -> None:
        expires_at = self._clock() + ttl if ttl and ttl > 0 else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def invalidate(self, key_or_pattern: str) -> None:
        with self._lock:
            if _is_pattern(key_or_pattern):
                for key in [k for k in self._data if fnmatch.fnmatchcase(k, key_or_pattern)]:
                    del self._data[key]
            else:
                self._data.pop(key_or_pattern, None)

    def keys(self):
        with self._lock:
            return sorted(self._data)


class RedisCache(TrainingSetCache):
    """JSON values in Redis. Connection or decode errors are logged and treated as a miss."""

    def __init__(self, url: Optional[str] = None, client: Optional[redis.Redis] = None):
        if client is None:
            url = url or get_settings().redis_url
            if not url:
                raise ValueError("RedisCache needs a url or a client")
            client = redis.Redis.from_url(url)
        self.client = client

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            log.warning("Cache read failed", extra={"key": key, "error": str(e)})
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            log.warning("Discarding undecodable cache entry", extra={"key": key, "error": str(e)})
            return None

    def set(self, key: str, value: Any, ttl: int = 0) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            log.warning("Value is not cacheable", extra={"key": key, "error": str(e)})
            return
        try:
            if ttl and ttl > 0:
                self.client.setex(key, ttl, payload)
            else:
                self.client.set(key, payload)
        except redis.RedisError as e:
            log.warning("Cache write failed", extra={"key": key, "error": str(e)})

    def invalidate(self, key_or_pattern: str) -> None:
        try:
            if _is_pattern(key_or_pattern):
                keys = list(self.client.scan_iter(match=key_or_pattern))
                if keys:
                    self.client.delete(*keys)
            else:
                self.client.delete(key_or_pattern)
        except redis.RedisError as e:
            log.warning("Cache invalidation failed", extra={"key": key_or_pattern, "error": str(e)})


def _is_pattern(key: str) -> bool:
    return any(ch in key for ch in "*?[")


def build_cache(url: Optional[str] = None) -> TrainingSetCache:
    """RedisCache when REDIS_URL (or `url`) is set, otherwise NullCache."""
    url = url or get_settings().redis_url
    if not url:
        log.info("No REDIS_URL configured; training set is cached per process only")
        return NullCache()
    return RedisCache(url=url)


__all__ = ["TrainingSetCache", "NullCache", "InMemoryCache", "RedisCache", "build_cache"]
