"""Shared counter / cooldown store backed by the ``limits`` storage layer.

The same storage URI configures the API rate limiter, so a Redis or Memcached
deployment shares throttling state across workers. Every call is best-effort:
an unavailable backend degrades to "no limiting" and never fails a request.
"""
from __future__ import annotations
import logging
import math
import time
from typing import Optional

from limits.storage import Storage, storage_from_string

from precedent_finder import config
from precedent_finder.metrics import COLLABORATOR_FAILURES

logger = logging.getLogger(__name__)


class SharedCache:
    def __init__(self, storage_uri: Optional[str] = None, storage: Optional[Storage] = None):
        self.storage_uri = storage_uri or config.RATE_LIMIT_STORAGE_URI
        self._storage = storage

    @property
    def storage(self) -> Storage:
        if self._storage is None:
            self._storage = storage_from_string(self.storage_uri)
        return self._storage

    def increment(self, key: str, window_seconds: int) -> int:
        """Atomically bump ``key`` inside a fixed window; 0 when the store is down."""
        try:
            return int(self.storage.incr(key, max(1, int(window_seconds))))
        except Exception as e:
            logger.warning("shared cache increment failed for %s: %s", key, e)
            COLLABORATOR_FAILURES.labels(collaborator='cache').inc()
            return 0

    def count(self, key: str) -> int:
        try:
            return int(self.storage.get(key) or 0)
        except Exception as e:
            logger.warning("shared cache read failed for %s: %s", key, e)
            COLLABORATOR_FAILURES.labels(collaborator='cache').inc()
            return 0

    # Cooldowns are plain counters whose window is the cooldown length.

    def set_cooldown(self, scope: str, duration_ms: int) -> None:
        """Start a cooldown, or extend a live one; a shorter request never cuts it back."""
        duration_ms = max(1000, duration_ms)
        key = _cooldown_key(scope)
        if self.cooldown_remaining_ms(scope) >= duration_ms:
            return
        try:
            self.storage.clear(key)
        except Exception as e:
            logger.warning("shared cache clear failed for %s: %s", key, e)
            COLLABORATOR_FAILURES.labels(collaborator='cache').inc()
        self.increment(key, math.ceil(duration_ms / 1000))

    def cooldown_remaining_ms(self, scope: Optional[str]) -> int:
        key = _cooldown_key(scope)
        if self.count(key) <= 0:
            return 0
        try:
            expiry = float(self.storage.get_expiry(key))
        except Exception as e:
            logger.warning("shared cache expiry read failed for %s: %s", key, e)
            return 0
        return max(0, int((expiry - time.time()) * 1000))


def _cooldown_key(scope: Optional[str]) -> str:
    value = (scope or "global").strip().lower() or "global"
    return f"precedent_finder:cooldown:{value}"


_default: Optional[SharedCache] = None


def get_shared_cache() -> SharedCache:
    global _default
    if _default is None:
        _default = SharedCache()
    return _default


__all__ = ['SharedCache', 'get_shared_cache']
