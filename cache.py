"""In-memory TTL cache for read paths, with explicit invalidation on writes."""

import logging
import threading
from typing import Any, Callable, Optional

from cachetools import TTLCache

from config import CACHE_MAX_ENTRIES, CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

PORTFOLIO_USERS_KEY = "portfoliousers:all"
PORTFOLIO_USER_PREFIX = "portfoliouser:"
SKILLS_KEY = "skills:all"
SKILL_PREFIX = "skill:"


class CacheService:
    """Get-or-compute cache with a fixed expiration for every entry."""

    def __init__(self, maxsize: int = CACHE_MAX_ENTRIES, ttl: int = CACHE_TTL_SECONDS):
        self._store = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            value = self._store.get(key)
        logger.debug("Cache %s for key: %s", "hit" if value is not None else "miss", key)
        return value

    def set(self, key: str, value: Any) -> None:
        if not key:
            logger.warning("Cache key is empty, skipping set operation")
            return
        with self._lock:
            self._store[key] = value

    def get_or_set(self, key: str, factory: Callable[[], Any]) -> Any:
        """Return the cached value for *key*, or compute it with *factory* and store it.

        ``None`` results are returned but never cached, so a missing row is
        looked up again on the next request.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = factory()
        if value is not None:
            self.set(key, value)
        return value

    def remove(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)
        logger.debug("Removed cache item with key: %s", key)

    def remove_by_prefix(self, prefix: str) -> None:
        with self._lock:
            for key in [k for k in self._store.keys() if k.startswith(prefix)]:
                self._store.pop(key, None)
        logger.debug("Removed cache items with prefix: %s", prefix)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


cache = CacheService()


def invalidate_portfolio_user(portfolio_user_id: Optional[int] = None) -> None:
    """Drop cached aggregated profiles; all of them when no id is given."""
    cache.remove(PORTFOLIO_USERS_KEY)
    if portfolio_user_id is None:
        cache.remove_by_prefix(PORTFOLIO_USER_PREFIX)
    else:
        cache.remove(f"{PORTFOLIO_USER_PREFIX}{portfolio_user_id}")


def invalidate_skills(skill_id: Optional[int] = None) -> None:
    cache.remove(SKILLS_KEY)
    if skill_id is not None:
        cache.remove(f"{SKILL_PREFIX}{skill_id}")
