from __future__ import annotations
import time
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple

from services import config

SUBSTATION = "substation"
REPORT = "report"

CacheKey = Tuple[Hashable, ...]


def _namespace(key: CacheKey) -> CacheKey:
    if key and key[0] == SUBSTATION and len(key) > 1:
        return key[:2]
    return key[:1]


class SummaryCache:
    """
    In-process cache for dashboard reads.
    Keys start with ("substation", <id>, ...) or ("report", ...).
    invalidate(substation_id) drops that substation's keys and every report key,
    since reports aggregate all substations.

    Every namespace carries a generation number bumped by invalidate(); a load
    that overlapped an invalidation returns its result without caching it.
    Usage:
        cache = SummaryCache(ttl=300)
        value = await cache.get_or_load(("substation", 1, "summary"), loader)
        cache.invalidate(1)
    """
    def __init__(self, ttl: int = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._items: Dict[CacheKey, Tuple[float, Any]] = {}
        self._generations: Dict[CacheKey, int] = {}
        self._epoch = 0

    def generation(self, key: CacheKey) -> Tuple[int, int]:
        return self._epoch, self._generations.get(_namespace(key), 0)

    def get(self, key: CacheKey) -> Optional[Any]:
        hit = self._items.get(key)
        if hit is None:
            return None
        expires_at, value = hit
        if self._clock() >= expires_at:
            self._items.pop(key, None)
            return None
        return value

    def set(self, key: CacheKey, value: Any) -> None:
        self._items[key] = (self._clock() + self.ttl, value)

    async def get_or_load(self, key: CacheKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        value = self.get(key)
        if value is not None:
            return value
        started = self.generation(key)
        value = await loader()
        if self.generation(key) == started:
            self.set(key, value)
        return value

    def _bump(self, namespace: CacheKey) -> None:
        self._generations[namespace] = self._generations.get(namespace, 0) + 1

    def invalidate(self, substation_id: int) -> int:
        self._bump((SUBSTATION, substation_id))
        self._bump((REPORT,))
        stale = [
            k for k in self._items
            if k[0] == REPORT or (k[0] == SUBSTATION and len(k) > 1 and k[1] == substation_id)
        ]
        for k in stale:
            self._items.pop(k, None)
        return len(stale)

    def clear(self) -> None:
        self._epoch += 1
        self._items.clear()
        self._generations.clear()

    def __len__(self) -> int:
        return len(self._items)


summary_cache = SummaryCache(ttl=config.SUMMARY_CACHE_TTL)
