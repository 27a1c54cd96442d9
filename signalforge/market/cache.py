"""TTL cache for computed indicator results.

Passed explicitly to whoever needs it; there is no module-level instance.
"""

import json
import logging
import time
from typing import Any, Callable, Hashable, Mapping, Optional

logger = logging.getLogger("signalforge")


def make_key(
    series_key: str, fingerprint: str, indicator: str, params: Mapping[str, Any],
) -> tuple[str, str, str, str]:
    """Hashable cache key; parameter order does not matter.

    *fingerprint* is ``OHLCVSeries.fingerprint``, so a refetch of the same
    instrument with new prices, or a truncated window of it, never shares
    an entry with the data it replaces.
    """
    return (
        series_key,
        fingerprint,
        indicator,
        json.dumps(dict(params), sort_keys=True, default=str),
    )


class IndicatorCache:
    """In-memory cache whose entries expire *ttl_seconds* after insertion.

    Expired entries are purged on every ``put``, and once more than
    *max_entries* are live the oldest insertions are evicted first.

    Args:
        ttl_seconds: Entry lifetime.  Indicator results default to two
            minutes.
        max_entries: Upper bound on stored entries.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 120.0,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        # Insertion ordered: the first key is always the oldest entry.
        self._entries: dict[Hashable, tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("Indicator cache miss: %s", key)
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[key]
            logger.debug("Indicator cache expired: %s", key)
            return None
        logger.debug("Indicator cache hit: %s", key)
        return value

    def put(self, key: Hashable, value: Any) -> None:
        now = self._clock()
        self._purge_expired(now)
        self._entries.pop(key, None)
        self._entries[key] = (now, value)
        while len(self._entries) > self._max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("Indicator cache evicted: %s", oldest)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _purge_expired(self, now: float) -> None:
        # Entries are stored in time order, so stop at the first live one.
        while self._entries:
            oldest = next(iter(self._entries))
            if now - self._entries[oldest][0] < self._ttl:
                break
            del self._entries[oldest]
