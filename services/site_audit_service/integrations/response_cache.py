import hashlib
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from config.logging_config import get_logger, MetricsLogger
from prometheus_client import Counter

logger = get_logger(__name__)

cache_lookups_total = Counter(
    'site_audit_cache_lookups_total',
    'Vendor response cache lookups',
    ['result']
)

cache_evictions_total = Counter(
    'site_audit_cache_evictions_total',
    'Vendor response cache capacity evictions'
)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now >= self.inserted_at + self.ttl


def build_cache_key(method: str, endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
    params_str = json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(params_str.encode()).hexdigest()[:16]
    return f"{method.upper()}:{endpoint}:{digest}"


class ResponseCache:
    """Bounded key/value store with per-entry TTL.

    When full, the entry inserted longest ago is evicted first. Overwriting a
    key counts as a fresh insertion. Entries are replaced wholesale, never
    mutated, so the lock only guards the map itself.
    """

    def __init__(
        self,
        default_ttl: float = 12 * 60 * 60,
        max_size: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")

        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = {'hits': 0, 'misses': 0, 'sets': 0, 'evictions': 0}

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)

            if entry is None:
                self._record_miss()
                return None

            if entry.expired(self._clock()):
                del self._entries[key]
                self._record_miss()
                return None

            self._stats['hits'] += 1

        cache_lookups_total.labels(result='hit').inc()
        MetricsLogger.increment('cache_hits')
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=value,
            inserted_at=now,
            ttl=ttl if ttl is not None else self.default_ttl,
        )

        with self._lock:
            self._entries.pop(key, None)

            # expired entries go before any live one is evicted
            if len(self._entries) >= self.max_size:
                self._drop_expired(now)

            while len(self._entries) >= self.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                self._stats['evictions'] += 1
                cache_evictions_total.inc()
                logger.debug(f"Evicted cache entry {evicted_key}")

            self._entries[key] = entry
            self._stats['sets'] += 1

    def has(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.expired(self._clock()):
                del self._entries[key]
                return False
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        with self._lock:
            purged = self._drop_expired(self._clock())

        if purged:
            logger.info(f"Purged {purged} expired cache entries, {len(self)} remaining")
        return purged

    def _drop_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def get_stats(self) -> Dict[str, float]:
        with self._lock:
            stats = dict(self._stats)
            stats['size'] = len(self._entries)

        lookups = stats['hits'] + stats['misses']
        stats['hit_ratio'] = round(stats['hits'] / lookups * 100, 2) if lookups else 0.0
        return stats

    def reset_stats(self) -> None:
        with self._lock:
            for key in self._stats:
                self._stats[key] = 0

    def __len__(self) -> int:
        return len(self._entries)

    def _record_miss(self) -> None:
        self._stats['misses'] += 1
        cache_lookups_total.labels(result='miss').inc()
        MetricsLogger.increment('cache_misses')
