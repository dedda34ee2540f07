"""
Per-client price-list cache.

Bounded, TTL-based, hit-aware in-memory store keyed by the literal client
identifier (Rodin client code or email; the two key spaces are not merged).

Access statistics live in a parallel map and outlive the entries they
describe: TTL expiry, explicit delete and eviction remove entries only, so
the stats keep answering "how popular has this client been" for eviction
ranking and reporting.

Every mutation runs synchronously inside one event-loop turn; none of the
methods below may await.
"""

import asyncio
import json
import math
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_MAX_ENTRIES = 200
DEFAULT_TTL_SECONDS = 6 * 60 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 60 * 60
DEFAULT_EVICTION_FRACTION = 0.2
TOP_ACTIVE_LIMIT = 5


@dataclass(frozen=True)
class PriceListPayload:
    """Optimized price data as stored and served for one client."""

    price_list: List[Dict[str, Any]]
    price_index: Optional[Dict[str, Dict[str, Any]]]
    total_products: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ClientCacheEntry:
    client_id: str
    payload: PriceListPayload
    stored_at: float
    approx_size_bytes: int


@dataclass
class AccessStats:
    hit_count: int = 0
    set_count: int = 0
    last_access_at: float = 0.0


class ClientCache:
    """In-memory price-list cache with lazy TTL expiry and hit-aware eviction."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        eviction_fraction: float = DEFAULT_EVICTION_FRACTION,
        *,
        clock: Callable[[], float] = time.time,
        metrics: Optional["MetricsCollector"] = None,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if not 0 < eviction_fraction <= 1:
            raise ValueError("eviction_fraction must be in (0, 1]")

        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self.eviction_fraction = eviction_fraction
        self.logger = get_logger("gateway.client_cache")
        self.metrics = metrics
        self._clock = clock
        self._entries: Dict[str, ClientCacheEntry] = {}
        self._stats: Dict[str, AccessStats] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._entries

    def get(self, client_id: str, source_format: Optional[str] = None) -> Optional[PriceListPayload]:
        """Return the cached payload, or None when absent or expired.

        With ``source_format``, an entry stored in another format is a miss:
        it is left in place and no hit is counted.
        """
        entry = self._entries.get(client_id)
        if entry is None:
            self._record_event("miss")
            return None

        now = self._clock()
        if now - entry.stored_at > self.ttl_seconds:
            del self._entries[client_id]
            self.logger.info(
                "Cache entry expired",
                client_id=client_id,
                age_seconds=round(now - entry.stored_at, 3),
            )
            self._record_event("expired")
            self._update_size_gauge()
            return None

        if source_format is not None and entry.payload.metadata.get("source_format") != source_format:
            self._record_event("format_mismatch")
            return None

        stats = self._touch(client_id, now)
        stats.hit_count += 1
        self._record_event("hit")
        return entry.payload

    def set(self, client_id: str, payload: PriceListPayload) -> None:
        """Store ``payload`` for ``client_id``, evicting first when at capacity."""
        if len(self._entries) >= self.max_entries and client_id not in self._entries:
            self.evict()

        now = self._clock()
        self._entries[client_id] = ClientCacheEntry(
            client_id=client_id,
            payload=payload,
            stored_at=now,
            approx_size_bytes=_approx_size(payload),
        )

        stats = self._touch(client_id, now)
        stats.set_count += 1
        self._record_event("set")
        self._update_size_gauge()
        self.logger.info(
            "Cache updated",
            client_id=client_id,
            total_products=payload.total_products,
            entries=len(self._entries),
            max_entries=self.max_entries,
        )

    def delete(self, client_id: str) -> bool:
        """Remove the entry for ``client_id``; stats are kept. Idempotent."""
        removed = self._entries.pop(client_id, None) is not None
        if removed:
            self.logger.info("Cache entry deleted", client_id=client_id)
            self._update_size_gauge()
        return removed

    def evict(self) -> List[str]:
        """
        Remove the least useful fraction of entries.

        Entries are ranked by ascending (hit_count, stored_at): fewer hits
        first, older entries first among equal hits. The number removed is
        ``ceil(len * eviction_fraction)``, so a single entry is always
        evictable.
        """
        if not self._entries:
            return []

        ranked = sorted(
            self._entries.values(),
            key=lambda entry: (self._hit_count(entry.client_id), entry.stored_at),
        )
        to_delete = math.ceil(len(ranked) * self.eviction_fraction)
        evicted = [entry.client_id for entry in ranked[:to_delete]]
        for client_id in evicted:
            del self._entries[client_id]

        self._record_event("evicted", count=len(evicted))
        self._update_size_gauge()
        self.logger.info(
            "Cache eviction",
            evicted=len(evicted),
            remaining=len(self._entries),
        )
        return evicted

    def purge_expired(self) -> List[str]:
        """Drop every entry older than the TTL (entries only, stats are kept)."""
        now = self._clock()
        expired = [
            client_id
            for client_id, entry in self._entries.items()
            if now - entry.stored_at > self.ttl_seconds
        ]
        for client_id in expired:
            del self._entries[client_id]

        if expired:
            self._record_event("expired", count=len(expired))
            self._update_size_gauge()
            self.logger.info("Expired cache entries purged", purged=len(expired))
        return expired

    def sweep(self) -> Dict[str, int]:
        """Periodic maintenance: purge expired entries, then run one eviction round."""
        expired = self.purge_expired()
        evicted = self.evict()
        return {"expired": len(expired), "evicted": len(evicted)}

    def size_of(self, client_id: str) -> Optional[int]:
        """Approximate serialized size in bytes of a live entry."""
        entry = self._entries.get(client_id)
        return entry.approx_size_bytes if entry else None

    def access_stats(self, client_id: str) -> Optional[AccessStats]:
        return self._stats.get(client_id)

    def stats(self) -> Dict[str, Any]:
        """Cache occupancy plus the most frequently hit clients."""
        total_bytes = sum(entry.approx_size_bytes for entry in self._entries.values())
        top_active = sorted(
            self._stats.items(),
            key=lambda item: item[1].hit_count,
            reverse=True,
        )[:TOP_ACTIVE_LIMIT]

        return {
            "total_entries": len(self._entries),
            "total_size_kb": round(total_bytes / 1024, 2),
            "top_active": [
                {"client_id": client_id, "hits": stats.hit_count}
                for client_id, stats in top_active
            ],
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
        }

    def _touch(self, client_id: str, now: float) -> AccessStats:
        stats = self._stats.get(client_id)
        if stats is None:
            stats = self._stats[client_id] = AccessStats()
        stats.last_access_at = now
        return stats

    def _hit_count(self, client_id: str) -> int:
        stats = self._stats.get(client_id)
        return stats.hit_count if stats else 0

    def _record_event(self, event: str, count: int = 1) -> None:
        if self.metrics and count > 0:
            self.metrics.increment_counter("price_list_cache_events_total", count, event=event)

    def _update_size_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("price_list_cache_entries", len(self._entries))


def _approx_size(payload: PriceListPayload) -> int:
    """Serialized JSON size of the payload, used for reporting only."""
    return len(json.dumps(payload.to_dict(), default=str).encode("utf-8"))


class CacheSweeper:
    """Background task that runs ``ClientCache.sweep`` on a fixed interval."""

    def __init__(self, cache: ClientCache, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS):
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.logger = get_logger("gateway.cache_sweeper")
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="price-list-cache-sweeper")
        self.logger.info("Cache sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.info("Cache sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            result = self.cache.sweep()
            self.logger.info("Cache sweep completed", **result, remaining=len(self.cache))
