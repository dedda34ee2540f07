"""
Gateway caching package.

Holds the per-client price-list cache used to reduce latency and load on
the Rodin API. Entries expire lazily by TTL and are evicted by hit count,
then age, when the cache is full or the periodic sweep runs.
"""

from .client_cache import CacheSweeper, ClientCache, PriceListPayload

__all__ = ["CacheSweeper", "ClientCache", "PriceListPayload"]
