"""
Price-list orchestration: cache check, fetch on miss, normalize, optimize,
store and shape the response envelope.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union, TYPE_CHECKING

from shared.errors import UpstreamError, ValidationError
from shared.logging import get_logger, set_client_context

from ..caching.client_cache import ClientCache, PriceListPayload
from .models import ClientKind, PriceListFormat, require_client_id
from .normalizer import NormalizedPayload, normalize_payload
from .optimizer import optimize
from .strategy import PHASE_FALLBACK, FetchFailure, FetchPolicy, FetchStrategy, PriceListSource

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TIMEOUT_MS = 30000
HIGH_PRODUCT_COUNT = 10000
MEDIUM_PRODUCT_COUNT = 1000
SLOW_FETCH_MS = 5000


class PriceListOrchestrator:
    """Serves per-client price lists through the client cache."""

    def __init__(
        self,
        cache: ClientCache,
        source: PriceListSource,
        policy: Optional[FetchPolicy] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
        single_flight: bool = True,
    ):
        self.cache = cache
        self.strategy = FetchStrategy(source, policy)
        self.metrics = metrics
        self.single_flight = single_flight
        self.logger = get_logger("gateway.price_lists")
        self._in_flight: Dict[str, "asyncio.Future[Tuple[NormalizedPayload, int, str]]"] = {}

    async def fetch_price_list(
        self,
        client_id: Optional[str],
        force_refresh: bool = False,
        fmt: Union[PriceListFormat, str] = PriceListFormat.OPTIMIZED,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> Dict[str, Any]:
        """Return the price-list envelope for ``client_id``.

        Raises ``ValidationError`` for a blank identifier, ``NotFoundError``
        when Rodin does not know the client and ``UpstreamError`` when both
        the primary and fallback fetches failed.
        """
        client_id = require_client_id(client_id)
        fmt = _coerce_format(fmt)
        if timeout_ms is None or timeout_ms <= 0:
            raise ValidationError("timeout_ms must be a positive integer", details={"timeout_ms": timeout_ms})

        client_kind = ClientKind.classify(client_id)
        set_client_context(client_id, client_kind.value)

        if not force_refresh:
            cached = self.cache.get(client_id, source_format=fmt.value)
            if cached is not None:
                self.logger.info(
                    "Serving price list from cache",
                    client_id=client_id,
                    total_products=cached.total_products,
                )
                return self._cached_envelope(client_id, client_kind, cached)
            if client_id in self.cache:
                self.logger.info(
                    "Cached price list has a different format, refetching",
                    client_id=client_id,
                    requested_format=fmt.value,
                )
        else:
            self.logger.info("Forced refresh requested", client_id=client_id)

        normalized, fetch_ms, phase = await self._fetch(client_id, client_kind, timeout_ms)
        partial = phase == PHASE_FALLBACK

        if normalized.total_products == 0:
            self.logger.warning(
                "Client has no products in its price list",
                client_id=client_id,
                shape=normalized.shape.value,
            )
        else:
            self.logger.info(
                "Fetched price list from upstream",
                client_id=client_id,
                total_products=normalized.total_products,
                duration_ms=fetch_ms,
                phase=phase,
            )

        optimized = optimize(normalized.products, fmt)
        payload = PriceListPayload(
            price_list=optimized.price_list,
            price_index=optimized.price_index,
            total_products=optimized.total_products,
            metadata={
                "obtained_at": _utc_now(),
                "fetch_duration_ms": fetch_ms,
                "source_format": fmt.value,
                "client_kind": client_kind.value,
                "has_discounts": optimized.has_discounts,
                "fetch_phase": phase,
                "partial": partial,
            },
        )

        # Empty results and truncated fallback pages are never cached
        stored = payload.total_products > 0 and not partial
        if stored:
            self.cache.set(client_id, payload)

        envelope = self._base_envelope(client_id, client_kind, payload)
        envelope["metadata"] = {
            **payload.metadata,
            "responded_at": _utc_now(),
            "format": fmt.value,
            "optimizations": optimized.optimizations,
            "cache": {
                "from_cache": False,
                "stored_in_cache": stored,
                "cached_clients": len(self.cache),
            },
            "recommendations": generate_recommendations(payload.total_products, fetch_ms),
        }
        envelope["pagination"] = {
            "paginated": False,
            "reason": (
                "Upstream fallback returned only the first page of the price list"
                if partial
                else "This endpoint delivers every product of the client"
            ),
            "paginated_alternative": f"/api/price-lists/{client_id}/page?limit=100",
        }
        return envelope

    async def _fetch(self, client_id: str, client_kind: ClientKind, timeout_ms: int) -> Tuple[NormalizedPayload, int, str]:
        if not self.single_flight:
            return await self._fetch_upstream(client_id, client_kind, timeout_ms)

        pending = self._in_flight.get(client_id)
        if pending is not None:
            self.logger.debug("Joining in-flight upstream fetch", client_id=client_id)
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._fetch_upstream(client_id, client_kind, timeout_ms))
        self._in_flight[client_id] = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._in_flight.get(client_id) is task:
                del self._in_flight[client_id]

    async def _fetch_upstream(self, client_id: str, client_kind: ClientKind, timeout_ms: int) -> Tuple[NormalizedPayload, int, str]:
        self.logger.info(
            "Fetching price list from upstream",
            client_id=client_id,
            client_kind=client_kind.value,
            timeout_ms=timeout_ms,
        )
        result = await self.strategy.execute(client_kind, client_id, timeout_ms)
        self._record_fetch(client_kind, result)

        if isinstance(result, FetchFailure):
            raise UpstreamError(
                f"Could not obtain price list for {client_id}: {result.reason}",
                client_id=client_id,
                phase=result.phase,
                elapsed_ms=result.duration_ms,
                details={"errors": result.errors},
            )

        return normalize_payload(result.data), result.duration_ms, result.phase

    def _record_fetch(self, client_kind: ClientKind, result) -> None:
        if not self.metrics:
            return
        outcome = "failure" if isinstance(result, FetchFailure) else "success"
        self.metrics.increment_counter(
            "upstream_fetch_total",
            client_kind=client_kind.value,
            phase=result.phase,
            result=outcome,
        )
        self.metrics.observe_histogram(
            "upstream_fetch_duration_seconds",
            result.duration_ms / 1000.0,
            client_kind=client_kind.value,
        )

    def _cached_envelope(self, client_id: str, client_kind: ClientKind, payload: PriceListPayload) -> Dict[str, Any]:
        envelope = self._base_envelope(client_id, client_kind, payload)
        size_bytes = self.cache.size_of(client_id) or 0
        envelope["metadata"] = {
            **payload.metadata,
            "responded_at": _utc_now(),
            "format": payload.metadata.get("source_format"),
            "cache": {
                "from_cache": True,
                "cached_at": payload.metadata.get("obtained_at"),
                "approx_size_kb": round(size_bytes / 1024),
            },
            "recommendations": generate_recommendations(
                payload.total_products,
                payload.metadata.get("fetch_duration_ms", 0),
            ),
        }
        return envelope

    @staticmethod
    def _base_envelope(client_id: str, client_kind: ClientKind, payload: PriceListPayload) -> Dict[str, Any]:
        envelope: Dict[str, Any] = {
            "success": True,
            "client_id": client_id,
            "client_kind": client_kind.value,
            "price_list": [dict(item) if isinstance(item, dict) else item for item in payload.price_list],
            "total_products": payload.total_products,
            "has_discounts": payload.metadata.get("has_discounts", False),
        }
        if payload.price_index is not None:
            envelope["price_index"] = {sku: dict(entry) for sku, entry in payload.price_index.items()}
        return envelope


def generate_recommendations(total_products: int, fetch_duration_ms: int) -> List[Dict[str, str]]:
    """Advisory hints for the storefront; never affects control flow."""
    recommendations = []

    if total_products > HIGH_PRODUCT_COUNT:
        recommendations.append({
            "level": "high",
            "message": f"Client with {total_products:,} products",
            "action": "Use progressive loading in the frontend",
            "technique": "Virtual scrolling + IndexedDB",
        })
    elif total_products > MEDIUM_PRODUCT_COUNT:
        recommendations.append({
            "level": "medium",
            "message": f"Client with {total_products} products",
            "action": "Cache in IndexedDB",
            "technique": "Lazy loading in batches",
        })

    if fetch_duration_ms > SLOW_FETCH_MS:
        recommendations.append({
            "level": "warning",
            "message": f"Slow upstream fetch: {fetch_duration_ms}ms",
            "action": "Consider pagination",
            "technique": "Use the paginated endpoint for the initial load",
        })

    return recommendations


def _coerce_format(fmt: Union[PriceListFormat, str]) -> PriceListFormat:
    try:
        return PriceListFormat(fmt)
    except ValueError:
        raise ValidationError(
            f"Unsupported format: {fmt}",
            details={"allowed": [f.value for f in PriceListFormat]},
        ) from None


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
