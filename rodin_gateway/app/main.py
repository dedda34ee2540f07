"""
API Gateway service for the Rodin B2B backend.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.circuit_breaker import CircuitBreaker
from shared.config import GatewayConfig
from shared.logging import set_client_context

from .adapters import RodinAuthClient, RodinClientsClient, RodinPriceListClient
from .caching import CacheSweeper, ClientCache
from .pricing import FetchPolicy, PriceListOrchestrator, VisibleSkuResolver
from .pricing.models import require_client_id
from .pricing.normalizer import normalize_payload

LEGACY_MAX_PAGE_LIMIT = 200


class GatewayService(BaseService):
    """API Gateway service implementation.

    Upstream collaborators can be injected (tests, alternative backends);
    by default they are the Rodin HTTP adapters built from configuration.
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        *,
        price_list_source: Optional[Any] = None,
        clients_client: Optional[Any] = None,
    ):
        super().__init__("gateway", config)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=self.config.breaker_failure_threshold,
            recovery_timeout=self.config.breaker_recovery_timeout,
            name="rodin_api",
        )
        self.auth_client = RodinAuthClient(
            self.config.api_base_url,
            self.config.username,
            self.config.password,
            token_ttl_seconds=self.config.token_ttl_seconds,
            timeout=self.config.clients_timeout_seconds,
        )
        self.clients_client = clients_client or RodinClientsClient(
            self.config.api_base_url,
            self.auth_client,
            self.circuit_breaker,
            timeout=self.config.clients_timeout_seconds,
        )
        self.price_list_client = price_list_source or RodinPriceListClient(
            self.config.api_base_url,
            self.auth_client,
            self.clients_client,
            self.circuit_breaker,
        )

        self.client_cache = ClientCache(
            max_entries=self.config.max_entries,
            ttl_seconds=self.config.ttl_seconds,
            eviction_fraction=self.config.eviction_fraction,
            metrics=self.metrics,
        )
        self.cache_sweeper = CacheSweeper(
            self.client_cache,
            interval_seconds=self.config.eviction_sweep_interval_seconds,
        )
        self.orchestrator = PriceListOrchestrator(
            self.client_cache,
            self.price_list_client,
            FetchPolicy(
                email_attempts=self.config.email_retry_attempts,
                code_attempts=self.config.code_retry_attempts,
                max_timeout_ms=self.config.max_timeout_ms,
                fallback_timeout_ms=self.config.fallback_timeout_ms,
                fallback_limit=self.config.fallback_limit,
                retry_base_delay=self.config.retry_base_delay,
            ),
            metrics=self.metrics,
            single_flight=self.config.single_flight,
        )
        self.visible_resolver = VisibleSkuResolver(
            self.client_cache,
            max_skus=self.config.max_visible_skus_per_request,
        )

        @self.app.on_event("startup")
        async def _startup():
            self.cache_sweeper.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.cache_sweeper.stop()

        self._setup_gateway_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _setup_gateway_routes(self):
        """Set up gateway-specific routes."""

        @self.app.get("/")
        async def root():
            return {
                "service": "gateway",
                "message": "Rodin Access Gateway",
                "timestamp": _format_iso(datetime.now(timezone.utc)),
            }

        @self.app.get("/api/clients")
        async def list_clients(
            page: int = Query(1, ge=1),
            client: Optional[str] = Query(None),
            date: Optional[str] = Query(None),
        ):
            """List Rodin customers."""
            clients = await self.clients_client.list_clients(page=page, client=client, date=date)
            return {"clients": clients, "page": page, "count": len(clients)}

        # Declared before the parametrised routes so "stats" is not taken as a client id
        @self.app.get("/api/price-lists/stats")
        async def price_list_stats():
            """Cache statistics and endpoint catalog."""
            return {
                "system": {
                    "timestamp": _format_iso(datetime.now(timezone.utc)),
                    "uptime_minutes": int(self._get_uptime() // 60),
                },
                "cache": {
                    **self.client_cache.stats(),
                    "sweep_interval_seconds": self.cache_sweeper.interval_seconds,
                    "sweeper_running": self.cache_sweeper.running,
                },
                "circuit_breaker": self.circuit_breaker.get_state(),
                "endpoints": [
                    {
                        "name": "full",
                        "description": "Every product of a client, cached per client",
                        "url": "/api/price-lists/{client_id}",
                    },
                    {
                        "name": "visible",
                        "description": "Prices for the SKUs visible in the viewport, cache only",
                        "url": "/api/price-lists/{client_id}/visible?skus=SKU1,SKU2",
                    },
                    {
                        "name": "page (legacy)",
                        "description": "Paginated passthrough to Rodin",
                        "url": "/api/price-lists/{client_id}/page?limit=50",
                    },
                ],
            }

        @self.app.get("/api/price-lists/{client_id}")
        async def get_price_list(
            client_id: str,
            force_refresh: bool = Query(False),
            format: str = Query("optimized"),
            timeout_ms: Optional[int] = Query(None),
        ):
            """Full price list for a client code or email."""
            set_client_context(client_id)
            return await self.orchestrator.fetch_price_list(
                client_id,
                force_refresh=force_refresh,
                fmt=format,
                timeout_ms=timeout_ms or self.config.default_timeout_ms,
            )

        @self.app.get("/api/price-lists/{client_id}/visible")
        async def get_visible_prices(client_id: str, skus: Optional[str] = Query(None)):
            """Prices for visible SKUs, served from the cached price index."""
            set_client_context(client_id)
            result = self.visible_resolver.resolve_visible(client_id, skus)
            result["timestamp"] = _format_iso(datetime.now(timezone.utc))
            return result

        @self.app.get("/api/price-lists/{client_id}/page")
        async def get_price_list_page(
            client_id: str,
            page: int = Query(1, ge=1),
            limit: int = Query(50, ge=1),
        ):
            """Legacy paginated passthrough; bypasses the cache."""
            client_id = require_client_id(client_id)
            set_client_context(client_id)
            effective_limit = min(limit, LEGACY_MAX_PAGE_LIMIT)
            products = await self.price_list_client.get_price_list(
                client_id,
                page=page,
                limit=effective_limit,
                timeout=self.config.default_timeout_ms / 1000.0,
            )
            products = normalize_payload(products).products
            return {
                "client_id": client_id,
                "page": page,
                "limit": effective_limit,
                "price_list": products,
                "total_products": len(products),
                "metadata": {
                    "endpoint": "legacy",
                    "recommendation": "Use /api/price-lists/{client_id} for cached, optimized delivery",
                },
            }

        @self.app.delete("/api/price-lists/{client_id}/cache")
        async def invalidate_price_list(client_id: str):
            """Drop the cached price list of a client."""
            client_id = require_client_id(client_id)
            deleted = self.client_cache.delete(client_id)
            return {"client_id": client_id, "deleted": deleted}

    async def _check_dependencies(self) -> Dict[str, Any]:
        return {
            "client_cache": "ok",
            "rodin_api": "degraded" if self.circuit_breaker.is_open() else "ok",
        }


def _format_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def create_app():
    """Create FastAPI application."""
    service = GatewayService()
    return service.app


if __name__ == "__main__":
    service = GatewayService()
    service.run()
