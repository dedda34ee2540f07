"""
API Gateway Service package for the Rodin B2B backend.

The gateway fronts storefront requests for customer and price-list data:
- Price lists: per-client in-memory cache with TTL and hit-aware eviction
- Upstream resilience: retries, reduced-scope fallback and circuit breaking
- Visible SKUs: O(1) lookups against the cached price index

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.adapters: HTTP clients for the Rodin API.
- app.caching: Client cache and periodic sweeper.
- app.pricing: Optimizer, normalizer, fetch strategy, orchestrator, resolver.
"""
