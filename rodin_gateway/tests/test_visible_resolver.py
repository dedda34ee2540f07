"""
Tests for cache-only visible SKU resolution.
"""

import pytest

from rodin_gateway.app.caching import ClientCache, PriceListPayload
from rodin_gateway.app.pricing.optimizer import optimize
from rodin_gateway.app.pricing.visible import (
    INDEX_UNAVAILABLE_ADVISORY,
    NOT_CACHED_ADVISORY,
    NOT_IN_INDEX_ADVISORY,
    VisibleSkuResolver,
    parse_skus,
)
from shared.errors import ValidationError


RAW_PRODUCTS = [
    {"articulo": "10001", "nombre": "Taladro", "precio_final": 850.0, "precio_lista": 1000.0},
    {"articulo": "10002", "nombre": "Brocas", "precio_final": 120.0, "precio_lista": 120.0},
]


def cache_with(client_id: str, fmt: str = "optimized") -> ClientCache:
    cache = ClientCache()
    optimized = optimize(RAW_PRODUCTS, fmt)
    cache.set(client_id, PriceListPayload(
        price_list=optimized.price_list,
        price_index=optimized.price_index,
        total_products=optimized.total_products,
        metadata={"source_format": fmt},
    ))
    return cache


class TestVisibleSkuResolver:
    """Test cases for VisibleSkuResolver."""

    def test_found_and_not_found(self):
        resolver = VisibleSkuResolver(cache_with("K1024"))

        result = resolver.resolve_visible("K1024", "10001, 99999")

        assert result["success"] is True
        assert result["requested_count"] == 2
        assert result["found_count"] == 1
        assert result["found"] == [{"sku": "10001", "final_price": 850.0, "list_price": 1000.0}]
        assert result["not_found"] == [{"sku": "99999", "advisory": NOT_IN_INDEX_ADVISORY}]
        assert result["from_cache"] is True
        assert result["index_available"] is True

    def test_uncached_client_never_calls_upstream(self):
        cache = ClientCache()
        resolver = VisibleSkuResolver(cache)

        result = resolver.resolve_visible("K1024", ["A", "B"])

        assert result["requested_count"] == 2
        assert result["found_count"] == 0
        assert result["from_cache"] is False
        assert all(item["advisory"] == NOT_CACHED_ADVISORY for item in result["not_found"])
        assert result["recommendation"] == NOT_CACHED_ADVISORY
        assert len(cache) == 0

    def test_full_format_entry_has_no_index(self):
        resolver = VisibleSkuResolver(cache_with("K1", fmt="full"))

        result = resolver.resolve_visible("K1", "10001")

        assert result["from_cache"] is True
        assert result["index_available"] is False
        assert result["not_found"][0]["advisory"] == INDEX_UNAVAILABLE_ADVISORY

    def test_all_found(self):
        resolver = VisibleSkuResolver(cache_with("K1"))

        result = resolver.resolve_visible("K1", ["10001", "10002"])

        assert result["found_count"] == 2
        assert result["recommendation"] == "All SKUs found"

    def test_counts_cache_hit(self):
        cache = cache_with("K1")
        resolver = VisibleSkuResolver(cache)

        resolver.resolve_visible("K1", "10001")

        assert cache.access_stats("K1").hit_count == 1

    def test_blank_client_id(self):
        resolver = VisibleSkuResolver(ClientCache())

        with pytest.raises(ValidationError):
            resolver.resolve_visible(" ", "10001")

    def test_missing_skus(self):
        resolver = VisibleSkuResolver(ClientCache())

        with pytest.raises(ValidationError):
            resolver.resolve_visible("K1", None)
        with pytest.raises(ValidationError):
            resolver.resolve_visible("K1", "  ")


class TestParseSkus:
    """Test cases for parse_skus()."""

    def test_trims_and_drops_empty(self):
        assert parse_skus(" A , ,B,") == ["A", "B"]

    def test_deduplicates_keeping_first_occurrence(self):
        assert parse_skus(["B", "A", "B", "C", "A"]) == ["B", "A", "C"]

    def test_caps_at_limit(self):
        skus = ",".join(str(i) for i in range(150))

        parsed = parse_skus(skus)

        assert len(parsed) == 100
        assert parsed[0] == "0"
        assert parsed[-1] == "99"

    def test_custom_limit(self):
        assert parse_skus(["A", "B", "C"], limit=2) == ["A", "B"]

    def test_only_separators_yields_empty_list(self):
        assert parse_skus(",,,") == []

    def test_non_string_items_rejected(self):
        with pytest.raises(ValidationError):
            parse_skus(["A", 5])

    def test_unsupported_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_skus(12345)
