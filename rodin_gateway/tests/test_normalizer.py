"""
Tests for upstream payload normalization.
"""

import json

from rodin_gateway.app.pricing.normalizer import PayloadShape, normalize_payload


PRODUCTS = [{"articulo": "1"}, {"articulo": "2"}]


class TestNormalizePayload:
    """Test cases for normalize_payload()."""

    def test_bare_list(self):
        result = normalize_payload(PRODUCTS)

        assert result.shape is PayloadShape.SEQUENCE
        assert result.products == PRODUCTS
        assert result.total_products == 2

    def test_envelope_with_price_list_key(self):
        result = normalize_payload({"client_code": "K1", "price_list": PRODUCTS})

        assert result.shape is PayloadShape.ENVELOPE
        assert result.products == PRODUCTS

    def test_envelope_with_lista_precios_key(self):
        result = normalize_payload({"lista_precios": PRODUCTS})

        assert result.shape is PayloadShape.ENVELOPE
        assert result.total_products == 2

    def test_json_encoded_list(self):
        result = normalize_payload(json.dumps(PRODUCTS))

        assert result.shape is PayloadShape.SEQUENCE
        assert result.products == PRODUCTS

    def test_json_encoded_envelope(self):
        result = normalize_payload(json.dumps({"lista_precios": PRODUCTS}))

        assert result.shape is PayloadShape.ENVELOPE

    def test_unparseable_text(self):
        result = normalize_payload("<html>Service unavailable</html>")

        assert result.shape is PayloadShape.UNPARSEABLE
        assert result.products == []

    def test_mapping_without_known_key(self):
        result = normalize_payload({"data": PRODUCTS})

        assert result.shape is PayloadShape.UNPARSEABLE
        assert result.total_products == 0

    def test_envelope_key_not_a_list(self):
        assert normalize_payload({"price_list": "oops"}).shape is PayloadShape.UNPARSEABLE

    def test_none_and_scalars(self):
        for raw in (None, 42, 3.5):
            assert normalize_payload(raw).shape is PayloadShape.UNPARSEABLE

    def test_empty_list_is_a_valid_sequence(self):
        result = normalize_payload([])

        assert result.shape is PayloadShape.SEQUENCE
        assert result.total_products == 0
