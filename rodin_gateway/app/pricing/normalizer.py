"""
Normalization of heterogeneous upstream price-list payloads.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

ENVELOPE_KEYS = ("price_list", "lista_precios")


class PayloadShape(str, Enum):
    SEQUENCE = "sequence"
    ENVELOPE = "envelope"
    UNPARSEABLE = "unparseable"


@dataclass
class NormalizedPayload:
    shape: PayloadShape
    products: List[Any] = field(default_factory=list)

    @property
    def total_products(self) -> int:
        return len(self.products)


def normalize_payload(raw: Any) -> NormalizedPayload:
    """
    Classify an upstream result and extract its product list.

    Accepted shapes: a bare list, a mapping carrying the list under
    ``price_list`` or ``lista_precios``, or either of those JSON-encoded
    in a string. Anything else is UNPARSEABLE with no products; that is a
    valid zero-product outcome, not an error.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return NormalizedPayload(PayloadShape.UNPARSEABLE)

    if isinstance(raw, list):
        return NormalizedPayload(PayloadShape.SEQUENCE, list(raw))

    if isinstance(raw, dict):
        products = _envelope_products(raw)
        if products is not None:
            return NormalizedPayload(PayloadShape.ENVELOPE, products)

    return NormalizedPayload(PayloadShape.UNPARSEABLE)


def _envelope_products(envelope: Dict[str, Any]):
    for key in ENVELOPE_KEYS:
        products = envelope.get(key)
        if isinstance(products, list):
            return list(products)
    return None
