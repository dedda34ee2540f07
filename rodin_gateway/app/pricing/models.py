"""
Shared types for the price-list pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from shared.errors import ValidationError


class PriceListFormat(str, Enum):
    """Delivery format requested by the storefront."""
    OPTIMIZED = "optimized"
    FULL = "full"


class ClientKind(str, Enum):
    """How a client identifier is resolved upstream."""
    CODE = "code"
    EMAIL = "email"

    @classmethod
    def classify(cls, client_id: str) -> "ClientKind":
        return cls.EMAIL if "@" in client_id else cls.CODE


@dataclass(frozen=True)
class OptimizedProduct:
    sku: str
    name: str
    final_price: float
    list_price: float

    @property
    def has_discount(self) -> bool:
        return self.list_price > self.final_price

    def as_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "name": self.name,
            "final_price": self.final_price,
            "list_price": self.list_price,
            "has_discount": self.has_discount,
        }

    def index_entry(self) -> Dict[str, Any]:
        return {
            "final_price": self.final_price,
            "list_price": self.list_price,
            "has_discount": self.has_discount,
        }


@dataclass
class OptimizedPriceData:
    """Optimizer output; ``price_index`` is None when no index was built."""

    price_list: List[Dict[str, Any]] = field(default_factory=list)
    price_index: Optional[Dict[str, Dict[str, Any]]] = field(default_factory=dict)
    total_products: int = 0
    has_discounts: bool = False
    optimizations: List[str] = field(default_factory=list)


def require_client_id(client_id: Optional[str]) -> str:
    """Strip ``client_id``; blank or missing identifiers are rejected."""
    if not isinstance(client_id, str) or not client_id.strip():
        raise ValidationError(
            "Client identifier required",
            details={"examples": ["K1024", "client@company.com"]},
        )
    return client_id.strip()
