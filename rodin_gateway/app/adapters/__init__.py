"""
Adapters package for the Gateway Service.

HTTP client wrappers for the Rodin B2B API (token login, customers,
price lists). Adapters own request shapes, circuit breaking and the
mapping of upstream statuses onto shared errors; retries are driven by
the price-list fetch strategy.
"""

from .auth_client import RodinAuthClient
from .clients_client import RodinClientsClient
from .price_list_client import RodinPriceListClient

__all__ = [
    "RodinAuthClient",
    "RodinClientsClient",
    "RodinPriceListClient",
]
