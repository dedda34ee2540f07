"""
Price-list pipeline: normalize upstream payloads, optimize them for the
storefront, orchestrate cache and upstream, and resolve visible SKUs.
"""

from .models import ClientKind, PriceListFormat
from .optimizer import optimize
from .orchestrator import PriceListOrchestrator
from .strategy import FetchPolicy
from .visible import VisibleSkuResolver

__all__ = [
    "ClientKind",
    "FetchPolicy",
    "PriceListFormat",
    "PriceListOrchestrator",
    "VisibleSkuResolver",
    "optimize",
]
