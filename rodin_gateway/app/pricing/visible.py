"""
Visible-SKU resolver: prices for the SKUs currently on screen, served only
from the cached price index. Never calls upstream.
"""

from typing import Any, Dict, List, Optional, Sequence, Union

from shared.errors import ValidationError
from shared.logging import get_logger

from ..caching.client_cache import ClientCache
from .models import require_client_id

MAX_VISIBLE_SKUS_PER_REQUEST = 100
NOT_CACHED_ADVISORY = "Client not cached, call the full price-list endpoint first"
NOT_IN_INDEX_ADVISORY = "SKU not present in the cached price list"
INDEX_UNAVAILABLE_ADVISORY = "Cached price list has no SKU index, refetch it with format=optimized"


class VisibleSkuResolver:

    def __init__(self, cache: ClientCache, max_skus: int = MAX_VISIBLE_SKUS_PER_REQUEST):
        self.cache = cache
        self.max_skus = max_skus
        self.logger = get_logger("gateway.visible_skus")

    def resolve_visible(self, client_id: Optional[str], skus: Union[str, Sequence[str], None]) -> Dict[str, Any]:
        client_id = require_client_id(client_id)
        requested = parse_skus(skus, self.max_skus)

        payload = self.cache.get(client_id)
        index = payload.price_index if payload is not None else None

        found: List[Dict[str, Any]] = []
        not_found: List[Dict[str, str]] = []

        if index is not None:
            for sku in requested:
                entry = index.get(sku)
                if entry is None:
                    not_found.append({"sku": sku, "advisory": NOT_IN_INDEX_ADVISORY})
                    continue
                found.append({
                    "sku": sku,
                    "final_price": entry["final_price"],
                    "list_price": entry["list_price"],
                })
        else:
            advisory = NOT_CACHED_ADVISORY if payload is None else INDEX_UNAVAILABLE_ADVISORY
            not_found = [{"sku": sku, "advisory": advisory} for sku in requested]

        self.logger.info(
            "Visible SKUs resolved",
            client_id=client_id,
            requested=len(requested),
            found=len(found),
            cached=payload is not None,
        )

        if not requested or len(found) == len(requested):
            recommendation = "All SKUs found"
        elif payload is None:
            recommendation = NOT_CACHED_ADVISORY
        else:
            recommendation = "Some SKUs were not found. Check the codes or refresh the cache."

        return {
            "success": True,
            "client_id": client_id,
            "requested_count": len(requested),
            "found_count": len(found),
            "found": found,
            "not_found": not_found,
            "from_cache": payload is not None,
            "index_available": index is not None,
            "recommendation": recommendation,
        }


def parse_skus(skus: Union[str, Sequence[str], None], limit: int = MAX_VISIBLE_SKUS_PER_REQUEST) -> List[str]:
    """
    Accept a comma-separated string or a list of strings.

    Entries are trimmed, empties dropped and duplicates removed keeping the
    first occurrence; anything past ``limit`` is silently discarded.
    """
    if skus is None or (isinstance(skus, str) and not skus.strip()):
        raise ValidationError(
            "Parameter 'skus' is required",
            details={"example": "?skus=10001,10002,10003"},
        )

    if isinstance(skus, str):
        items = skus.split(",")
    elif isinstance(skus, (list, tuple)):
        items = list(skus)
    else:
        raise ValidationError("skus must be a list of strings or a comma-separated string")

    unique: List[str] = []
    seen = set()
    for item in items:
        if not isinstance(item, str):
            raise ValidationError("Every SKU must be a string", details={"invalid": repr(item)})
        sku = item.strip()
        if not sku or sku in seen:
            continue
        seen.add(sku)
        unique.append(sku)
        if len(unique) == limit:
            break
    return unique
