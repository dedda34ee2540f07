"""
Price-list optimizer.

Turns raw Rodin price records (``articulo``, ``nombre``, ``precio_final``,
``precio_lista``) into the compact storefront representation plus a
SKU -> price index for O(1) lookups. Pure: no I/O, no shared state.
"""

from typing import Any, Dict, List, Union

from .models import OptimizedPriceData, OptimizedProduct, PriceListFormat

MAX_NAME_LENGTH = 80


def optimize(raw_products: Any, fmt: Union[PriceListFormat, str] = PriceListFormat.OPTIMIZED) -> OptimizedPriceData:
    """Optimize ``raw_products`` for delivery in ``fmt``.

    Anything that is not a non-empty list yields an empty result rather
    than an error. The ``full`` format passes records through untouched and
    produces no index (``price_index is None``).
    """
    fmt = PriceListFormat(fmt)

    if not isinstance(raw_products, list) or not raw_products:
        return OptimizedPriceData()

    if fmt is PriceListFormat.FULL:
        return OptimizedPriceData(
            price_list=list(raw_products),
            price_index=None,
            total_products=len(raw_products),
            has_discounts=any(_record_has_discount(record) for record in raw_products),
            optimizations=["full_format"],
        )

    price_list: List[Dict[str, Any]] = []
    price_index: Dict[str, Dict[str, Any]] = {}
    has_discounts = False

    for position, record in enumerate(raw_products):
        product = to_optimized_product(record, position)
        price_list.append(product.as_dict())
        price_index[product.sku] = product.index_entry()
        has_discounts = has_discounts or product.has_discount

    return OptimizedPriceData(
        price_list=price_list,
        price_index=price_index,
        total_products=len(price_list),
        has_discounts=has_discounts,
        optimizations=["name_truncation", "minimal_structure", "sku_index"],
    )


def to_optimized_product(record: Any, position: int) -> OptimizedProduct:
    """Map one raw record; a missing SKU becomes ``unknown_<position>``."""
    if not isinstance(record, dict):
        record = {}

    sku = record.get("articulo")
    sku = str(sku).strip() if sku is not None else ""
    name = record.get("nombre")

    return OptimizedProduct(
        sku=sku or f"unknown_{position}",
        name=str(name)[:MAX_NAME_LENGTH] if name else "",
        final_price=_to_price(record.get("precio_final")),
        list_price=_to_price(record.get("precio_lista")),
    )


def _record_has_discount(record: Any) -> bool:
    if not isinstance(record, dict):
        return False
    return _to_price(record.get("precio_lista")) > _to_price(record.get("precio_final"))


def _to_price(value: Any) -> float:
    # Rodin sends prices as numbers or numeric strings
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    if price != price or price < 0:  # NaN or negative
        return 0.0
    return price
