"""
app/services/weight_service.py

Purpose: Shippable weight calculation

- Unit weight is the catalog product's packing weight in grams (0 if unknown)
- Items at or above the bulk threshold ship in their own packaging and
  do not count towards the packaging surcharge
- Surcharge: 1000 g for every full 10000 g of eligible weight
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Union

from app.core.logging import get_logger
from app.db.mongo import get_products_collection
from utils.constants import (
    BULK_ITEM_WEIGHT_THRESHOLD,
    PACKAGING_ALLOWANCE_PER_STEP,
    PACKAGING_STEP_WEIGHT,
)

logger = get_logger(__name__)

Number = Union[int, float]


@dataclass(frozen=True)
class WeightBreakdown:
    total_weight: Number
    eligible_weight: Number
    extra_packaging_weight: int

    @property
    def total_weight_with_packaging(self) -> Number:
        return self.total_weight + self.extra_packaging_weight


def packaging_surcharge(eligible_weight: Number) -> int:
    """
    >>> packaging_surcharge(12000)
    1000
    >>> packaging_surcharge(9999)
    0
    """
    if eligible_weight <= 0:
        return 0
    return int(eligible_weight // PACKAGING_STEP_WEIGHT) * PACKAGING_ALLOWANCE_PER_STEP


def compute_weight(
    lines: Iterable[Mapping],
    unit_weights: Mapping[str, Number],
) -> WeightBreakdown:
    """
    Pure weight computation over (product_id, quantity) lines.

    Args:
        lines: Mappings with product_id and quantity
        unit_weights: product_id -> packing weight in grams

    Returns:
        WeightBreakdown with total, eligible and surcharge
    """
    total = 0
    eligible = 0

    for line in lines:
        quantity = line.get("quantity") or 0
        unit = unit_weights.get(line.get("product_id")) or 0

        total += unit * quantity
        if unit < BULK_ITEM_WEIGHT_THRESHOLD:
            eligible += unit * quantity

    return WeightBreakdown(
        total_weight=total,
        eligible_weight=eligible,
        extra_packaging_weight=packaging_surcharge(eligible),
    )


async def get_unit_weights(product_ids: List[str]) -> Dict[str, Number]:
    """
    Looks up packing weights for the given products in the catalog store.
    """
    if not product_ids:
        return {}

    products = get_products_collection()
    cursor = products.find(
        {"_id": {"$in": list(set(product_ids))}},
        {"packing_weight": 1},
    )
    return {doc["_id"]: doc.get("packing_weight") or 0 async for doc in cursor}


async def calculate_shipping_weight(lines: List[Mapping]) -> WeightBreakdown:
    """
    Computes the shippable weight (with packaging) for cart or request lines.
    """
    weights = await get_unit_weights([line.get("product_id") for line in lines])
    breakdown = compute_weight(lines, weights)

    logger.debug(
        f"Weight: total={breakdown.total_weight} eligible={breakdown.eligible_weight} "
        f"extra={breakdown.extra_packaging_weight}"
    )
    return breakdown
