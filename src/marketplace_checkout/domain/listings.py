"""Listing stock models."""

import math
from dataclasses import dataclass

LISTING_SOLD = "sold"
LISTING_ACTIVE = "active"


@dataclass(frozen=True)
class ListingStock:
    """Current quantity and status of a listing."""

    id: str
    quantity: int | None
    status: str | None
    seller_id: str | None = None


def stock_quantity(value: object) -> int | None:
    """Return a stored quantity as a whole number, or None when it is unusable.

    Numeric columns may come back as floats (5.0); booleans are not quantities.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return math.floor(value)
