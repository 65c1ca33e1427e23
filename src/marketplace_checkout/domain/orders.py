"""Domain models for orders."""

from dataclasses import dataclass

ORDER_REF_PREFIX = "MS-"


@dataclass(frozen=True)
class OrderRecord:
    """Identifiers of a newly created order."""

    order_id: str
    order_ref: str


@dataclass(frozen=True)
class OrderLine:
    """Order item row ready to be persisted."""

    listing_id: str
    seller_id: str | None
    seller_name: str
    title: str
    image: str | None
    price: float
    quantity: int
