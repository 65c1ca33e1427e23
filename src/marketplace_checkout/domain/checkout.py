"""Domain models for checkout sessions and finalize outcomes."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

SHIPPING_METHODS = {"standard", "collection"}


class CheckoutPayloadError(ValueError):
    """Raised when a stored cart snapshot cannot be parsed."""


class InvalidCheckoutSessionError(CheckoutPayloadError):
    """Raised when a stored session row carries an unusable cart snapshot."""

    def __init__(self, session_id: str, user_id: str) -> None:
        super().__init__(f"Checkout session {session_id} has an invalid payload")
        self.session_id = session_id
        self.user_id = user_id


@dataclass(frozen=True)
class CheckoutItem:
    """A single line of the cart snapshot."""

    listing_id: str
    title: str
    price: float
    quantity: int
    seller_id: str | None = None
    seller_name: str | None = None
    image: str | None = None


@dataclass(frozen=True)
class ShippingAddress:
    """Delivery address captured at checkout."""

    full_name: str
    email: str
    line1: str
    city: str
    postcode: str
    line2: str | None = None


@dataclass(frozen=True)
class CheckoutTotals:
    """Totals computed when the checkout began."""

    items_subtotal: float
    service_fee: float
    shipping_cost: float
    total: float


@dataclass(frozen=True)
class CheckoutPayload:
    """Immutable cart snapshot stored with a checkout session."""

    items: list[CheckoutItem]
    shipping_method: str
    shipping_address: ShippingAddress | None
    totals: CheckoutTotals
    offer_id: str | None = None


@dataclass(frozen=True)
class CheckoutSessionRecord:
    """Represents a persisted checkout session row."""

    session_id: str
    user_id: str
    payload: CheckoutPayload
    consumed_at: datetime | None
    order_id: str | None

    @property
    def is_locked(self) -> bool:
        return self.consumed_at is not None

    @property
    def is_finalized(self) -> bool:
        return self.consumed_at is not None and self.order_id is not None


@dataclass(frozen=True)
class CheckoutSummary:
    """Order summary returned to callers after a successful finalize."""

    order_id: str
    order_ref: str
    items: list[CheckoutItem]
    totals: CheckoutTotals
    shipping_method: str
    shipping_address: ShippingAddress | None = None
    include_shipping_address: bool = False


class FinalizeState(StrEnum):
    """Terminal states of a finalize attempt."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    NOT_PAID = "not_paid"
    PROCESSING = "processing"
    OK_REUSED = "ok_reused"
    OK_NEW = "ok_new"
    ERROR = "error"


@dataclass(frozen=True)
class FinalizeOutcome:
    """Result of finalizing a checkout session."""

    state: FinalizeState
    summary: CheckoutSummary | None = None
    retry_after_ms: int | None = None
    error: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.state in {FinalizeState.OK_NEW, FinalizeState.OK_REUSED}

    @property
    def reused(self) -> bool:
        return self.state == FinalizeState.OK_REUSED


def parse_checkout_payload(raw: object) -> CheckoutPayload:
    """Build a cart snapshot from the stored JSON payload."""
    if not isinstance(raw, dict):
        raise CheckoutPayloadError("Checkout payload must be an object")
    raw_items = raw.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise CheckoutPayloadError("Checkout payload has no items")
    items = [_parse_item(item) for item in raw_items]

    shipping_method = raw.get("shipping_method") or "standard"
    if shipping_method not in SHIPPING_METHODS:
        raise CheckoutPayloadError(f"Unknown shipping method: {shipping_method}")

    raw_totals = raw.get("totals")
    if not isinstance(raw_totals, dict):
        raise CheckoutPayloadError("Checkout payload has no totals")
    try:
        totals = CheckoutTotals(
            items_subtotal=float(raw_totals.get("itemsSubtotal", 0)),
            service_fee=float(raw_totals.get("serviceFee", 0)),
            shipping_cost=float(raw_totals.get("shippingCost", 0)),
            total=float(raw_totals["total"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise CheckoutPayloadError("Checkout totals are invalid") from exc

    offer_id = raw.get("offer_id")
    return CheckoutPayload(
        items=items,
        shipping_method=shipping_method,
        shipping_address=_parse_address(raw.get("shipping_address")),
        totals=totals,
        offer_id=str(offer_id) if offer_id else None,
    )


def checkout_item_to_json(item: CheckoutItem) -> dict[str, object]:
    return {
        "listing_id": item.listing_id,
        "title": item.title,
        "price": item.price,
        "quantity": item.quantity,
        "seller_id": item.seller_id,
        "seller_name": item.seller_name,
        "image": item.image,
    }


def checkout_totals_to_json(totals: CheckoutTotals) -> dict[str, float]:
    return {
        "itemsSubtotal": totals.items_subtotal,
        "serviceFee": totals.service_fee,
        "shippingCost": totals.shipping_cost,
        "total": totals.total,
    }


def shipping_address_to_json(
    address: ShippingAddress | None,
) -> dict[str, object] | None:
    if address is None:
        return None
    data: dict[str, object] = {
        "fullName": address.full_name,
        "email": address.email,
        "line1": address.line1,
        "city": address.city,
        "postcode": address.postcode,
    }
    if address.line2:
        data["line2"] = address.line2
    return data


def _parse_item(raw: object) -> CheckoutItem:
    if not isinstance(raw, dict) or not raw.get("listing_id"):
        raise CheckoutPayloadError("Checkout item is missing a listing id")
    try:
        price = float(raw.get("price", 0))
    except (TypeError, ValueError) as exc:
        raise CheckoutPayloadError("Checkout item price is invalid") from exc
    try:
        quantity = int(float(raw.get("quantity") or 1))
    except (TypeError, ValueError, OverflowError):
        quantity = 1
    return CheckoutItem(
        listing_id=str(raw["listing_id"]),
        title=str(raw.get("title") or ""),
        price=price,
        quantity=quantity,
        seller_id=raw.get("seller_id"),
        seller_name=raw.get("seller_name"),
        image=raw.get("image"),
    )


def _parse_address(raw: object) -> ShippingAddress | None:
    if not isinstance(raw, dict):
        return None
    return ShippingAddress(
        full_name=str(raw.get("fullName", "")),
        email=str(raw.get("email", "")),
        line1=str(raw.get("line1", "")),
        city=str(raw.get("city", "")),
        postcode=str(raw.get("postcode", "")),
        line2=raw.get("line2") or None,
    )
