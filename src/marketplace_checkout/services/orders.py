"""Order creation from checkout snapshots."""

import logging
from dataclasses import dataclass
from typing import Protocol

from marketplace_checkout.domain.checkout import (
    CheckoutItem,
    CheckoutTotals,
    ShippingAddress,
)
from marketplace_checkout.domain.orders import ORDER_REF_PREFIX, OrderLine, OrderRecord
from marketplace_checkout.services.inventory import ListingRepository

logger = logging.getLogger(__name__)

UNKNOWN_SELLER_NAME = "Unknown"


class OrderCreationError(RuntimeError):
    """Raised when an order or its items could not be persisted."""


class OrderRepository(Protocol):
    """Persistence interface for orders."""

    def find_order_id(self, checkout_session_id: str) -> str | None:
        """Return the id of the order created for a checkout session, if any."""

    def create_order(
        self,
        checkout_session_id: str,
        user_id: str,
        shipping_method: str,
        shipping_address: ShippingAddress | None,
        totals: CheckoutTotals,
    ) -> str:
        """Insert an order header and return its id.

        At most one order may exist per checkout session.
        """

    def create_order_items(self, order_id: str, lines: list[OrderLine]) -> None:
        """Insert the line items of an order."""

    def delete_order(self, order_id: str) -> None:
        """Remove an order header."""


@dataclass
class OrderService:
    """Creates the durable order aggregate for a checkout."""

    repository: OrderRepository
    listing_repository: ListingRepository

    def find_order(self, checkout_session_id: str) -> OrderRecord | None:
        """Return the order already created for a checkout session, if any."""
        order_id = self.repository.find_order_id(checkout_session_id)
        if order_id is None:
            return None
        return OrderRecord(order_id=order_id, order_ref=format_order_ref(order_id))

    def create_order(  # noqa: PLR0913
        self,
        checkout_session_id: str,
        user_id: str,
        items: list[CheckoutItem],
        shipping_method: str,
        shipping_address: ShippingAddress | None,
        totals: CheckoutTotals,
    ) -> OrderRecord:
        """Persist the order header and items and return its identifiers.

        Callers must hold the checkout session lock.
        """
        lines = self._build_lines(items)
        try:
            order_id = self.repository.create_order(
                checkout_session_id=checkout_session_id,
                user_id=user_id,
                shipping_method=shipping_method,
                shipping_address=shipping_address,
                totals=totals,
            )
        except Exception as exc:
            raise OrderCreationError("Failed to create order") from exc

        try:
            self.repository.create_order_items(order_id, lines)
        except Exception as exc:
            logger.warning(
                "Order items insert failed, removing order",
                extra={"order_id": order_id},
            )
            self.repository.delete_order(order_id)
            raise OrderCreationError("Failed to create order items") from exc

        return OrderRecord(order_id=order_id, order_ref=format_order_ref(order_id))

    def _build_lines(self, items: list[CheckoutItem]) -> list[OrderLine]:
        sellers = self._backfill_sellers(
            [item.listing_id for item in items if not item.seller_id]
        )
        return [
            OrderLine(
                listing_id=item.listing_id,
                seller_id=item.seller_id or sellers.get(item.listing_id),
                seller_name=item.seller_name or UNKNOWN_SELLER_NAME,
                title=item.title,
                image=item.image or None,
                price=item.price,
                quantity=item.quantity,
            )
            for item in items
        ]

    def _backfill_sellers(self, listing_ids: list[str]) -> dict[str, str]:
        if not listing_ids:
            return {}
        try:
            listings = self.listing_repository.list_listings(listing_ids)
        except Exception:
            logger.warning(
                "Seller lookup failed", extra={"listing_ids": listing_ids}
            )
            return {}
        return {
            listing.id: listing.seller_id for listing in listings if listing.seller_id
        }


def format_order_ref(order_id: str) -> str:
    """Return the human-readable reference for an order id."""
    return f"{ORDER_REF_PREFIX}{str(order_id).split('-')[0].upper()}"
