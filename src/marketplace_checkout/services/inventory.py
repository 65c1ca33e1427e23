"""Listing stock reconciliation after an order is placed."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from marketplace_checkout.domain.checkout import CheckoutItem
from marketplace_checkout.domain.listings import (
    LISTING_ACTIVE,
    LISTING_SOLD,
    ListingStock,
    stock_quantity,
)

logger = logging.getLogger(__name__)

MIN_ORDER_QUANTITY = 1
MAX_ORDER_QUANTITY = 99


class ListingRepository(Protocol):
    """Persistence interface for listing stock."""

    def get_listing(self, listing_id: str) -> ListingStock | None:
        """Return the listing stock row, if present."""

    def list_listings(self, listing_ids: list[str]) -> list[ListingStock]:
        """Return stock rows for the given listing ids."""

    def update_stock(
        self,
        listing_id: str,
        quantity: int,
        status: str,
        marked_sold_at: datetime | None,
    ) -> None:
        """Persist the new quantity and status of a listing."""


@dataclass(frozen=True)
class StockChange:
    """Computed stock update for a single listing."""

    quantity: int
    status: str
    marked_sold_at: datetime | None


@dataclass
class InventoryService:
    """Decrements listing stock for ordered items."""

    repository: ListingRepository

    def sync_inventory(self, items: list[CheckoutItem]) -> None:
        """Apply ordered quantities to listing stock.

        Failures are logged per listing and never raised: the order is the
        authoritative record and stock is reconciled on a best-effort basis.
        """
        for item in items:
            try:
                self._apply_item(item)
            except Exception:
                logger.exception(
                    "Stock decrement failed",
                    extra={"listing_id": item.listing_id},
                )

    def _apply_item(self, item: CheckoutItem) -> None:
        listing = self.repository.get_listing(item.listing_id)
        if listing is None:
            logger.warning(
                "Listing missing during stock sync",
                extra={"listing_id": item.listing_id},
            )
            return
        change = compute_stock_change(
            listing, clamp_quantity(item.quantity), now=datetime.now(tz=UTC)
        )
        self.repository.update_stock(
            listing.id,
            quantity=change.quantity,
            status=change.status,
            marked_sold_at=change.marked_sold_at,
        )


def clamp_quantity(quantity: object) -> int:
    """Clamp an ordered quantity to the supported range."""
    try:
        value = int(float(quantity))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return MIN_ORDER_QUANTITY
    return max(MIN_ORDER_QUANTITY, min(MAX_ORDER_QUANTITY, value))


def compute_stock_change(
    listing: ListingStock, ordered_quantity: int, now: datetime
) -> StockChange:
    """Return the stock update for a listing after an order."""
    current = stock_quantity(listing.quantity)
    if current is None:
        current = 1
    next_quantity = max(0, current - ordered_quantity)
    if next_quantity == 0:
        return StockChange(quantity=0, status=LISTING_SOLD, marked_sold_at=now)
    status = listing.status or LISTING_ACTIVE
    if status == LISTING_SOLD:
        status = LISTING_ACTIVE
    return StockChange(quantity=next_quantity, status=status, marked_sold_at=None)
