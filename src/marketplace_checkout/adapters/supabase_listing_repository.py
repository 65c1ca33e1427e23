"""Supabase repository for listing stock."""

from dataclasses import dataclass
from datetime import datetime

from supabase import Client

from marketplace_checkout.domain.listings import ListingStock, stock_quantity
from marketplace_checkout.services.inventory import ListingRepository


@dataclass
class SupabaseListingRepository(ListingRepository):
    """Supabase implementation for listing stock reads and updates."""

    client: Client

    def get_listing(self, listing_id: str) -> ListingStock | None:
        """Return a listing's quantity and status."""
        response = (
            self.client.table("listings")
            .select("id, quantity, status")
            .eq("id", listing_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_listing(response.data[0])

    def list_listings(self, listing_ids: list[str]) -> list[ListingStock]:
        """Return listings with their seller, across both seller layouts."""
        response = (
            self.client.table("listings")
            .select("*")
            .in_("id", listing_ids)
            .execute()
        )
        return [_to_listing(row) for row in response.data or []]

    def update_stock(
        self,
        listing_id: str,
        quantity: int,
        status: str,
        marked_sold_at: datetime | None,
    ) -> None:
        """Write the new quantity and status."""
        update: dict[str, object] = {"quantity": quantity, "status": status}
        if marked_sold_at is not None:
            update["marked_sold_at"] = marked_sold_at.isoformat()
        self.client.table("listings").update(update).eq("id", listing_id).execute()


def _to_listing(row: dict[str, object]) -> ListingStock:
    # Legacy listings carry the seller in owner_id.
    seller_id = row.get("seller_id") or row.get("owner_id")
    return ListingStock(
        id=str(row["id"]),
        quantity=stock_quantity(row.get("quantity")),
        status=row.get("status"),
        seller_id=str(seller_id) if seller_id else None,
    )
