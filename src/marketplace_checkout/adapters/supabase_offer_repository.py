"""Supabase repository for offers."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from marketplace_checkout.services.offers import OfferRepository


@dataclass
class SupabaseOfferRepository(OfferRepository):
    """Supabase implementation for offer status transitions."""

    client: Client

    def transition_status(self, offer_id: str, from_status: str, to_status: str) -> bool:
        """Update the offer status only when it matches from_status."""
        response = (
            self.client.table("offers")
            .update(
                {
                    "status": to_status,
                    "updated_at": datetime.now(tz=UTC).isoformat(),
                }
            )
            .eq("id", offer_id)
            .eq("status", from_status)
            .execute()
        )
        return bool(response.data)
