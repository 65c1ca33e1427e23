"""Supabase-backed checkout session repository."""

from dataclasses import dataclass
from datetime import datetime

from supabase import Client

from marketplace_checkout.domain.checkout import (
    CheckoutPayloadError,
    CheckoutSessionRecord,
    InvalidCheckoutSessionError,
    parse_checkout_payload,
)
from marketplace_checkout.services.checkout import CheckoutSessionRepository

_TABLE = "checkout_sessions"


@dataclass
class SupabaseCheckoutSessionRepository(CheckoutSessionRepository):
    """Supabase implementation for checkout sessions."""

    client: Client

    def get_session(self, session_id: str) -> CheckoutSessionRecord | None:
        """Return a checkout session by id, if present."""
        response = (
            self.client.table(_TABLE)
            .select("session_id, user_id, payload, consumed_at, order_id")
            .eq("session_id", session_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        try:
            payload = parse_checkout_payload(row.get("payload"))
        except CheckoutPayloadError as exc:
            raise InvalidCheckoutSessionError(
                str(row["session_id"]), str(row["user_id"])
            ) from exc
        return CheckoutSessionRecord(
            session_id=row["session_id"],
            user_id=str(row["user_id"]),
            payload=payload,
            consumed_at=_parse_timestamp(row.get("consumed_at")),
            order_id=str(row["order_id"]) if row.get("order_id") else None,
        )

    def try_lock(self, session_id: str, locked_at: datetime) -> bool:
        """Set consumed_at only where it is null."""
        response = (
            self.client.table(_TABLE)
            .update({"consumed_at": locked_at.isoformat()})
            .eq("session_id", session_id)
            .is_("consumed_at", "null")
            .execute()
        )
        return bool(response.data)

    def record_order(self, session_id: str, order_id: str) -> bool:
        """Set order_id only where it is null."""
        response = (
            self.client.table(_TABLE)
            .update({"order_id": order_id})
            .eq("session_id", session_id)
            .is_("order_id", "null")
            .execute()
        )
        return bool(response.data)

    def release_lock(self, session_id: str, locked_at: datetime) -> bool:
        """Clear consumed_at only if this caller's lock is still in place."""
        response = (
            self.client.table(_TABLE)
            .update({"consumed_at": None})
            .eq("session_id", session_id)
            .eq("consumed_at", locked_at.isoformat())
            .is_("order_id", "null")
            .execute()
        )
        return bool(response.data)

    def reclaim_lock(
        self, session_id: str, stale_locked_at: datetime, locked_at: datetime
    ) -> bool:
        """Swap a stale consumed_at for a fresh one if no order exists."""
        response = (
            self.client.table(_TABLE)
            .update({"consumed_at": locked_at.isoformat()})
            .eq("session_id", session_id)
            .eq("consumed_at", stale_locked_at.isoformat())
            .is_("order_id", "null")
            .execute()
        )
        return bool(response.data)


def _parse_timestamp(value: object) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value))
