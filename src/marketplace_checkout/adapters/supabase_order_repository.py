"""Supabase repository for orders."""

from dataclasses import dataclass

from supabase import Client

from marketplace_checkout.domain.checkout import (
    CheckoutTotals,
    ShippingAddress,
    shipping_address_to_json,
)
from marketplace_checkout.domain.orders import OrderLine
from marketplace_checkout.services.orders import OrderRepository

ORDER_STATUS_CONFIRMED = "confirmed"


@dataclass
class SupabaseOrderRepository(OrderRepository):
    """Supabase implementation for orders and order items."""

    client: Client

    def find_order_id(self, checkout_session_id: str) -> str | None:
        """Return the order id recorded for a checkout session, if any."""
        response = (
            self.client.table("orders")
            .select("id")
            .eq("checkout_session_id", checkout_session_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return str(response.data[0]["id"])

    def create_order(
        self,
        checkout_session_id: str,
        user_id: str,
        shipping_method: str,
        shipping_address: ShippingAddress | None,
        totals: CheckoutTotals,
    ) -> str:
        """Create an order header row and return its id.

        orders.checkout_session_id is unique, so a second insert for the same
        session fails instead of creating a duplicate.
        """
        response = (
            self.client.table("orders")
            .insert(
                {
                    "checkout_session_id": checkout_session_id,
                    "buyer_id": user_id,
                    "items_subtotal": totals.items_subtotal,
                    "service_fee": totals.service_fee,
                    "shipping_cost": totals.shipping_cost,
                    "total": totals.total,
                    "shipping_method": shipping_method,
                    "shipping_address": shipping_address_to_json(shipping_address),
                    "status": ORDER_STATUS_CONFIRMED,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create order")
        return str(response.data[0]["id"])

    def create_order_items(self, order_id: str, lines: list[OrderLine]) -> None:
        """Create order item rows."""
        payload = [
            {
                "order_id": order_id,
                "listing_id": line.listing_id,
                "seller_id": line.seller_id,
                "seller_name": line.seller_name,
                "title": line.title,
                "image": line.image,
                "price": line.price,
                "quantity": line.quantity,
            }
            for line in lines
        ]
        response = self.client.table("order_items").insert(payload).execute()
        if not response.data:
            raise RuntimeError("Failed to create order items")

    def delete_order(self, order_id: str) -> None:
        """Delete an order header row."""
        self.client.table("orders").delete().eq("id", order_id).execute()
