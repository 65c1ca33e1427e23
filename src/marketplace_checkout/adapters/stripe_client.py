"""Stripe Checkout API client."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class PaymentGatewayError(RuntimeError):
    """Raised when the payment status could not be determined."""


@dataclass(frozen=True)
class PaymentStatus:
    """Payment state of a checkout session."""

    paid: bool


class PaymentGatewayClient(Protocol):
    """Interface for payment provider interactions."""

    async def fetch_payment_status(self, session_id: str) -> PaymentStatus:
        """Return whether the checkout session has been paid."""


@dataclass
class HttpxStripeClient(PaymentGatewayClient):
    """HTTPX-backed client for Stripe Checkout sessions."""

    secret_key: str
    base_url: str
    http_client: httpx.AsyncClient
    timeout: float = 10.0

    @classmethod
    def create(
        cls, secret_key: str, base_url: str, timeout: float = 10.0
    ) -> "HttpxStripeClient":
        """Create a Stripe client with a managed httpx session."""
        return cls(
            secret_key=secret_key,
            base_url=base_url,
            http_client=httpx.AsyncClient(),
            timeout=timeout,
        )

    async def fetch_payment_status(self, session_id: str) -> PaymentStatus:
        """Retrieve the checkout session and report its payment status."""
        url = f"{self.base_url}/checkout/sessions/{session_id}"
        try:
            response = await self.http_client.get(
                url,
                headers={"Authorization": f"Bearer {self.secret_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PaymentGatewayError(
                f"Failed to retrieve checkout session {session_id}"
            ) from exc
        return PaymentStatus(paid=data.get("payment_status") == "paid")

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
