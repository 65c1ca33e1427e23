"""Stripe webhook signature verification."""

from dataclasses import dataclass
from typing import Protocol

import stripe


class WebhookSignatureError(ValueError):
    """Raised when a webhook payload fails signature verification."""


@dataclass(frozen=True)
class WebhookEvent:
    """Verified payment provider event."""

    id: str
    type: str
    object_id: str | None


class WebhookVerifier(Protocol):
    """Interface for verifying payment provider webhooks."""

    def verify(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify a webhook payload and return the parsed event."""


@dataclass
class StripeWebhookVerifier(WebhookVerifier):
    """Verifies webhooks with the Stripe SDK."""

    webhook_secret: str

    def verify(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify the Stripe-Signature header and parse the event."""
        try:
            event = stripe.Webhook.construct_event(
                payload, signature, self.webhook_secret
            )
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError("Invalid webhook signature") from exc
        except ValueError as exc:
            raise WebhookSignatureError("Invalid webhook payload") from exc
        try:
            object_id = event["data"]["object"]["id"]
        except KeyError:
            object_id = None
        return WebhookEvent(
            id=str(event["id"]),
            type=str(event["type"]),
            object_id=str(object_id) if object_id else None,
        )
