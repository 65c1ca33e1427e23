"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from marketplace_checkout.adapters.stripe_client import HttpxStripeClient
from marketplace_checkout.adapters.stripe_webhook import (
    StripeWebhookVerifier,
    WebhookVerifier,
)
from marketplace_checkout.adapters.supabase_auth_provider import (
    AuthProvider,
    SupabaseAuthProvider,
)
from marketplace_checkout.adapters.supabase_checkout_session_repository import (
    SupabaseCheckoutSessionRepository,
)
from marketplace_checkout.adapters.supabase_listing_repository import (
    SupabaseListingRepository,
)
from marketplace_checkout.adapters.supabase_offer_repository import (
    SupabaseOfferRepository,
)
from marketplace_checkout.adapters.supabase_order_repository import (
    SupabaseOrderRepository,
)
from marketplace_checkout.config import Settings
from marketplace_checkout.services.checkout import CheckoutService
from marketplace_checkout.services.inventory import InventoryService
from marketplace_checkout.services.offers import OfferService
from marketplace_checkout.services.orders import OrderService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    auth_provider: AuthProvider
    webhook_verifier: WebhookVerifier
    checkout_service: CheckoutService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    listing_repository = SupabaseListingRepository(supabase_client)
    order_service = OrderService(
        repository=SupabaseOrderRepository(supabase_client),
        listing_repository=listing_repository,
    )
    stripe_client = HttpxStripeClient.create(
        secret_key=resolved_settings.stripe_secret_key,
        base_url=resolved_settings.stripe_api_base,
        timeout=resolved_settings.payment_status_timeout_seconds,
    )
    checkout_service = CheckoutService(
        session_repository=SupabaseCheckoutSessionRepository(supabase_client),
        payment_client=stripe_client,
        order_service=order_service,
        inventory_service=InventoryService(listing_repository),
        offer_service=OfferService(SupabaseOfferRepository(supabase_client)),
        retry_after_ms=resolved_settings.checkout_retry_after_ms,
        lock_ttl_seconds=resolved_settings.checkout_lock_ttl_seconds,
    )

    async def close_resources() -> None:
        await stripe_client.close()

    return AppContainer(
        settings=resolved_settings,
        auth_provider=SupabaseAuthProvider(supabase_client),
        webhook_verifier=StripeWebhookVerifier(
            resolved_settings.stripe_webhook_secret
        ),
        checkout_service=checkout_service,
        close_resources=close_resources,
    )
