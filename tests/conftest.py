"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import uuid4

import pytest

from marketplace_checkout.adapters.stripe_client import (
    PaymentGatewayClient,
    PaymentGatewayError,
    PaymentStatus,
)
from marketplace_checkout.adapters.stripe_webhook import (
    WebhookEvent,
    WebhookSignatureError,
    WebhookVerifier,
)
from marketplace_checkout.adapters.supabase_auth_provider import AuthProvider
from marketplace_checkout.config import Settings
from marketplace_checkout.containers import AppContainer
from marketplace_checkout.domain.checkout import (
    CheckoutSessionRecord,
    CheckoutTotals,
    ShippingAddress,
    parse_checkout_payload,
)
from marketplace_checkout.domain.listings import ListingStock
from marketplace_checkout.domain.orders import OrderLine
from marketplace_checkout.services.checkout import (
    CheckoutService,
    CheckoutSessionRepository,
)
from marketplace_checkout.services.inventory import InventoryService, ListingRepository
from marketplace_checkout.services.offers import OfferRepository, OfferService
from marketplace_checkout.services.orders import OrderRepository, OrderService


def checkout_payload(**overrides: object) -> dict[str, object]:
    """Return a stored cart snapshot, one 50.00 GBP item plus fees by default."""
    payload: dict[str, object] = {
        "items": [
            {
                "listing_id": "L1",
                "title": "Brake caliper",
                "price": 50.0,
                "quantity": 1,
                "seller_id": "seller-1",
                "seller_name": "Parts Co",
                "image": None,
            }
        ],
        "shipping_method": "standard",
        "shipping_address": {
            "fullName": "Ada Buyer",
            "email": "ada@example.com",
            "line1": "1 High Street",
            "city": "Leeds",
            "postcode": "LS1 1AA",
        },
        "offer_id": None,
        "totals": {
            "itemsSubtotal": 50.0,
            "serviceFee": 0.01,
            "shippingCost": 4.99,
            "total": 55.0,
        },
    }
    payload.update(overrides)
    return payload


@dataclass
class InMemoryCheckoutSessionRepository(CheckoutSessionRepository):
    """In-memory checkout session repository for tests."""

    sessions: dict[str, CheckoutSessionRecord] = field(default_factory=dict)
    lock_attempts: int = 0

    def add_session(
        self,
        session_id: str,
        user_id: str = "u1",
        payload: dict[str, object] | None = None,
        consumed_at: datetime | None = None,
        order_id: str | None = None,
    ) -> CheckoutSessionRecord:
        session = CheckoutSessionRecord(
            session_id=session_id,
            user_id=user_id,
            payload=parse_checkout_payload(payload or checkout_payload()),
            consumed_at=consumed_at,
            order_id=order_id,
        )
        self.sessions[session_id] = session
        return session

    def get_session(self, session_id: str) -> CheckoutSessionRecord | None:
        return self.sessions.get(session_id)

    def try_lock(self, session_id: str, locked_at: datetime) -> bool:
        self.lock_attempts += 1
        session = self.sessions.get(session_id)
        if session is None or session.consumed_at is not None:
            return False
        self.sessions[session_id] = replace(session, consumed_at=locked_at)
        return True

    def record_order(self, session_id: str, order_id: str) -> bool:
        session = self.sessions.get(session_id)
        if session is None or session.order_id is not None:
            return False
        self.sessions[session_id] = replace(session, order_id=order_id)
        return True

    def release_lock(self, session_id: str, locked_at: datetime) -> bool:
        session = self.sessions.get(session_id)
        if (
            session is None
            or session.consumed_at != locked_at
            or session.order_id is not None
        ):
            return False
        self.sessions[session_id] = replace(session, consumed_at=None)
        return True

    def reclaim_lock(
        self, session_id: str, stale_locked_at: datetime, locked_at: datetime
    ) -> bool:
        session = self.sessions.get(session_id)
        if (
            session is None
            or session.consumed_at != stale_locked_at
            or session.order_id is not None
        ):
            return False
        self.sessions[session_id] = replace(session, consumed_at=locked_at)
        return True


@dataclass
class InMemoryOrderRepository(OrderRepository):
    """In-memory order repository for tests."""

    orders: dict[str, dict[str, object]] = field(default_factory=dict)
    items: dict[str, list[OrderLine]] = field(default_factory=dict)
    fail_create_times: int = 0
    fail_items: bool = False

    def find_order_id(self, checkout_session_id: str) -> str | None:
        for order_id, order in self.orders.items():
            if order["checkout_session_id"] == checkout_session_id:
                return order_id
        return None

    def create_order(
        self,
        checkout_session_id: str,
        user_id: str,
        shipping_method: str,
        shipping_address: ShippingAddress | None,
        totals: CheckoutTotals,
    ) -> str:
        if self.fail_create_times > 0:
            self.fail_create_times -= 1
            raise RuntimeError("database unavailable")
        if self.find_order_id(checkout_session_id) is not None:
            raise RuntimeError("duplicate key value violates unique constraint")
        order_id = str(uuid4())
        self.orders[order_id] = {
            "checkout_session_id": checkout_session_id,
            "user_id": user_id,
            "shipping_method": shipping_method,
            "shipping_address": shipping_address,
            "totals": totals,
        }
        return order_id

    def create_order_items(self, order_id: str, lines: list[OrderLine]) -> None:
        if self.fail_items:
            raise RuntimeError("order_items insert failed")
        self.items[order_id] = list(lines)

    def delete_order(self, order_id: str) -> None:
        self.orders.pop(order_id, None)


@dataclass
class InMemoryListingRepository(ListingRepository):
    """In-memory listing repository for tests."""

    listings: dict[str, ListingStock] = field(default_factory=dict)
    sold_at: dict[str, datetime] = field(default_factory=dict)
    failing_ids: set[str] = field(default_factory=set)

    def get_listing(self, listing_id: str) -> ListingStock | None:
        if listing_id in self.failing_ids:
            raise RuntimeError("listing read failed")
        return self.listings.get(listing_id)

    def list_listings(self, listing_ids: list[str]) -> list[ListingStock]:
        return [
            self.listings[listing_id]
            for listing_id in listing_ids
            if listing_id in self.listings
        ]

    def update_stock(
        self,
        listing_id: str,
        quantity: int,
        status: str,
        marked_sold_at: datetime | None,
    ) -> None:
        current = self.listings[listing_id]
        self.listings[listing_id] = replace(current, quantity=quantity, status=status)
        if marked_sold_at is not None:
            self.sold_at[listing_id] = marked_sold_at


@dataclass
class InMemoryOfferRepository(OfferRepository):
    """In-memory offer repository for tests."""

    statuses: dict[str, str] = field(default_factory=dict)
    fail: bool = False

    def transition_status(self, offer_id: str, from_status: str, to_status: str) -> bool:
        if self.fail:
            raise RuntimeError("offers table unavailable")
        if self.statuses.get(offer_id) != from_status:
            return False
        self.statuses[offer_id] = to_status
        return True


@dataclass
class FakePaymentGateway(PaymentGatewayClient):
    """Fake payment gateway reporting configured session statuses."""

    paid_sessions: set[str] = field(default_factory=set)
    fail: bool = False
    calls: list[str] = field(default_factory=list)

    async def fetch_payment_status(self, session_id: str) -> PaymentStatus:
        self.calls.append(session_id)
        # Yield so concurrent finalize calls interleave here.
        await asyncio.sleep(0)
        if self.fail:
            raise PaymentGatewayError("gateway timed out")
        return PaymentStatus(paid=session_id in self.paid_sessions)


@dataclass
class FakeWebhookVerifier(WebhookVerifier):
    """Fake verifier accepting a single known signature."""

    event: WebhookEvent | None = None
    valid_signature: str = "valid-signature"

    def verify(self, payload: bytes, signature: str) -> WebhookEvent:
        if signature != self.valid_signature or self.event is None:
            raise WebhookSignatureError("Invalid webhook signature")
        return self.event


@dataclass
class FakeAuthProvider(AuthProvider):
    """Fake auth provider mapping tokens to user ids."""

    tokens: dict[str, str] = field(default_factory=dict)

    def get_user_id(self, access_token: str) -> str | None:
        return self.tokens.get(access_token)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="header.payload.signature",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
    )


@pytest.fixture
def session_repository() -> InMemoryCheckoutSessionRepository:
    return InMemoryCheckoutSessionRepository()


@pytest.fixture
def order_repository() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def listing_repository() -> InMemoryListingRepository:
    return InMemoryListingRepository(
        listings={"L1": ListingStock(id="L1", quantity=1, status="active")}
    )


@pytest.fixture
def offer_repository() -> InMemoryOfferRepository:
    return InMemoryOfferRepository()


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def checkout_service(
    session_repository: InMemoryCheckoutSessionRepository,
    order_repository: InMemoryOrderRepository,
    listing_repository: InMemoryListingRepository,
    offer_repository: InMemoryOfferRepository,
    payment_gateway: FakePaymentGateway,
) -> CheckoutService:
    return CheckoutService(
        session_repository=session_repository,
        payment_client=payment_gateway,
        order_service=OrderService(
            repository=order_repository, listing_repository=listing_repository
        ),
        inventory_service=InventoryService(listing_repository),
        offer_service=OfferService(offer_repository),
    )


@pytest.fixture
def webhook_verifier() -> FakeWebhookVerifier:
    return FakeWebhookVerifier()


@pytest.fixture
def auth_provider() -> FakeAuthProvider:
    return FakeAuthProvider(tokens={"token-u1": "u1", "token-u2": "u2"})


@pytest.fixture
def container(
    settings: Settings,
    checkout_service: CheckoutService,
    webhook_verifier: FakeWebhookVerifier,
    auth_provider: FakeAuthProvider,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        auth_provider=auth_provider,
        webhook_verifier=webhook_verifier,
        checkout_service=checkout_service,
        close_resources=close_resources,
    )
