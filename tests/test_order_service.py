"""Tests for order creation."""

import pytest

from marketplace_checkout.domain.checkout import parse_checkout_payload
from marketplace_checkout.domain.listings import ListingStock
from marketplace_checkout.services.orders import (
    OrderCreationError,
    OrderService,
    format_order_ref,
)
from tests.conftest import (
    InMemoryListingRepository,
    InMemoryOrderRepository,
    checkout_payload,
)


def test_format_order_ref_is_deterministic() -> None:
    order_id = "ab12cd34-5678-90ab-cdef-1234567890ab"

    assert format_order_ref(order_id) == "MS-AB12CD34"
    assert format_order_ref(order_id) == format_order_ref(order_id)


def test_create_order_persists_header_and_items(
    order_repository: InMemoryOrderRepository,
    listing_repository: InMemoryListingRepository,
) -> None:
    service = OrderService(order_repository, listing_repository)
    payload = parse_checkout_payload(checkout_payload())

    order = service.create_order(
        checkout_session_id="cs_123",
        user_id="u1",
        items=payload.items,
        shipping_method=payload.shipping_method,
        shipping_address=payload.shipping_address,
        totals=payload.totals,
    )

    assert order.order_ref == format_order_ref(order.order_id)
    assert order_repository.orders[order.order_id]["user_id"] == "u1"
    lines = order_repository.items[order.order_id]
    assert lines[0].listing_id == "L1"
    assert lines[0].seller_id == "seller-1"
    assert lines[0].seller_name == "Parts Co"


def test_create_order_backfills_sellers_from_listings(
    order_repository: InMemoryOrderRepository,
) -> None:
    listings = InMemoryListingRepository(
        listings={
            "L1": ListingStock(id="L1", quantity=1, status="active", seller_id="s-9")
        }
    )
    service = OrderService(order_repository, listings)
    payload = parse_checkout_payload(
        checkout_payload(
            items=[{"listing_id": "L1", "title": "Caliper", "price": 50, "quantity": 1}]
        )
    )

    order = service.create_order(
        checkout_session_id="cs_123",
        user_id="u1",
        items=payload.items,
        shipping_method=payload.shipping_method,
        shipping_address=payload.shipping_address,
        totals=payload.totals,
    )

    line = order_repository.items[order.order_id][0]
    assert line.seller_id == "s-9"
    assert line.seller_name == "Unknown"


def test_items_failure_removes_order_header(
    listing_repository: InMemoryListingRepository,
) -> None:
    repository = InMemoryOrderRepository(fail_items=True)
    service = OrderService(repository, listing_repository)
    payload = parse_checkout_payload(checkout_payload())

    with pytest.raises(OrderCreationError):
        service.create_order(
            checkout_session_id="cs_123",
            user_id="u1",
            items=payload.items,
            shipping_method=payload.shipping_method,
            shipping_address=payload.shipping_address,
            totals=payload.totals,
        )

    assert repository.orders == {}


def test_header_failure_raises_order_creation_error(
    listing_repository: InMemoryListingRepository,
) -> None:
    repository = InMemoryOrderRepository(fail_create_times=1)
    service = OrderService(repository, listing_repository)
    payload = parse_checkout_payload(checkout_payload())

    with pytest.raises(OrderCreationError):
        service.create_order(
            checkout_session_id="cs_123",
            user_id="u1",
            items=payload.items,
            shipping_method=payload.shipping_method,
            shipping_address=payload.shipping_address,
            totals=payload.totals,
        )
