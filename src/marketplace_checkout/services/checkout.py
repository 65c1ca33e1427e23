"""Checkout finalization: turn a paid checkout session into exactly one order."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from marketplace_checkout.adapters.stripe_client import (
    PaymentGatewayClient,
    PaymentGatewayError,
)
from marketplace_checkout.domain.checkout import (
    CheckoutSessionRecord,
    CheckoutSummary,
    FinalizeOutcome,
    FinalizeState,
    InvalidCheckoutSessionError,
)
from marketplace_checkout.services.inventory import InventoryService
from marketplace_checkout.services.offers import OfferService
from marketplace_checkout.services.orders import OrderService, format_order_ref

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_MS = 1500


class CheckoutSessionRepository(Protocol):
    """Persistence interface for checkout sessions.

    The lock is the ``consumed_at`` timestamp; every write below is a
    conditional update and reports whether it affected the row.
    """

    def get_session(self, session_id: str) -> CheckoutSessionRecord | None:
        """Return a checkout session by id, if present."""

    def try_lock(self, session_id: str, locked_at: datetime) -> bool:
        """Set consumed_at to locked_at only if it is currently unset."""

    def record_order(self, session_id: str, order_id: str) -> bool:
        """Set order_id only if it is currently unset."""

    def release_lock(self, session_id: str, locked_at: datetime) -> bool:
        """Clear consumed_at only if it still equals locked_at and no order exists."""

    def reclaim_lock(
        self, session_id: str, stale_locked_at: datetime, locked_at: datetime
    ) -> bool:
        """Replace a stale consumed_at with locked_at if no order exists."""


@dataclass
class CheckoutService:
    """Finalizes checkout sessions under a compare-and-set lock."""

    session_repository: CheckoutSessionRepository
    payment_client: PaymentGatewayClient
    order_service: OrderService
    inventory_service: InventoryService
    offer_service: OfferService
    retry_after_ms: int = DEFAULT_RETRY_AFTER_MS
    lock_ttl_seconds: int | None = None

    async def finalize(
        self,
        session_id: str,
        caller_user_id: str | None = None,
        include_shipping_address: bool = False,
    ) -> FinalizeOutcome:
        """Convert a paid checkout session into an order, at most once.

        Safe to call concurrently and repeatedly for the same session: the
        first caller to win the lock creates the order, later callers get the
        same order back or are told to retry while creation is in flight.
        """
        try:
            session = self.session_repository.get_session(session_id)
        except InvalidCheckoutSessionError as exc:
            if caller_user_id is not None and exc.user_id != caller_user_id:
                return FinalizeOutcome(state=FinalizeState.FORBIDDEN)
            logger.exception(
                "Checkout session payload is invalid", extra={"session_id": session_id}
            )
            return _error("Checkout session is invalid")
        except Exception:
            logger.exception(
                "Checkout session lookup failed", extra={"session_id": session_id}
            )
            return _error("Checkout session lookup failed")
        if session is None:
            return FinalizeOutcome(state=FinalizeState.NOT_FOUND)

        if caller_user_id is not None and session.user_id != caller_user_id:
            logger.warning(
                "Checkout session requested by non-owner",
                extra={"session_id": session_id},
            )
            return FinalizeOutcome(state=FinalizeState.FORBIDDEN)

        try:
            status = await self.payment_client.fetch_payment_status(session_id)
        except PaymentGatewayError:
            logger.exception(
                "Payment status lookup failed", extra={"session_id": session_id}
            )
            return _error("Payment status unavailable")
        if not status.paid:
            return FinalizeOutcome(state=FinalizeState.NOT_PAID)

        if session.is_finalized:
            return _reused(session, session.order_id, include_shipping_address)

        if session.is_locked:
            reclaimed_at = self._reclaim_stale_lock(session)
            if reclaimed_at is None:
                return self._processing()
            return self._finalize_locked(
                session, reclaimed_at, include_shipping_address
            )

        locked_at = datetime.now(tz=UTC)
        try:
            acquired = self.session_repository.try_lock(session_id, locked_at)
        except Exception:
            logger.exception(
                "Failed to lock checkout session", extra={"session_id": session_id}
            )
            return _error("Failed to lock checkout session")
        if not acquired:
            return self._classify_lost_race(session, include_shipping_address)
        return self._finalize_locked(session, locked_at, include_shipping_address)

    def _finalize_locked(
        self,
        session: CheckoutSessionRecord,
        locked_at: datetime,
        include_shipping_address: bool,
    ) -> FinalizeOutcome:
        payload = session.payload
        try:
            existing = self.order_service.find_order(session.session_id)
        except Exception:
            logger.exception(
                "Existing order lookup failed, releasing checkout lock",
                extra={"session_id": session.session_id},
            )
            self._release_lock(session.session_id, locked_at)
            return _error("Failed to create order")
        if existing is not None:
            # An earlier holder created the order but never recorded it.
            logger.warning(
                "Order already exists for checkout session",
                extra={"session_id": session.session_id, "order_id": existing.order_id},
            )
            self._record_order(session.session_id, existing.order_id)
            return _reused(session, existing.order_id, include_shipping_address)

        try:
            order = self.order_service.create_order(
                checkout_session_id=session.session_id,
                user_id=session.user_id,
                items=payload.items,
                shipping_method=payload.shipping_method,
                shipping_address=payload.shipping_address,
                totals=payload.totals,
            )
        except Exception:
            logger.exception(
                "Order creation failed, releasing checkout lock",
                extra={"session_id": session.session_id},
            )
            self._release_lock(session.session_id, locked_at)
            return _error("Failed to create order")

        self.inventory_service.sync_inventory(payload.items)
        self.offer_service.complete_offer(payload.offer_id)
        self._record_order(session.session_id, order.order_id)

        logger.info(
            "Checkout finalized",
            extra={"session_id": session.session_id, "order_id": order.order_id},
        )
        return FinalizeOutcome(
            state=FinalizeState.OK_NEW,
            summary=_build_summary(
                session, order.order_id, order.order_ref, include_shipping_address
            ),
        )

    def _record_order(self, session_id: str, order_id: str) -> None:
        try:
            recorded = self.session_repository.record_order(session_id, order_id)
        except Exception:
            logger.exception(
                "Failed to record order on checkout session",
                extra={"session_id": session_id, "order_id": order_id},
            )
            recorded = False
        if not recorded:
            # The lock stays held; the order row itself blocks a second order.
            logger.error(
                "Order created but checkout session not updated",
                extra={"session_id": session_id, "order_id": order_id},
            )

    def _classify_lost_race(
        self, session: CheckoutSessionRecord, include_shipping_address: bool
    ) -> FinalizeOutcome:
        try:
            latest = self.session_repository.get_session(session.session_id)
        except Exception:
            logger.exception(
                "Checkout session re-read failed",
                extra={"session_id": session.session_id},
            )
            return self._processing()
        if latest is not None and latest.order_id:
            return _reused(session, latest.order_id, include_shipping_address)
        return self._processing()

    def _reclaim_stale_lock(self, session: CheckoutSessionRecord) -> datetime | None:
        if self.lock_ttl_seconds is None or session.consumed_at is None:
            return None
        now = datetime.now(tz=UTC)
        if now - session.consumed_at < timedelta(seconds=self.lock_ttl_seconds):
            return None
        try:
            reclaimed = self.session_repository.reclaim_lock(
                session.session_id, session.consumed_at, now
            )
        except Exception:
            logger.exception(
                "Failed to reclaim stale checkout lock",
                extra={"session_id": session.session_id},
            )
            return None
        if not reclaimed:
            return None
        logger.warning(
            "Reclaimed stale checkout lock",
            extra={
                "session_id": session.session_id,
                "stale_locked_at": session.consumed_at.isoformat(),
            },
        )
        return now

    def _release_lock(self, session_id: str, locked_at: datetime) -> None:
        try:
            released = self.session_repository.release_lock(session_id, locked_at)
        except Exception:
            logger.exception(
                "Failed to release checkout lock", extra={"session_id": session_id}
            )
            return
        if not released:
            logger.warning(
                "Checkout lock was not released", extra={"session_id": session_id}
            )

    def _processing(self) -> FinalizeOutcome:
        return FinalizeOutcome(
            state=FinalizeState.PROCESSING, retry_after_ms=self.retry_after_ms
        )


def _reused(
    session: CheckoutSessionRecord, order_id: str, include_shipping_address: bool
) -> FinalizeOutcome:
    return FinalizeOutcome(
        state=FinalizeState.OK_REUSED,
        summary=_build_summary(
            session, order_id, format_order_ref(order_id), include_shipping_address
        ),
    )


def _error(message: str) -> FinalizeOutcome:
    return FinalizeOutcome(state=FinalizeState.ERROR, error=message)


def _build_summary(
    session: CheckoutSessionRecord,
    order_id: str,
    order_ref: str,
    include_shipping_address: bool,
) -> CheckoutSummary:
    payload = session.payload
    return CheckoutSummary(
        order_id=order_id,
        order_ref=order_ref,
        items=payload.items,
        totals=payload.totals,
        shipping_method=payload.shipping_method,
        shipping_address=payload.shipping_address if include_shipping_address else None,
        include_shipping_address=include_shipping_address,
    )
