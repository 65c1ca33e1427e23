"""FastAPI application factory."""

import logging
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from marketplace_checkout.adapters.stripe_webhook import WebhookSignatureError
from marketplace_checkout.api.checkout_models import (
    CompleteCheckoutRequest,
    ProcessingResponse,
    WebhookAck,
)
from marketplace_checkout.app_logging import configure_logging
from marketplace_checkout.containers import AppContainer
from marketplace_checkout.domain.checkout import (
    CheckoutSummary,
    FinalizeOutcome,
    FinalizeState,
    checkout_item_to_json,
    checkout_totals_to_json,
    shipping_address_to_json,
)

FINALIZE_EVENT_TYPES = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
}

_WEBHOOK_RETRY_STATES = {
    FinalizeState.ERROR,
    FinalizeState.NOT_PAID,
    FinalizeState.FORBIDDEN,
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/checkout/complete")
    async def complete_checkout(
        body: CompleteCheckoutRequest,
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> JSONResponse:
        """Finalize a checkout for the signed-in buyer."""
        state_container: AppContainer = request.app.state.container
        token = _bearer_token(authorization)
        user_id = state_container.auth_provider.get_user_id(token) if token else None
        if user_id is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        outcome = await state_container.checkout_service.finalize(
            body.session_id,
            caller_user_id=user_id,
            include_shipping_address=True,
        )
        return _outcome_response(outcome)

    @app.get("/checkout/lookup")
    async def lookup_checkout(
        request: Request, session_id: str = Query(min_length=1)
    ) -> JSONResponse:
        """Finalize or look up a checkout without a browser session.

        Only a limited summary is returned; the shipping address is never
        echoed from this endpoint.
        """
        state_container: AppContainer = request.app.state.container
        outcome = await state_container.checkout_service.finalize(session_id)
        return _outcome_response(outcome)

    @app.post("/checkout/webhook")
    async def checkout_webhook(
        request: Request, stripe_signature: str | None = Header(default=None)
    ) -> WebhookAck:
        """Handle payment provider webhooks."""
        if not stripe_signature:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing Stripe signature",
            )
        state_container: AppContainer = request.app.state.container
        payload = await request.body()
        try:
            event = state_container.webhook_verifier.verify(payload, stripe_signature)
        except WebhookSignatureError:
            logger.warning("Webhook signature verification failed")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature"
            ) from None

        if event.type not in FINALIZE_EVENT_TYPES or not event.object_id:
            return WebhookAck()

        outcome = await state_container.checkout_service.finalize(event.object_id)
        if outcome.state in _WEBHOOK_RETRY_STATES:
            logger.error(
                "Webhook finalize failed",
                extra={
                    "session_id": event.object_id,
                    "event_id": event.id,
                    "state": outcome.state.value,
                },
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to finalize checkout",
            )
        if outcome.state == FinalizeState.NOT_FOUND:
            logger.warning(
                "Webhook for unknown checkout session",
                extra={"session_id": event.object_id, "event_id": event.id},
            )
        return WebhookAck()

    return app


def _bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an Authorization header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _outcome_response(outcome: FinalizeOutcome) -> JSONResponse:  # noqa: PLR0911
    """Map a finalize outcome onto an HTTP response."""
    if outcome.is_ok and outcome.summary is not None:
        body = _format_summary(outcome.summary)
        body["reused"] = outcome.reused
        return JSONResponse(content=body)
    if outcome.state == FinalizeState.PROCESSING:
        retry_after_ms = outcome.retry_after_ms or 0
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=ProcessingResponse(retry_after_ms=retry_after_ms).model_dump(
                by_alias=True
            ),
            headers={"Retry-After": str(max(1, math.ceil(retry_after_ms / 1000)))},
        )
    if outcome.state == FinalizeState.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Checkout session not found",
        )
    if outcome.state == FinalizeState.FORBIDDEN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    if outcome.state == FinalizeState.NOT_PAID:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Payment not completed yet"
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=outcome.error or "Failed to finalize checkout",
    )


def _format_summary(summary: CheckoutSummary) -> dict[str, object]:
    """Format an order summary in the client-facing shape."""
    body: dict[str, object] = {
        "orderId": summary.order_id,
        "orderRef": summary.order_ref,
        "items": [checkout_item_to_json(item) for item in summary.items],
        "totals": checkout_totals_to_json(summary.totals),
        "shippingMethod": summary.shipping_method,
    }
    if summary.include_shipping_address:
        body["shippingAddress"] = shipping_address_to_json(summary.shipping_address)
    return body
