"""Negotiated offer closing."""

import logging
from dataclasses import dataclass
from typing import Protocol

from marketplace_checkout.domain.offers import OFFER_ACCEPTED, OFFER_COMPLETED

logger = logging.getLogger(__name__)


class OfferRepository(Protocol):
    """Persistence interface for offers."""

    def transition_status(self, offer_id: str, from_status: str, to_status: str) -> bool:
        """Move an offer between states, only if it is currently in from_status."""


@dataclass
class OfferService:
    """Marks accepted offers as completed once paid for."""

    repository: OfferRepository

    def complete_offer(self, offer_id: str | None) -> None:
        """Complete an accepted offer; other states are left untouched."""
        if not offer_id:
            return
        try:
            changed = self.repository.transition_status(
                offer_id, from_status=OFFER_ACCEPTED, to_status=OFFER_COMPLETED
            )
        except Exception:
            logger.exception("Offer completion failed", extra={"offer_id": offer_id})
            return
        if not changed:
            logger.info(
                "Offer not in accepted state, skipping",
                extra={"offer_id": offer_id},
            )
