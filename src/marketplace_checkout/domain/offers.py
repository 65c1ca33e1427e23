"""Offer status values used during checkout."""

OFFER_ACCEPTED = "ACCEPTED"
OFFER_COMPLETED = "COMPLETED"
