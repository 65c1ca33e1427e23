"""Logging configuration helpers."""

import logging

CONTEXT_FIELDS = (
    "session_id",
    "order_id",
    "listing_id",
    "listing_ids",
    "offer_id",
    "event_id",
)


class CheckoutContextFormatter(logging.Formatter):
    """Append the checkout identifiers passed through ``extra=`` to each line."""

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        message = super().formatMessage(record)
        context = " ".join(
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        )
        return f"{message} [{context}]" if context else message


def configure_logging() -> None:
    """Configure checkout logging with a single stream handler."""
    logger = logging.getLogger("marketplace_checkout")
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        CheckoutContextFormatter("%(levelname)s: %(name)s: %(message)s")
    )
    logger.addHandler(handler)
    logger.propagate = False
