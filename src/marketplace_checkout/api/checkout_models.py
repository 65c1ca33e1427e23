"""Pydantic models for checkout API payloads."""

from pydantic import BaseModel, Field


class CompleteCheckoutRequest(BaseModel):
    """Body of a checkout completion request."""

    session_id: str = Field(min_length=1)


class ProcessingResponse(BaseModel):
    """Returned while another finalize attempt holds the lock."""

    status: str = "processing"
    retry_after_ms: int = Field(serialization_alias="retryAfterMs")


class WebhookAck(BaseModel):
    """Acknowledgement sent back to the payment provider."""

    received: bool = True
