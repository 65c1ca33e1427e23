"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    stripe_secret_key: str
    stripe_webhook_secret: str
    stripe_api_base: str = "https://api.stripe.com/v1"
    payment_status_timeout_seconds: float = 10.0
    checkout_retry_after_ms: int = 1500
    checkout_lock_ttl_seconds: int | None = None
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
