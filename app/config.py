"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "staging" | "prod"
ENV = os.getenv("APP_ENV", "dev").lower()

SANDBOX_BASE_URL = "https://sandbox.safaricom.co.ke"
SANDBOX_SHORTCODE = "174379"


class Settings(BaseSettings):
    """Environment configuration for the STK Pay backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///stkpay.db"
    LOG_LEVEL: str = "INFO"
    ALLOW_DB_CREATE_ALL: bool = False
    # Any browser origin may call the payment form endpoints; narrow per deployment.
    CORS_ALLOW_ORIGINS: list[str] = ["*"]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = True

    # --- M-Pesa Daraja ---------------------------------------------------
    MPESA_BASE_URL: str = SANDBOX_BASE_URL
    MPESA_CONSUMER_KEY: str | None = None
    MPESA_CONSUMER_SECRET: str | None = None
    MPESA_SHORTCODE: str = SANDBOX_SHORTCODE
    MPESA_PASSKEY: str | None = None
    MPESA_CALLBACK_URL: str | None = None
    PUBLIC_BASE_URL: str = Field(
        default="http://localhost:8000",
        validation_alias=AliasChoices("PUBLIC_BASE_URL", "APP_PUBLIC_URL"),
    )
    MPESA_TIMEOUT_SECONDS: float = 30.0
    MPESA_CONNECT_RETRIES: int = 2

    # --- Reconciliation --------------------------------------------------
    SCHEDULER_ENABLED: bool = False
    RECONCILE_INTERVAL_MINUTES: int = 5
    PAYMENT_STALE_AFTER_MINUTES: int = 15

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator(
        "MPESA_CONSUMER_KEY",
        "MPESA_CONSUMER_SECRET",
        "MPESA_PASSKEY",
        "MPESA_CALLBACK_URL",
        "SENTRY_DSN",
    )
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty secrets to ``None`` so absence is detected uniformly."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @property
    def mpesa_callback_url(self) -> str:
        if self.MPESA_CALLBACK_URL:
            return self.MPESA_CALLBACK_URL
        return f"{self.PUBLIC_BASE_URL.rstrip('/')}/mpesa/callback"

    @property
    def mpesa_credentials_configured(self) -> bool:
        return bool(self.MPESA_CONSUMER_KEY and self.MPESA_CONSUMER_SECRET and self.MPESA_PASSKEY)


class AppInfo(BaseModel):
    name: str = "stkpay-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "SANDBOX_BASE_URL",
    "SANDBOX_SHORTCODE",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
