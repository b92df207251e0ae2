# settings.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal



class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -----------------------
    # DB
    # -----------------------
    DATABASE_URL: str = Field(default="")

    # -----------------------
    # JWT (verification only; tokens are issued by the auth service)
    # -----------------------
    JWT_SECRET: str = Field(default="dev-secret-change-me", min_length=16)
    JWT_ALG: str = Field(default="HS256")

    # comma separated list of emails allowed on /v1/admin/*
    ADMIN_EMAILS: str = ""

    LOG_LEVEL: str = "INFO"

    DB_POOL_MIN: int = Field(default=1, ge=1)
    DB_POOL_MAX: int = Field(default=10, ge=1)
    DB_STATEMENT_TIMEOUT_MS: int = Field(default=5000, gt=0)

    # -----------------------
    # Stripe (billing provider)
    # -----------------------
    STRIPE_SECRET: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE_S: int = 300

    # -----------------------
    # Referral payouts
    # -----------------------
    REFERRAL_PAYOUT_AMOUNT_CENTS: int = Field(default=1000, gt=0)
    REFERRAL_PAYOUT_CURRENCY: str = "usd"

    PAYOUT_MAX_ATTEMPTS: int = Field(default=5, ge=1)
    PAYOUT_BACKOFF_SECONDS: int = Field(default=3600, ge=0)
    PAYOUT_CLAIM_LEASE_SECONDS: int = Field(default=900, gt=0)

    # "sandbox" simulates gift card / PayPal disbursements, "real" calls the APIs
    PAYOUT_MODE: Literal["sandbox", "real"] = "sandbox"
    PAYOUT_HTTP_TIMEOUT_S: float = 20.0

    # -----------------------
    # Tango RaaS (gift cards)
    # -----------------------
    TANGO_BASE_URL: str = "https://integration-api.tangocard.com/raas/v2"
    TANGO_PLATFORM_NAME: str = ""
    TANGO_PLATFORM_KEY: str = ""
    TANGO_ACCOUNT_IDENTIFIER: str = ""
    TANGO_CUSTOMER_IDENTIFIER: str = ""
    TANGO_UTID: str = ""

    # -----------------------
    # PayPal Payouts
    # -----------------------
    PAYPAL_BASE_URL: str = "https://api-m.sandbox.paypal.com"
    PAYPAL_CLIENT_ID: str = ""
    PAYPAL_CLIENT_SECRET: str = ""

    # -----------------------
    # Daemons
    # -----------------------
    PAYOUT_INTERVAL_SECONDS: int = 3600
    RECONCILE_INTERVAL_SECONDS: int = 3600

    def admin_emails(self) -> set[str]:
        return {e.strip().lower() for e in (self.ADMIN_EMAILS or "").split(",") if e.strip()}



settings = Settings()
