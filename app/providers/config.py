# app/providers/config.py
from __future__ import annotations

from dataclasses import dataclass

from settings import settings


def payout_mode() -> str:
    return (settings.PAYOUT_MODE or "sandbox").strip().lower()


def is_sandbox() -> bool:
    return payout_mode() != "real"


def http_timeout_s() -> float:
    return float(settings.PAYOUT_HTTP_TIMEOUT_S or 20.0)


@dataclass(frozen=True)
class TangoConfig:
    mode: str  # "sandbox" | "real"
    base_url: str
    platform_name: str
    platform_key: str
    account_identifier: str
    customer_identifier: str
    utid: str

    def missing(self) -> list[str]:
        return [
            name
            for name, value in (
                ("TANGO_BASE_URL", self.base_url),
                ("TANGO_PLATFORM_NAME", self.platform_name),
                ("TANGO_PLATFORM_KEY", self.platform_key),
                ("TANGO_ACCOUNT_IDENTIFIER", self.account_identifier),
                ("TANGO_CUSTOMER_IDENTIFIER", self.customer_identifier),
                ("TANGO_UTID", self.utid),
            )
            if not value
        ]


def tango_config() -> TangoConfig:
    return TangoConfig(
        mode=payout_mode(),
        base_url=(settings.TANGO_BASE_URL or "").strip().rstrip("/"),
        platform_name=(settings.TANGO_PLATFORM_NAME or "").strip(),
        platform_key=(settings.TANGO_PLATFORM_KEY or "").strip(),
        account_identifier=(settings.TANGO_ACCOUNT_IDENTIFIER or "").strip(),
        customer_identifier=(settings.TANGO_CUSTOMER_IDENTIFIER or "").strip(),
        utid=(settings.TANGO_UTID or "").strip(),
    )


@dataclass(frozen=True)
class PayPalConfig:
    mode: str
    base_url: str
    client_id: str
    client_secret: str


def paypal_config() -> PayPalConfig:
    return PayPalConfig(
        mode=payout_mode(),
        base_url=(settings.PAYPAL_BASE_URL or "").strip().rstrip("/"),
        client_id=(settings.PAYPAL_CLIENT_ID or "").strip(),
        client_secret=(settings.PAYPAL_CLIENT_SECRET or "").strip(),
    )
