from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

from report_checkout.adapters.outbound.paypal_gateway import SANDBOX_URL

DEFAULT_CONTENT_API_URL = "https://dashboard.synapseaglobal.com"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_TRUE = {"1", "true", "yes", "on"}


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class Settings:
    content_api_url: str = DEFAULT_CONTENT_API_URL
    ledger_api_url: str | None = None
    paypal_client_id: str | None = None
    paypal_secret: str | None = None
    paypal_base_url: str = SANDBOX_URL
    ccavenue_merchant_id: str | None = None
    ccavenue_access_code: str | None = None
    ccavenue_working_key: str | None = None
    public_url: str = "http://localhost:8000"
    http_timeout: float = 10.0
    rate_cache_seconds: float = 300.0
    session_idle_seconds: float = 3600.0
    log_level: str = "INFO"
    use_fakes: bool = False

    @staticmethod
    def from_env(environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ

        def opt(name: str) -> str | None:
            value = env.get(name, "").strip()
            return value or None

        def number(name: str, default: float) -> float:
            raw = opt(name)
            if raw is None:
                return default
            try:
                value = float(raw)
            except ValueError:
                raise ConfigError(f"{name} must be a number, got {raw!r}") from None
            if value <= 0:
                raise ConfigError(f"{name} must be > 0")
            return value

        return Settings(
            content_api_url=opt("CHECKOUT_CONTENT_API_URL") or DEFAULT_CONTENT_API_URL,
            ledger_api_url=opt("CHECKOUT_LEDGER_API_URL"),
            paypal_client_id=opt("PAYPAL_CLIENT_ID"),
            paypal_secret=opt("PAYPAL_SECRET"),
            paypal_base_url=opt("PAYPAL_BASE_URL") or SANDBOX_URL,
            ccavenue_merchant_id=opt("CCAVENUE_MERCHANT_ID"),
            ccavenue_access_code=opt("CCAVENUE_ACCESS_CODE"),
            ccavenue_working_key=opt("CCAVENUE_WORKING_KEY"),
            public_url=opt("CHECKOUT_PUBLIC_URL") or "http://localhost:8000",
            http_timeout=number("CHECKOUT_HTTP_TIMEOUT", 10.0),
            rate_cache_seconds=number("CHECKOUT_RATE_CACHE_SECONDS", 300.0),
            session_idle_seconds=number("CHECKOUT_SESSION_IDLE_SECONDS", 3600.0),
            log_level=(opt("CHECKOUT_LOG_LEVEL") or "INFO").upper(),
            use_fakes=(opt("CHECKOUT_USE_FAKES") or "").lower() in _TRUE,
        )

    def missing_for_live(self) -> tuple[str, ...]:
        """Env vars that must be set before real gateways and ledger can be wired."""
        required = {
            "CHECKOUT_LEDGER_API_URL": self.ledger_api_url,
            "PAYPAL_CLIENT_ID": self.paypal_client_id,
            "PAYPAL_SECRET": self.paypal_secret,
            "CCAVENUE_MERCHANT_ID": self.ccavenue_merchant_id,
            "CCAVENUE_ACCESS_CODE": self.ccavenue_access_code,
            "CCAVENUE_WORKING_KEY": self.ccavenue_working_key,
        }
        return tuple(name for name, value in required.items() if not value)


def configure_logging(level: str = "INFO") -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ConfigError(f"unknown log level {level!r}")
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
