from __future__ import annotations

from fastapi import FastAPI

from report_checkout.adapters.inbound.web.fastapi_app import create_app
from report_checkout.bootstrap import build_usecases
from report_checkout.config import Settings, configure_logging


def create_asgi_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    usecases = build_usecases(settings)
    return create_app(
        usecases.checkout, usecases.payment, fallback_url=settings.public_url
    )
