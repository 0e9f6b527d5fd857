"""
FastAPI application entrypoint for the eBay account-linking API.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from sellerlink.api.routes import router as api_router
from sellerlink.core.config import AppSettings, get_settings
from sellerlink.core.logging import configure_logging
from sellerlink.dependencies import ServiceContainer, build_services


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Factory for the FastAPI application.

    Run with ``uvicorn sellerlink.main:create_app --factory``.
    """
    if services is not None:
        settings = services.settings
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="SellerLink",
        version="0.1.0",
        description="Links seller eBay accounts and serves their OAuth tokens.",
    )
    app.state.services = services or build_services(settings)
    app.include_router(api_router, prefix="/api/ebay")
    return app


__all__ = ["create_app"]
