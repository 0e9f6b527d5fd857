"""
FastAPI dependency utilities for injecting configuration.
"""

from fastapi import Request

from sellerlink.core.config import AppSettings


def get_app_settings(request: Request) -> AppSettings:
    """FastAPI dependency returning the settings the app was created with."""
    return request.app.state.services.settings


__all__ = ["get_app_settings"]
