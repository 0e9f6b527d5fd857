"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    ServiceContainer,
    build_services,
    get_auth_service,
    get_services,
)
from .config import get_app_settings

__all__ = [
    "ServiceContainer",
    "build_services",
    "get_app_settings",
    "get_auth_service",
    "get_services",
]
