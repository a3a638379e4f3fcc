"""API Routers."""

from .system import router as system_router
from .relay import router as relay_router
from .credentials import router as credentials_router

__all__ = [
    "system_router",
    "relay_router",
    "credentials_router",
]
