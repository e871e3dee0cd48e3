# src/focus_auth/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .system import router as system_router
from .telegram import router as telegram_router
from .wallet import router as wallet_router

__all__ = [
    "system_router",
    "telegram_router",
    "wallet_router",
]
