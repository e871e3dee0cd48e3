# src/focus_auth/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import system_router, telegram_router, wallet_router

__all__ = [
    "system_router",
    "telegram_router",
    "wallet_router",
]
