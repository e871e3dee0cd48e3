# src/focus_auth/models/__init__.py
"""SQLAlchemy models for the Focus auth bridge."""

from .nonce import TelegramLoginNonce, WalletNonce
from .user import AppUser

__all__ = [
    "TelegramLoginNonce", "WalletNonce",
    "AppUser",
]
