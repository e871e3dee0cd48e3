# src/focus_auth/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .common import ERROR_RESPONSES, ErrorResponse
from .telegram import (
    LoginInitResponse,
    LoginStatusResponse,
    NonceRequest,
    SessionResponse,
    WidgetExchangeRequest,
)
from .wallet import WalletNonceResponse, WalletVerifyRequest, WalletVerifyResponse

__all__ = [
    "ERROR_RESPONSES", "ErrorResponse",
    "LoginInitResponse", "LoginStatusResponse", "NonceRequest",
    "SessionResponse", "WidgetExchangeRequest",
    "WalletNonceResponse", "WalletVerifyRequest", "WalletVerifyResponse",
]
