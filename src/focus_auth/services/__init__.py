# src/focus_auth/services/__init__.py
"""Authentication channels and the session bridge behind them."""

from .backend_auth import BackendAuthClient, BackendAuthError, SessionTokens
from .claims import Channel, ExternalClaim, Provider
from .nonce_ledger import TelegramNonceLedger, WalletNonceLedger
from .session_bridge import RedemptionTicket, SessionBridge
from .telegram_bot import TelegramBotClient, TelegramBotConfirmationFlow
from .telegram_widget import TelegramWidgetVerifier
from .wallet import WalletSiweVerifier

__all__ = [
    "BackendAuthClient", "BackendAuthError", "SessionTokens",
    "Channel", "ExternalClaim", "Provider",
    "TelegramNonceLedger", "WalletNonceLedger",
    "RedemptionTicket", "SessionBridge",
    "TelegramBotClient", "TelegramBotConfirmationFlow",
    "TelegramWidgetVerifier",
    "WalletSiweVerifier",
]
