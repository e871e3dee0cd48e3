"""Shared API dependencies wiring the services to the request."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from focus_auth.core.settings import settings
from focus_auth.db.session import get_db
from focus_auth.services.backend_auth import BackendAuthClient
from focus_auth.services.nonce_ledger import TelegramNonceLedger, WalletNonceLedger
from focus_auth.services.session_bridge import SessionBridge
from focus_auth.services.telegram_bot import TelegramBotClient, TelegramBotConfirmationFlow
from focus_auth.services.telegram_widget import TelegramWidgetVerifier
from focus_auth.services.wallet import WalletSiweVerifier

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_backend_auth(request: Request) -> BackendAuthClient:
    """Return the auth backend client owned by the application."""
    return request.app.state.backend_auth


def get_telegram_bot(request: Request) -> TelegramBotClient:
    """Return the Bot API client owned by the application."""
    return request.app.state.telegram_bot


BackendAuthDep = Annotated[BackendAuthClient, Depends(get_backend_auth)]
TelegramBotDep = Annotated[TelegramBotClient, Depends(get_telegram_bot)]


def get_bot_flow(db: SessionDep, bot: TelegramBotDep) -> TelegramBotConfirmationFlow:
    ledger = TelegramNonceLedger(db, ttl_seconds=settings.bot_nonce_ttl_seconds)
    return TelegramBotConfirmationFlow(
        ledger,
        bot,
        bot_username=settings.telegram_bot_username,
        webhook_secret=settings.telegram_webhook_secret,
    )


def get_widget_verifier() -> TelegramWidgetVerifier:
    return TelegramWidgetVerifier(
        settings.telegram_bot_token,
        max_age_seconds=settings.widget_max_age_seconds,
    )


def get_wallet_verifier(db: SessionDep) -> WalletSiweVerifier:
    ledger = WalletNonceLedger(db, ttl_seconds=settings.wallet_nonce_ttl_seconds)
    return WalletSiweVerifier(ledger, siwe_domain=settings.siwe_domain)


def get_session_bridge(db: SessionDep, backend: BackendAuthDep) -> SessionBridge:
    return SessionBridge(
        db,
        backend,
        credential_secret=settings.effective_credential_secret,
        telegram_email_domain=settings.telegram_email_domain,
        wallet_email_domain=settings.wallet_email_domain,
    )


BotFlowDep = Annotated[TelegramBotConfirmationFlow, Depends(get_bot_flow)]
WidgetVerifierDep = Annotated[TelegramWidgetVerifier, Depends(get_widget_verifier)]
WalletVerifierDep = Annotated[WalletSiweVerifier, Depends(get_wallet_verifier)]
SessionBridgeDep = Annotated[SessionBridge, Depends(get_session_bridge)]
