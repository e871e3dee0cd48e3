# src/focus_auth/models/nonce.py
"""Single-use nonces backing the out-of-band login flows."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from focus_auth.db.session import Base
from focus_auth.db.time import utcnow


class TelegramLoginNonce(Base):
    """Nonce for the bot deep-link flow; confirmed by the webhook, consumed by exchange."""

    __tablename__ = "tg_login"

    nonce: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    # NULL until the bot webhook sees "/start <nonce>"; set at most once.
    telegram_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class WalletNonce(Base):
    """Nonce embedded in a SIWE message; expiry is explicit."""

    __tablename__ = "wallet_nonces"

    nonce: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_by: Mapped[str | None] = mapped_column(Text, nullable=True)
