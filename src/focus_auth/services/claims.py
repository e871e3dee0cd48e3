"""Verified external identity claims produced by the login channels."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Provider(str, Enum):
    """Identity namespace a claim's external id lives in."""

    TELEGRAM = "telegram"
    WALLET = "wallet"


class Channel(str, Enum):
    """Channel through which an identity was proven."""

    TELEGRAM_WIDGET = "telegram-widget"
    TELEGRAM_BOT = "telegram-bot"
    WALLET = "wallet"

    @property
    def provider(self) -> Provider:
        """Both Telegram channels resolve to one namespace."""
        if self is Channel.WALLET:
            return Provider.WALLET
        return Provider.TELEGRAM

    @property
    def uses_password(self) -> bool:
        """True when sessions are obtained by deterministic password sign-in."""
        return self.provider is Provider.TELEGRAM


@dataclass(frozen=True)
class ExternalClaim:
    """Output of a successful channel-specific verification.

    This is the only input SessionBridge trusts.
    """

    channel: Channel
    external_id: str
    raw_proof_fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.external_id:
            raise ValueError("external_id is required")

    @property
    def provider(self) -> Provider:
        return self.channel.provider

    @property
    def display_name(self) -> str:
        """Human-readable name used only when a user row is first created."""
        fields = self.raw_proof_fields
        if self.provider is Provider.WALLET:
            return self.external_id
        full_name = " ".join(
            str(part) for part in (fields.get("first_name"), fields.get("last_name")) if part
        )
        return full_name or str(fields.get("username") or "") or f"tg_{self.external_id}"
