"""Telegram bot deep-link confirmation flow.

Lifecycle of a login nonce::

    init()          CREATED / PENDING    confirmer unset
    on_webhook()    CONFIRMED            "/start <nonce>" seen by the bot
    exchange()      EXCHANGED            nonce consumed, claim handed over

Any nonce older than the TTL reads as EXPIRED whatever its stored flags say.
The client polls ``status()`` while the user taps through the bot.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from focus_auth.core.errors import AuthBridgeError, AuthErrorCode
from focus_auth.services.claims import Channel, ExternalClaim
from focus_auth.services.nonce_ledger import LedgerOutcome, TelegramNonceLedger

logger = logging.getLogger(__name__)

START_COMMAND = "/start"

CONFIRMED_REPLY = "✅ Sign-in confirmed. Return to the app."
STALE_REPLY = "⚠️ This link has expired or was already used. Start signing in again."
HINT_REPLY = "Open the bot through the link in the app to confirm your sign-in."


class TelegramBotError(RuntimeError):
    """Raised when the Bot API cannot be reached or rejects a call."""


@dataclass(frozen=True)
class TelegramBotConfig:
    """Immutable configuration for Bot API calls."""

    token: str
    api_base_url: str = "https://api.telegram.org"
    timeout_seconds: float = 5.0


class TelegramBotClient:
    """Minimal Bot API wrapper; only ``sendMessage`` is needed."""

    def __init__(
        self,
        config: TelegramBotConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.config.token)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=f"{self.config.api_base_url.rstrip('/')}/bot{self.config.token}",
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def send_message(self, chat_id: int, text: str) -> None:
        if not self.enabled:
            raise TelegramBotError("Telegram bot token is not configured")

        client = await self._ensure_client()
        try:
            response = await client.post("/sendMessage", json={"chat_id": chat_id, "text": text})
        except httpx.HTTPError as exc:
            raise TelegramBotError(f"sendMessage failed: {exc}") from exc
        if response.status_code != httpx.codes.OK:
            raise TelegramBotError(f"sendMessage responded with {response.status_code}")

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class LoginStatus(str, Enum):
    """Values reported to a polling client."""

    PENDING = "pending"
    READY = "ready"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


class WebhookOutcome(str, Enum):
    IGNORED = "ignored"
    CONFIRMED = "confirmed"
    STALE = "stale"
    HINTED = "hinted"


@dataclass(frozen=True)
class LoginInitiation:
    nonce: str
    deep_link_app: str
    deep_link_web: str


@dataclass(frozen=True)
class StatusReport:
    status: LoginStatus
    external_id: str | None = None


def parse_start_command(text: str) -> tuple[bool, str | None]:
    """Split ``/start <payload>`` (or ``/start@BotName <payload>``).

    Returns:
        ``(is_start, payload)``; payload is None when the command has none.
    """
    parts = text.strip().split()
    if not parts:
        return False, None
    command = parts[0].split("@", 1)[0]
    if command != START_COMMAND:
        return False, None
    return True, parts[1] if len(parts) > 1 else None


def _field_id(message: Mapping[str, Any], key: str) -> int | None:
    """Return the integer ``id`` of ``message[key]``, or None when it is malformed."""
    entity = message.get(key)
    if not isinstance(entity, Mapping):
        return None
    try:
        return int(entity.get("id"))
    except (TypeError, ValueError):
        return None


class TelegramBotConfirmationFlow:
    """Issue nonces, accept bot confirmations, report status and exchange."""

    def __init__(
        self,
        ledger: TelegramNonceLedger,
        bot: TelegramBotClient | None,
        *,
        bot_username: str,
        webhook_secret: str,
    ) -> None:
        self.ledger = ledger
        self.bot = bot
        self.bot_username = bot_username.lstrip("@")
        self.webhook_secret = webhook_secret

    def init(self) -> LoginInitiation:
        """Create a nonce and the deep links that carry it as the bot start parameter."""
        nonce = self.ledger.create()
        logger.info("Issued bot login nonce %s", nonce)
        return LoginInitiation(
            nonce=nonce,
            deep_link_app=f"tg://resolve?domain={self.bot_username}&start={nonce}",
            deep_link_web=f"https://t.me/{self.bot_username}?start={nonce}",
        )

    def verify_secret(self, secret: str | None) -> None:
        """Reject webhook calls that do not carry the shared secret header."""
        if not self.webhook_secret or not secret or not hmac.compare_digest(
            secret.encode(), self.webhook_secret.encode()
        ):
            logger.warning("Rejected bot webhook with bad secret")
            raise AuthBridgeError(AuthErrorCode.UNAUTHORIZED, "Forbidden")

    async def on_webhook(self, secret: str | None, update: Mapping[str, Any]) -> WebhookOutcome:
        """Handle one bot update.

        Stale or repeated confirmations are answered to the user and otherwise
        ignored; the platform always gets a plain acknowledgement.
        """
        self.verify_secret(secret)

        message = update.get("message")
        if not isinstance(message, Mapping) or not isinstance(message.get("text"), str):
            return WebhookOutcome.IGNORED

        chat_id = _field_id(message, "chat")
        from_id = _field_id(message, "from")
        is_start, nonce = parse_start_command(message["text"])
        if not is_start:
            return WebhookOutcome.IGNORED

        if nonce is None or from_id is None:
            await self._reply(chat_id, HINT_REPLY)
            return WebhookOutcome.HINTED

        outcome = self.ledger.mark_confirmed(nonce, from_id)
        if outcome is LedgerOutcome.OK:
            logger.info("Bot login nonce %s confirmed by telegram id %s", nonce, from_id)
            await self._reply(chat_id, CONFIRMED_REPLY)
            return WebhookOutcome.CONFIRMED

        logger.info("Bot login nonce %s not confirmed: %s", nonce, outcome.value)
        await self._reply(chat_id, STALE_REPLY)
        return WebhookOutcome.STALE

    async def _reply(self, chat_id: int | None, text: str) -> None:
        if chat_id is None or self.bot is None or not self.bot.enabled:
            return
        try:
            await self.bot.send_message(chat_id, text)
        except TelegramBotError as exc:
            logger.warning("Could not reply to chat %s: %s", chat_id, exc)

    def status(self, nonce: str) -> StatusReport:
        """Pure read used by polling clients."""
        snapshot = self.ledger.get(nonce)
        if snapshot is None:
            return StatusReport(LoginStatus.NOT_FOUND)
        if snapshot.expired:
            return StatusReport(LoginStatus.EXPIRED)
        if snapshot.confirmed and not snapshot.used:
            return StatusReport(LoginStatus.READY, snapshot.confirmer_id)
        # Consumed nonces report pending.
        return StatusReport(LoginStatus.PENDING)

    def exchange(self, nonce: str) -> ExternalClaim:
        """Consume a ready nonce and return the confirmer's claim.

        Raises:
            AuthBridgeError: ``NOT_FOUND``, ``EXPIRED``, ``NOT_READY`` or
                ``ALREADY_USED`` (including when a concurrent exchange won).
        """
        snapshot = self.ledger.get(nonce)
        if snapshot is None:
            raise AuthBridgeError(AuthErrorCode.NOT_FOUND, "Unknown nonce")
        if snapshot.expired:
            raise AuthBridgeError(AuthErrorCode.EXPIRED, "Nonce expired")
        if snapshot.used:
            raise AuthBridgeError(AuthErrorCode.ALREADY_USED, "Already used")
        if not snapshot.confirmed:
            raise AuthBridgeError(AuthErrorCode.NOT_READY, "Not ready")

        outcome = self.ledger.mark_used(nonce)
        if outcome is not LedgerOutcome.OK:
            raise AuthBridgeError(*_EXCHANGE_FAILURES[outcome])

        return ExternalClaim(
            channel=Channel.TELEGRAM_BOT,
            external_id=snapshot.confirmer_id or "",
            raw_proof_fields={"nonce": nonce},
        )


_EXCHANGE_FAILURES: dict[LedgerOutcome, tuple[AuthErrorCode, str]] = {
    LedgerOutcome.NOT_FOUND: (AuthErrorCode.NOT_FOUND, "Unknown nonce"),
    LedgerOutcome.EXPIRED: (AuthErrorCode.EXPIRED, "Nonce expired"),
    LedgerOutcome.NOT_CONFIRMED: (AuthErrorCode.NOT_READY, "Not ready"),
    LedgerOutcome.ALREADY_CONFIRMED: (AuthErrorCode.NOT_READY, "Not ready"),
    LedgerOutcome.ALREADY_USED: (AuthErrorCode.ALREADY_USED, "Already used"),
}
