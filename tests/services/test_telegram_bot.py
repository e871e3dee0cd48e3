"""Tests for the Telegram bot deep-link confirmation flow."""

from typing import Any

import httpx
import pytest
from sqlalchemy.orm import Session

from focus_auth.core.errors import AuthBridgeError, AuthErrorCode
from focus_auth.services.claims import Channel
from focus_auth.services.nonce_ledger import TelegramNonceLedger
from focus_auth.services.telegram_bot import (
    CONFIRMED_REPLY,
    HINT_REPLY,
    STALE_REPLY,
    LoginStatus,
    TelegramBotClient,
    TelegramBotConfig,
    TelegramBotConfirmationFlow,
    TelegramBotError,
    WebhookOutcome,
    parse_start_command,
)
from tests.conftest import TEST_WEBHOOK_SECRET, FakeBotApi, MutableClock

TTL = 600


def _update(text: str, from_id: int = 42, chat_id: int = 4200) -> dict[str, Any]:
    return {
        "update_id": 1,
        "message": {
            "message_id": 7,
            "from": {"id": from_id, "is_bot": False, "first_name": "Ada"},
            "chat": {"id": chat_id, "type": "private"},
            "text": text,
        },
    }


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def flow(db_session: Session, bot_client: TelegramBotClient, clock: MutableClock):
    ledger = TelegramNonceLedger(db_session, ttl_seconds=TTL, clock=clock)
    return TelegramBotConfirmationFlow(
        ledger,
        bot_client,
        bot_username="@FocusTestBot",
        webhook_secret=TEST_WEBHOOK_SECRET,
    )


@pytest.mark.parametrize(
    "text,expected",
    [
        ("/start abc", (True, "abc")),
        ("/start@FocusTestBot abc", (True, "abc")),
        ("  /start   abc  ", (True, "abc")),
        ("/start", (True, None)),
        ("/help abc", (False, None)),
        ("hello", (False, None)),
        ("", (False, None)),
    ],
)
def test_parse_start_command(text: str, expected) -> None:
    assert parse_start_command(text) == expected


def test_init_builds_deep_links(flow: TelegramBotConfirmationFlow) -> None:
    initiation = flow.init()

    assert initiation.deep_link_app == f"tg://resolve?domain=FocusTestBot&start={initiation.nonce}"
    assert initiation.deep_link_web == f"https://t.me/FocusTestBot?start={initiation.nonce}"
    assert flow.status(initiation.nonce).status is LoginStatus.PENDING


@pytest.mark.asyncio
async def test_webhook_rejects_bad_secret(flow: TelegramBotConfirmationFlow) -> None:
    nonce = flow.init().nonce

    for secret in (None, "", "wrong-secret"):
        with pytest.raises(AuthBridgeError) as excinfo:
            await flow.on_webhook(secret, _update(f"/start {nonce}"))
        assert excinfo.value.code is AuthErrorCode.UNAUTHORIZED

    assert flow.status(nonce).status is LoginStatus.PENDING


@pytest.mark.asyncio
async def test_webhook_confirms_and_replies(
    flow: TelegramBotConfirmationFlow, bot_api: FakeBotApi
) -> None:
    nonce = flow.init().nonce

    outcome = await flow.on_webhook(TEST_WEBHOOK_SECRET, _update(f"/start {nonce}"))

    assert outcome is WebhookOutcome.CONFIRMED
    report = flow.status(nonce)
    assert report.status is LoginStatus.READY
    assert report.external_id == "42"
    assert bot_api.sent == [{"chat_id": 4200, "text": CONFIRMED_REPLY}]


@pytest.mark.asyncio
async def test_duplicate_delivery_keeps_first_confirmer(
    flow: TelegramBotConfirmationFlow, bot_api: FakeBotApi
) -> None:
    nonce = flow.init().nonce
    await flow.on_webhook(TEST_WEBHOOK_SECRET, _update(f"/start {nonce}", from_id=42))

    outcome = await flow.on_webhook(TEST_WEBHOOK_SECRET, _update(f"/start {nonce}", from_id=77))

    assert outcome is WebhookOutcome.STALE
    assert flow.status(nonce).external_id == "42"
    assert bot_api.sent[-1]["text"] == STALE_REPLY


@pytest.mark.asyncio
async def test_bare_start_gets_hint(
    flow: TelegramBotConfirmationFlow, bot_api: FakeBotApi
) -> None:
    outcome = await flow.on_webhook(TEST_WEBHOOK_SECRET, _update("/start"))

    assert outcome is WebhookOutcome.HINTED
    assert bot_api.sent == [{"chat_id": 4200, "text": HINT_REPLY}]


@pytest.mark.asyncio
async def test_unrelated_updates_are_ignored(
    flow: TelegramBotConfirmationFlow, bot_api: FakeBotApi
) -> None:
    assert await flow.on_webhook(TEST_WEBHOOK_SECRET, _update("hi there")) is WebhookOutcome.IGNORED
    assert await flow.on_webhook(TEST_WEBHOOK_SECRET, {"update_id": 2}) is WebhookOutcome.IGNORED
    assert await flow.on_webhook(
        TEST_WEBHOOK_SECRET, {"message": {"chat": {"id": 1}, "sticker": {}}}
    ) is WebhookOutcome.IGNORED
    assert bot_api.sent == []


@pytest.mark.asyncio
async def test_reply_failure_does_not_break_confirmation(db_session: Session, clock: MutableClock) -> None:
    failing_bot = TelegramBotClient(
        TelegramBotConfig(token="t"),
        transport=httpx.MockTransport(lambda request: httpx.Response(502)),
    )
    flow = TelegramBotConfirmationFlow(
        TelegramNonceLedger(db_session, ttl_seconds=TTL, clock=clock),
        failing_bot,
        bot_username="FocusTestBot",
        webhook_secret=TEST_WEBHOOK_SECRET,
    )
    nonce = flow.init().nonce

    outcome = await flow.on_webhook(TEST_WEBHOOK_SECRET, _update(f"/start {nonce}"))

    assert outcome is WebhookOutcome.CONFIRMED
    assert flow.status(nonce).status is LoginStatus.READY


@pytest.mark.asyncio
async def test_bot_client_raises_on_error_status() -> None:
    bot = TelegramBotClient(
        TelegramBotConfig(token="t"),
        transport=httpx.MockTransport(lambda request: httpx.Response(403)),
    )
    with pytest.raises(TelegramBotError):
        await bot.send_message(1, "hello")
    await bot.close()


def test_status_unknown_nonce(flow: TelegramBotConfirmationFlow) -> None:
    assert flow.status("missing").status is LoginStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_status_reports_expired_even_when_confirmed(
    flow: TelegramBotConfirmationFlow, clock: MutableClock
) -> None:
    nonce = flow.init().nonce
    await flow.on_webhook(TEST_WEBHOOK_SECRET, _update(f"/start {nonce}"))

    clock.advance(TTL + 1)

    assert flow.status(nonce).status is LoginStatus.EXPIRED
    with pytest.raises(AuthBridgeError) as excinfo:
        flow.exchange(nonce)
    assert excinfo.value.code is AuthErrorCode.EXPIRED


@pytest.mark.asyncio
async def test_webhook_after_expiry_is_stale(
    flow: TelegramBotConfirmationFlow, clock: MutableClock, bot_api: FakeBotApi
) -> None:
    nonce = flow.init().nonce
    clock.advance(TTL + 1)

    outcome = await flow.on_webhook(TEST_WEBHOOK_SECRET, _update(f"/start {nonce}"))

    assert outcome is WebhookOutcome.STALE
    assert bot_api.sent[-1]["text"] == STALE_REPLY


def test_exchange_before_confirmation(flow: TelegramBotConfirmationFlow) -> None:
    nonce = flow.init().nonce

    with pytest.raises(AuthBridgeError) as excinfo:
        flow.exchange(nonce)
    assert excinfo.value.code is AuthErrorCode.NOT_READY


def test_exchange_unknown_nonce(flow: TelegramBotConfirmationFlow) -> None:
    with pytest.raises(AuthBridgeError) as excinfo:
        flow.exchange("missing")
    assert excinfo.value.code is AuthErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_exchange_consumes_once(flow: TelegramBotConfirmationFlow) -> None:
    nonce = flow.init().nonce
    await flow.on_webhook(TEST_WEBHOOK_SECRET, _update(f"/start {nonce}"))

    claim = flow.exchange(nonce)

    assert claim.channel is Channel.TELEGRAM_BOT
    assert claim.external_id == "42"
    assert flow.status(nonce).status is LoginStatus.PENDING
    with pytest.raises(AuthBridgeError) as excinfo:
        flow.exchange(nonce)
    assert excinfo.value.code is AuthErrorCode.ALREADY_USED


@pytest.mark.asyncio
async def test_non_numeric_sender_gets_hint(
    flow: TelegramBotConfirmationFlow, bot_api: FakeBotApi
) -> None:
    nonce = flow.init().nonce
    update = {"message": {"text": f"/start {nonce}", "chat": {"id": 1}, "from": {"id": "abc"}}}

    outcome = await flow.on_webhook(TEST_WEBHOOK_SECRET, update)

    assert outcome is WebhookOutcome.HINTED
    assert bot_api.sent == [{"chat_id": 1, "text": HINT_REPLY}]
    assert flow.status(nonce).status is LoginStatus.PENDING


@pytest.mark.asyncio
async def test_malformed_chat_and_sender_are_tolerated(
    flow: TelegramBotConfirmationFlow, bot_api: FakeBotApi
) -> None:
    nonce = flow.init().nonce

    bare = await flow.on_webhook(
        TEST_WEBHOOK_SECRET, {"message": {"text": "/start", "chat": "x", "from": {"id": 1}}}
    )
    with_nonce = await flow.on_webhook(
        TEST_WEBHOOK_SECRET, {"message": {"text": f"/start {nonce}", "chat": [], "from": "y"}}
    )

    assert bare is WebhookOutcome.HINTED
    assert with_nonce is WebhookOutcome.HINTED
    assert bot_api.sent == []
    assert flow.status(nonce).status is LoginStatus.PENDING


@pytest.mark.asyncio
async def test_exchange_works_at_exact_ttl(
    flow: TelegramBotConfirmationFlow, clock: MutableClock
) -> None:
    nonce = flow.init().nonce
    await flow.on_webhook(TEST_WEBHOOK_SECRET, _update(f"/start {nonce}"))

    clock.advance(TTL)

    assert flow.status(nonce).status is LoginStatus.READY
    assert flow.exchange(nonce).external_id == "42"
