# src/focus_auth/api/v1/endpoints/telegram.py
"""Telegram login endpoints: bot deep-link flow and login widget exchange."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Header, Request, Response, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from focus_auth.api.v1.dependencies import BotFlowDep, SessionBridgeDep, WidgetVerifierDep
from focus_auth.core.request_context import get_request_id
from focus_auth.schemas.common import ERROR_RESPONSES
from focus_auth.schemas.telegram import (
    LoginInitResponse,
    LoginStatusResponse,
    NonceRequest,
    SessionResponse,
    WidgetExchangeRequest,
)
from focus_auth.services.telegram_bot import LoginStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telegram"], responses=ERROR_RESPONSES)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"

_STATUS_CODES = {
    LoginStatus.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LoginStatus.EXPIRED: status.HTTP_410_GONE,
}


@router.post(
    "/tg-login-init",
    response_model=LoginInitResponse,
    status_code=status.HTTP_201_CREATED,
)
async def login_init(flow: BotFlowDep) -> LoginInitResponse:
    """Start a bot login and return the deep links carrying its nonce."""
    initiation = flow.init()
    return LoginInitResponse(
        nonce=initiation.nonce,
        deep_link_app=initiation.deep_link_app,
        deep_link_web=initiation.deep_link_web,
        rid=get_request_id(),
    )


@router.post(
    "/tg-login-status",
    response_model=LoginStatusResponse,
    responses={
        status.HTTP_404_NOT_FOUND: {"model": LoginStatusResponse},
        status.HTTP_410_GONE: {"model": LoginStatusResponse},
    },
)
async def login_status(
    body: NonceRequest,
    flow: BotFlowDep,
    response: Response,
) -> LoginStatusResponse:
    """Report whether the bot has confirmed the nonce yet.

    Side-effect free; clients poll it until ``ready`` or their own timeout.
    """
    report = flow.status(body.nonce)
    logger.debug("Status poll for %s: %s", body.nonce, report.status.value)
    response.status_code = _STATUS_CODES.get(report.status, status.HTTP_200_OK)
    return LoginStatusResponse(
        status=report.status.value,
        external_id=report.external_id,
        rid=get_request_id(),
    )


@router.post("/tg-bot-webhook", response_class=PlainTextResponse)
async def bot_webhook(
    request: Request,
    flow: BotFlowDep,
    secret: Annotated[str | None, Header(alias=SECRET_HEADER)] = None,
) -> PlainTextResponse:
    """Receive Bot API updates; confirmations arrive as ``/start <nonce>``."""
    flow.verify_secret(secret)
    try:
        update: Any = await request.json()
    except ValueError:
        update = {}
    if not isinstance(update, dict):
        update = {}
    try:
        await flow.on_webhook(secret, update)
    except SQLAlchemyError:
        logger.exception("Bot update could not be processed")
    return PlainTextResponse("ok")


@router.post("/tg-exchange", response_model=SessionResponse)
async def exchange(
    body: NonceRequest,
    flow: BotFlowDep,
    bridge: SessionBridgeDep,
) -> SessionResponse:
    """Consume a confirmed nonce and return a backend session."""
    claim = flow.exchange(body.nonce)
    tokens = await bridge.issue(claim)
    return SessionResponse.from_tokens(tokens, get_request_id())


@router.post("/widget-exchange", response_model=SessionResponse)
async def widget_exchange(
    body: WidgetExchangeRequest,
    verifier: WidgetVerifierDep,
    bridge: SessionBridgeDep,
) -> SessionResponse:
    """Verify a login widget payload and return a backend session."""
    claim = verifier.verify(body.auth_fields())
    tokens = await bridge.issue(claim)
    return SessionResponse.from_tokens(tokens, get_request_id())
