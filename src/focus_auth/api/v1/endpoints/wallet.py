# src/focus_auth/api/v1/endpoints/wallet.py
"""Wallet (Sign-In With Ethereum) endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from focus_auth.api.v1.dependencies import SessionBridgeDep, WalletVerifierDep
from focus_auth.core.request_context import get_request_id
from focus_auth.schemas.common import ERROR_RESPONSES
from focus_auth.schemas.wallet import (
    WalletNonceResponse,
    WalletVerifyRequest,
    WalletVerifyResponse,
)

router = APIRouter(tags=["wallet"], responses=ERROR_RESPONSES)


@router.get("/wallet-nonce", response_model=WalletNonceResponse)
async def wallet_nonce(verifier: WalletVerifierDep) -> WalletNonceResponse:
    """Issue a nonce for the client to embed in its SIWE message."""
    snapshot = verifier.issue_nonce()
    return WalletNonceResponse(
        nonce=snapshot.nonce,
        expires_at=snapshot.expires_at,
        rid=get_request_id(),
    )


@router.post("/wallet-verify", response_model=WalletVerifyResponse)
async def wallet_verify(
    body: WalletVerifyRequest,
    verifier: WalletVerifierDep,
    bridge: SessionBridgeDep,
) -> WalletVerifyResponse:
    """Verify a signed SIWE message and return one-time login material.

    The nonce is consumed before the backend is contacted, so a retry after a
    backend failure needs a fresh nonce.
    """
    claim = verifier.verify(body.message, body.signature, body.address)
    ticket = await bridge.issue_link(claim)
    return WalletVerifyResponse(
        email=ticket.email,
        token=ticket.token,
        email_otp=ticket.email_otp,
        type=ticket.type,
        address=ticket.address,
        rid=get_request_id(),
    )
