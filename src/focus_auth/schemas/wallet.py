"""Wallet (SIWE) login schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class WalletNonceResponse(BaseModel):
    nonce: str = Field(..., description="Value to embed as the SIWE Nonce line")
    expires_at: datetime
    rid: str


class WalletVerifyRequest(BaseModel):
    """Signed SIWE message submitted by the wallet."""

    address: str | None = Field(None, description="Claimed address; defaults to the message's")
    message: str = Field(..., description="Full EIP-4361 message text")
    signature: str = Field(..., description="Hex personal_sign signature")


class WalletVerifyResponse(BaseModel):
    """Magic-link material the client redeems for a session."""

    email: str
    token: str | None = None
    email_otp: str | None = None
    type: str | None = Field(None, description="'magiclink' for token, 'email' for email_otp")
    address: str
    rid: str
