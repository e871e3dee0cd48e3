"""Telegram login schemas (bot deep link and login widget)."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from focus_auth.services.backend_auth import SessionTokens


class NonceRequest(BaseModel):
    """Body of the bot-flow status and exchange calls."""

    nonce: str = Field(..., min_length=1, description="Nonce returned by /tg-login-init")


class LoginInitResponse(BaseModel):
    nonce: str
    deep_link_app: str = Field(..., description="tg:// link opening the bot in the Telegram app")
    deep_link_web: str = Field(..., description="https://t.me link for browsers")
    rid: str


class LoginStatusResponse(BaseModel):
    status: Literal["pending", "ready", "expired", "not_found"]
    external_id: str | None = Field(None, description="Confirming Telegram id once ready")
    rid: str


class SessionResponse(BaseModel):
    """Backend session handed to the client after a successful exchange."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str
    user_id: str | None = None
    rid: str

    @classmethod
    def from_tokens(cls, tokens: SessionTokens, rid: str) -> "SessionResponse":
        return cls(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.expires_in,
            token_type=tokens.token_type,
            user_id=tokens.user_id,
            rid=rid,
        )


class WidgetExchangeRequest(BaseModel):
    """Login widget fields, sent flat or wrapped in ``auth``."""

    model_config = ConfigDict(extra="allow")

    auth: dict[str, Any] | None = None

    def auth_fields(self) -> dict[str, Any]:
        if self.auth is not None:
            return dict(self.auth)
        return dict(self.model_extra or {})
