"""Turn a verified ``ExternalClaim`` into backend session material.

The backend never stores a password for bridged accounts. Telegram logins use
a credential re-derived on every call from a server secret and the external
id; wallet logins use one-time magic-link tokens instead.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from focus_auth.core.errors import AuthBridgeError, AuthErrorCode
from focus_auth.services.backend_auth import (
    BackendAuthClient,
    BackendAuthError,
    InvalidCredentialsError,
    SessionTokens,
    UserAlreadyExistsError,
)
from focus_auth.services.claims import ExternalClaim, Provider
from focus_auth.services.users import upsert_application_user

logger = logging.getLogger(__name__)

CREDENTIAL_VERSION = "v1"
HTTP_BAD_GATEWAY = 502


def derive_credential(secret: str, provider: Provider | str, external_id: str) -> str:
    """Return ``HMAC-SHA256(secret, "<provider>:<external_id>:v1")`` as hex."""
    provider_name = provider.value if isinstance(provider, Provider) else provider
    message = f"{provider_name}:{external_id}:{CREDENTIAL_VERSION}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def synthetic_email(
    claim: ExternalClaim,
    *,
    telegram_domain: str = "telegram.local",
    wallet_domain: str = "wallet.local",
) -> str:
    """Return the backend account email standing in for an external identity."""
    if claim.provider is Provider.WALLET:
        return f"eth_{claim.external_id.lower()}@{wallet_domain}"
    return f"tg-{claim.external_id}@{telegram_domain}"


def _account_metadata(claim: ExternalClaim) -> dict[str, Any]:
    fields = claim.raw_proof_fields
    if claim.provider is Provider.WALLET:
        return {"provider": "siwe", "wallet_address": claim.external_id}
    metadata: dict[str, Any] = {
        "provider": Provider.TELEGRAM.value,
        "telegram_id": claim.external_id,
        "full_name": claim.display_name,
    }
    for key in ("username", "photo_url"):
        if fields.get(key):
            metadata[key] = fields[key]
    return metadata


async def sign_in_with_reset(
    backend: BackendAuthClient,
    email: str,
    credential: str,
) -> SessionTokens:
    """Password sign-in that heals a credential mismatch once.

    When the stored password no longer matches (the credential secret was
    rotated), the account password is reset to ``credential`` and sign-in is
    retried exactly once.

    Raises:
        BackendAuthError: If the retry also fails or the account cannot be found.
    """
    try:
        return await backend.sign_in_with_password(email, credential)
    except InvalidCredentialsError:
        logger.warning("Credential mismatch for %s, resetting password", email)

    user = await backend.find_user_by_email(email)
    if user is None:
        raise BackendAuthError(f"no backend account for {email}")
    await backend.update_user_password(user.id, credential)
    return await backend.sign_in_with_password(email, credential)


def _backend_failure(code: AuthErrorCode, exc: BackendAuthError) -> AuthBridgeError:
    status_code = HTTP_BAD_GATEWAY if exc.status_code is None else None
    return AuthBridgeError(code, str(exc), status_code=status_code)


@dataclass(frozen=True)
class RedemptionTicket:
    """One-time login material handed to the client for OTP redemption."""

    email: str
    token: str | None
    email_otp: str | None
    type: str | None
    address: str
    user_id: str | None = None


class SessionBridge:
    """Provision backend accounts and application users for verified claims."""

    def __init__(
        self,
        db: Session,
        backend: BackendAuthClient,
        *,
        credential_secret: str,
        telegram_email_domain: str = "telegram.local",
        wallet_email_domain: str = "wallet.local",
    ) -> None:
        self.db = db
        self.backend = backend
        self.credential_secret = credential_secret
        self.telegram_email_domain = telegram_email_domain
        self.wallet_email_domain = wallet_email_domain

    def email_for(self, claim: ExternalClaim) -> str:
        return synthetic_email(
            claim,
            telegram_domain=self.telegram_email_domain,
            wallet_domain=self.wallet_email_domain,
        )

    async def _ensure_account(self, claim: ExternalClaim, email: str, password: str | None) -> None:
        try:
            await self.backend.create_user(
                email, password=password, metadata=_account_metadata(claim)
            )
            logger.info("Created backend account for %s", email)
        except UserAlreadyExistsError:
            logger.debug("Backend account for %s already exists", email)
        except BackendAuthError as exc:
            logger.error("Could not create backend account for %s: %s", email, exc)
            raise _backend_failure(AuthErrorCode.CREATE_USER_FAILED, exc) from exc

    def _record_user(self, claim: ExternalClaim, email: str, auth_uid: str | None) -> None:
        upsert_application_user(
            self.db,
            provider=claim.provider.value,
            login_id=claim.external_id,
            auth_uid=auth_uid,
            name=claim.display_name,
            email=email,
        )

    async def issue(self, claim: ExternalClaim) -> SessionTokens:
        """Return a fresh token pair for a password-channel claim.

        Raises:
            AuthBridgeError: ``CREATE_USER_FAILED`` or ``AUTH_FAILED``.
        """
        if not claim.channel.uses_password:
            raise ValueError(f"{claim.channel.value} claims are issued through issue_link()")
        if not self.credential_secret:
            raise AuthBridgeError(
                AuthErrorCode.AUTH_FAILED,
                "Credential secret is not configured",
                status_code=503,
            )

        started = time.perf_counter()
        email = self.email_for(claim)
        credential = derive_credential(self.credential_secret, claim.provider, claim.external_id)

        await self._ensure_account(claim, email, credential)
        try:
            tokens = await sign_in_with_reset(self.backend, email, credential)
        except BackendAuthError as exc:
            logger.error("Sign-in failed for %s: %s", email, exc)
            raise _backend_failure(AuthErrorCode.AUTH_FAILED, exc) from exc

        self._record_user(claim, email, tokens.user_id)
        logger.info(
            "Issued session for %s via %s in %.3fs",
            email,
            claim.channel.value,
            time.perf_counter() - started,
        )
        return tokens

    async def issue_link(self, claim: ExternalClaim) -> RedemptionTicket:
        """Return magic-link material the client redeems for a session.

        Raises:
            AuthBridgeError: ``CREATE_USER_FAILED`` or ``AUTH_FAILED``.
        """
        if claim.channel.uses_password:
            raise ValueError(f"{claim.channel.value} claims are issued through issue()")
        email = self.email_for(claim)
        await self._ensure_account(claim, email, None)
        try:
            link = await self.backend.generate_magic_link(
                email, metadata={"provider": "siwe", "wallet": claim.external_id}
            )
        except BackendAuthError as exc:
            logger.error("Magic link generation failed for %s: %s", email, exc)
            raise _backend_failure(AuthErrorCode.AUTH_FAILED, exc) from exc

        self._record_user(claim, email, link.user_id)
        logger.info("Issued redemption ticket for %s", email)
        return RedemptionTicket(
            email=email,
            token=link.token,
            email_otp=link.email_otp,
            type=link.verification_type,
            address=claim.external_id,
            user_id=link.user_id,
        )

    async def redeem(self, ticket: RedemptionTicket) -> SessionTokens:
        """Exchange a redemption ticket for a session on the server side."""
        try:
            if ticket.type == "magiclink" and ticket.token:
                return await self.backend.verify_otp(
                    verification_type="magiclink", token_hash=ticket.token
                )
            if ticket.type == "email" and ticket.email_otp:
                return await self.backend.verify_otp(
                    verification_type="email", email=ticket.email, token=ticket.email_otp
                )
        except BackendAuthError as exc:
            raise _backend_failure(AuthErrorCode.AUTH_FAILED, exc) from exc
        raise AuthBridgeError(AuthErrorCode.BAD_REQUEST, "Ticket carries no redeemable token")
