"""Verify Telegram Login Widget payloads (https://core.telegram.org/widgets/login)."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from focus_auth.core.errors import AuthBridgeError, AuthErrorCode
from focus_auth.services.claims import Channel, ExternalClaim

logger = logging.getLogger(__name__)


def build_data_check_string(fields: Mapping[str, Any]) -> str:
    """Return the newline-joined ``key=value`` pairs of every field except ``hash``."""
    pairs = sorted((key, value) for key, value in fields.items() if key != "hash")
    return "\n".join(f"{key}={'' if value is None else value}" for key, value in pairs)


def compute_widget_hash(bot_token: str, fields: Mapping[str, Any]) -> str:
    """Return the hex HMAC-SHA256 of the data-check string keyed by SHA256(bot_token)."""
    secret_key = hashlib.sha256(bot_token.encode()).digest()
    return hmac.new(
        secret_key,
        build_data_check_string(fields).encode(),
        hashlib.sha256,
    ).hexdigest()


class TelegramWidgetVerifier:
    """Stateless verifier for the signed field set returned by the login widget."""

    def __init__(
        self,
        bot_token: str,
        *,
        max_age_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.bot_token = bot_token
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    def verify(self, fields: Mapping[str, Any]) -> ExternalClaim:
        """Check freshness and signature, returning a claim for ``fields["id"]``.

        Raises:
            AuthBridgeError: ``BAD_REQUEST`` for a malformed payload, ``STALE``
                when ``auth_date`` is too old, ``BAD_SIGNATURE`` on hash mismatch.
        """
        if not self.bot_token:
            raise AuthBridgeError(
                AuthErrorCode.UNAUTHORIZED,
                "Telegram login is not configured",
                status_code=503,
            )

        received_hash = fields.get("hash")
        if not received_hash or not isinstance(received_hash, str):
            raise AuthBridgeError(AuthErrorCode.BAD_REQUEST, "Missing hash")
        if not fields.get("id"):
            raise AuthBridgeError(AuthErrorCode.BAD_REQUEST, "Missing id in Telegram login data")
        try:
            auth_date = int(fields.get("auth_date") or 0)
        except (TypeError, ValueError) as err:
            raise AuthBridgeError(AuthErrorCode.BAD_REQUEST, "Invalid auth_date") from err
        if not auth_date:
            raise AuthBridgeError(AuthErrorCode.BAD_REQUEST, "Missing auth_date")

        if self._clock() - auth_date > self.max_age_seconds:
            logger.warning("Rejected stale widget payload for id=%s", fields.get("id"))
            raise AuthBridgeError(AuthErrorCode.STALE, "Auth data is too old")

        expected = compute_widget_hash(self.bot_token, fields)
        if not hmac.compare_digest(expected.encode(), received_hash.encode()):
            logger.warning("Rejected widget payload with bad hash for id=%s", fields.get("id"))
            raise AuthBridgeError(AuthErrorCode.BAD_SIGNATURE, "Bad signature")

        proof = {key: value for key, value in fields.items() if key != "hash"}
        return ExternalClaim(
            channel=Channel.TELEGRAM_WIDGET,
            external_id=str(fields["id"]),
            raw_proof_fields=proof,
        )
