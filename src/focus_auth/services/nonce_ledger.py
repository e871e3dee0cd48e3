"""Durable single-use nonce storage.

Both ledgers follow the same rules:

* state transitions are single conditional ``UPDATE`` statements whose
  ``rowcount`` decides who won, so two concurrent webhook deliveries or two
  concurrent exchange calls can never both succeed;
* expiry is computed when a row is read or guarded, never by a background job
  (``purge_expired`` only keeps the tables small);
* a losing caller gets a classified outcome rather than an exception.
"""

from __future__ import annotations

import logging
import secrets
import string
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from focus_auth.db.time import as_utc, utcnow
from focus_auth.models import TelegramLoginNonce, WalletNonce

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

WALLET_NONCE_LENGTH = 24
_WALLET_NONCE_ALPHABET = string.ascii_letters + string.digits


class LedgerOutcome(str, Enum):
    """Result of a conditional nonce transition."""

    OK = "ok"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    NOT_CONFIRMED = "not_confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    ALREADY_USED = "already_used"


@dataclass(frozen=True)
class NonceSnapshot:
    """Point-in-time view of a nonce row with expiry already evaluated."""

    nonce: str
    created_at: datetime
    expires_at: datetime
    used: bool
    expired: bool
    confirmer_id: str | None = None
    used_by: str | None = None

    @property
    def confirmed(self) -> bool:
        return self.confirmer_id is not None


class TelegramNonceLedger:
    """Nonces for the bot deep-link flow; TTL is derived from ``created_at``."""

    def __init__(self, db: Session, *, ttl_seconds: int, clock: Clock = utcnow) -> None:
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def _cutoff(self) -> datetime:
        return self._clock() - self.ttl

    def create(self) -> str:
        """Persist and return a fresh nonce."""
        nonce = str(uuid.uuid4())
        self.db.add(TelegramLoginNonce(nonce=nonce, created_at=self._clock(), used=False))
        self.db.commit()
        return nonce

    def get(self, nonce: str) -> NonceSnapshot | None:
        """Return the nonce state, or None when it was never issued."""
        row = self.db.execute(
            select(TelegramLoginNonce).where(TelegramLoginNonce.nonce == nonce)
        ).scalar_one_or_none()
        if row is None:
            return None
        created_at = as_utc(row.created_at)
        expires_at = created_at + self.ttl
        return NonceSnapshot(
            nonce=row.nonce,
            created_at=created_at,
            expires_at=expires_at,
            used=bool(row.used),
            expired=self._clock() > expires_at,
            confirmer_id=str(row.telegram_id) if row.telegram_id is not None else None,
        )

    def mark_confirmed(self, nonce: str, confirmer_id: int) -> LedgerOutcome:
        """Bind ``confirmer_id`` to the nonce if nobody has yet."""
        result = self.db.execute(
            update(TelegramLoginNonce)
            .where(
                TelegramLoginNonce.nonce == nonce,
                TelegramLoginNonce.telegram_id.is_(None),
                TelegramLoginNonce.used.is_(False),
                TelegramLoginNonce.created_at >= self._cutoff(),
            )
            .values(telegram_id=confirmer_id)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 1:
            return LedgerOutcome.OK
        return self._classify(nonce, default=LedgerOutcome.ALREADY_CONFIRMED)

    def mark_used(self, nonce: str) -> LedgerOutcome:
        """Consume a confirmed nonce exactly once."""
        result = self.db.execute(
            update(TelegramLoginNonce)
            .where(
                TelegramLoginNonce.nonce == nonce,
                TelegramLoginNonce.used.is_(False),
                TelegramLoginNonce.telegram_id.is_not(None),
                TelegramLoginNonce.created_at >= self._cutoff(),
            )
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 1:
            return LedgerOutcome.OK
        return self._classify(nonce, default=LedgerOutcome.NOT_CONFIRMED)

    def _classify(self, nonce: str, *, default: LedgerOutcome) -> LedgerOutcome:
        snapshot = self.get(nonce)
        if snapshot is None:
            return LedgerOutcome.NOT_FOUND
        if snapshot.expired:
            return LedgerOutcome.EXPIRED
        if snapshot.used:
            return LedgerOutcome.ALREADY_USED
        return default

    def purge_expired(self, *, grace_seconds: int = 0) -> int:
        """Delete rows older than TTL + grace. Returns the number removed."""
        cutoff = self._cutoff() - timedelta(seconds=grace_seconds)
        result = self.db.execute(
            delete(TelegramLoginNonce)
            .where(TelegramLoginNonce.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info("Purged %d expired bot login nonces", result.rowcount)
        return result.rowcount


class WalletNonceLedger:
    """Nonces for SIWE messages; expiry is stored with the row."""

    def __init__(self, db: Session, *, ttl_seconds: int, clock: Clock = utcnow) -> None:
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    @staticmethod
    def generate_nonce(length: int = WALLET_NONCE_LENGTH) -> str:
        """Return an alphanumeric nonce (SIWE forbids punctuation in nonces)."""
        return "".join(secrets.choice(_WALLET_NONCE_ALPHABET) for _ in range(length))

    def create(self) -> NonceSnapshot:
        now = self._clock()
        row = WalletNonce(
            nonce=self.generate_nonce(),
            created_at=now,
            expires_at=now + self.ttl,
            used=False,
        )
        self.db.add(row)
        self.db.commit()
        return NonceSnapshot(
            nonce=row.nonce,
            created_at=now,
            expires_at=now + self.ttl,
            used=False,
            expired=False,
        )

    def get(self, nonce: str) -> NonceSnapshot | None:
        row = self.db.execute(
            select(WalletNonce).where(WalletNonce.nonce == nonce)
        ).scalar_one_or_none()
        if row is None:
            return None
        expires_at = as_utc(row.expires_at)
        return NonceSnapshot(
            nonce=row.nonce,
            created_at=as_utc(row.created_at),
            expires_at=expires_at,
            used=bool(row.used),
            expired=self._clock() >= expires_at,
            used_by=row.used_by,
        )

    def mark_used(self, nonce: str, used_by: str) -> LedgerOutcome:
        """Consume the nonce on behalf of ``used_by`` exactly once."""
        result = self.db.execute(
            update(WalletNonce)
            .where(
                WalletNonce.nonce == nonce,
                WalletNonce.used.is_(False),
                WalletNonce.expires_at > self._clock(),
            )
            .values(used=True, used_by=used_by)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 1:
            return LedgerOutcome.OK
        snapshot = self.get(nonce)
        if snapshot is None:
            return LedgerOutcome.NOT_FOUND
        if snapshot.expired:
            return LedgerOutcome.EXPIRED
        return LedgerOutcome.ALREADY_USED

    def purge_expired(self, *, grace_seconds: int = 0) -> int:
        cutoff = self._clock() - timedelta(seconds=grace_seconds)
        result = self.db.execute(
            delete(WalletNonce)
            .where(WalletNonce.expires_at <= cutoff)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info("Purged %d expired wallet nonces", result.rowcount)
        return result.rowcount
