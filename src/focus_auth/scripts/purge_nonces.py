# src/focus_auth/scripts/purge_nonces.py
"""
Cron job removing login nonces that can no longer be used.

Expiry is enforced at read time, so this only keeps the nonce tables small.
Run it as often as convenient, e.g. hourly:

    python -m focus_auth.scripts.purge_nonces --grace-seconds 3600
"""
from __future__ import annotations

import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from focus_auth.core.request_context import configure_logging
from focus_auth.core.settings import settings
from focus_auth.db.session import SessionLocal
from focus_auth.services.nonce_ledger import TelegramNonceLedger, WalletNonceLedger

logger = logging.getLogger(__name__)


def purge(grace_seconds: int = 0) -> tuple[int, int]:
    """Delete expired bot and wallet nonces.

    Returns:
        ``(bot_nonces_removed, wallet_nonces_removed)``
    """
    db = SessionLocal()
    try:
        bot_removed = TelegramNonceLedger(
            db, ttl_seconds=settings.bot_nonce_ttl_seconds
        ).purge_expired(grace_seconds=grace_seconds)
        wallet_removed = WalletNonceLedger(
            db, ttl_seconds=settings.wallet_nonce_ttl_seconds
        ).purge_expired(grace_seconds=grace_seconds)
    finally:
        db.close()
    return bot_removed, wallet_removed


def main() -> None:
    parser = argparse.ArgumentParser(description="Purge expired login nonces")
    parser.add_argument(
        "--grace-seconds",
        type=int,
        default=0,
        help="Keep nonces for this long past their expiry (useful for debugging).",
    )
    args = parser.parse_args()

    configure_logging(settings.log_level)
    try:
        bot_removed, wallet_removed = purge(args.grace_seconds)
    except SQLAlchemyError as exc:
        logger.error("Nonce purge failed: %s", exc)
        sys.exit(1)
    print(f"[purge_nonces] removed {bot_removed} bot and {wallet_removed} wallet nonces")


if __name__ == "__main__":
    main()
