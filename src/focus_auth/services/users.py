"""Helpers for the durable application user row bound to each backend account."""
from __future__ import annotations

import logging

from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from focus_auth.models.user import AppUser

__all__ = [
    "get_user_by_login",
    "upsert_application_user",
]

logger = logging.getLogger(__name__)

_CONFLICT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


def get_user_by_login(db: Session, provider: str, login_id: str) -> AppUser | None:
    """Return the user for ``(provider, login_id)``."""
    return db.execute(
        select(AppUser).where(AppUser.from_login == provider, AppUser.login_id == login_id)
    ).scalar_one_or_none()


def _insert_if_absent(db: Session, values: dict[str, object]) -> None:
    dialect = db.get_bind().dialect.name
    conflict_insert = _CONFLICT_INSERTS.get(dialect)
    if conflict_insert is not None:
        db.execute(conflict_insert(AppUser).values(**values).on_conflict_do_nothing())
        return
    try:
        with db.begin_nested():
            db.execute(insert(AppUser).values(**values))
    except IntegrityError:
        logger.debug("User %s/%s inserted concurrently", values["from_login"], values["login_id"])


def upsert_application_user(
    db: Session,
    *,
    provider: str,
    login_id: str,
    auth_uid: str | None,
    name: str | None,
    email: str | None,
) -> AppUser:
    """Make sure exactly one row exists for ``(provider, login_id)``.

    An existing row only ever gains a missing ``auth_uid``; its ``name`` and
    ``email`` are left untouched. Safe to call concurrently for the same login.
    """
    if auth_uid is not None:
        db.execute(
            update(AppUser)
            .where(
                AppUser.from_login == provider,
                AppUser.login_id == login_id,
                AppUser.auth_uid.is_(None),
            )
            .values(auth_uid=auth_uid)
            .execution_options(synchronize_session=False)
        )

    _insert_if_absent(
        db,
        {
            "from_login": provider,
            "login_id": login_id,
            "auth_uid": auth_uid,
            "name": name,
            "email": email,
            "have_premium": False,
        },
    )
    db.commit()

    user = get_user_by_login(db, provider, login_id)
    if user is None:
        raise RuntimeError(f"user row for {provider}/{login_id} missing after upsert")
    return user
