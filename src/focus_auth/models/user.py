# src/focus_auth/models/user.py
"""SQLAlchemy model for durable application users."""

from __future__ import annotations

from sqlalchemy import Boolean, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from focus_auth.db.session import Base


class AppUser(Base):
    """Application user bound to exactly one backend auth account.

    ``login_id`` is the external identity (Telegram id or checksummed wallet
    address) and is unique within its ``from_login`` provider namespace.
    """

    __tablename__ = "user"
    __table_args__ = (
        UniqueConstraint("from_login", "login_id", name="uq_user_provider_login"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    auth_uid: Mapped[str | None] = mapped_column(Text, unique=True, nullable=True)
    login_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_login: Mapped[str] = mapped_column(Text, nullable=False)
    have_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
