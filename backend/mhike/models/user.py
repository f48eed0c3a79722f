"""
M-Hike API: User SQLAlchemy Model
===================================

What:  ORM model representing the `users` table.
Who:   Used by the user service for registration, login and profile updates,
       and joined into hike/observation listings for owner details.

Asset column:
    `avatar` holds either the shared default sentinel (`default_avatar.png`)
    or a managed reference `/uploads/<generated-name>`. A managed reference
    is only written by a commit that also owns the file; the previous value
    is reaped after that commit succeeds.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from mhike.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """A registered hiker. Username and email are unique."""

    __tablename__ = "users"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    # bcrypt hash, never the plain password
    password: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    avatar: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        server_default=text("'default_avatar.png'"),
        comment="Default sentinel or /uploads/<name> reference",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="1",
    )

    def __repr__(self) -> str:
        return f"<User(user_id={self.user_id}, username='{self.username}')>"
