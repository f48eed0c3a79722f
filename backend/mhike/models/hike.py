"""
M-Hike API: Hike SQLAlchemy Model
===================================

What:  ORM model representing the `hikes` table.
How:   Each hike belongs to one user; deleting the user cascades at the
       database level (ON DELETE CASCADE), and deleting a hike cascades to
       its observations the same way.

Query Patterns:
    - A user's hikes, newest first → idx_hikes_user_id
    - Search by name (LIKE)        → idx_hikes_name
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from mhike.database import Base
from mhike.models.user import utcnow

# Fields a PUT /api/hikes/{id} request may change; anything else is ignored
UPDATABLE_FIELDS = (
    "name",
    "location",
    "hike_date",
    "parking_available",
    "length",
    "difficulty_level",
    "description",
    "estimated_duration",
    "elevation_gain",
    "trail_type",
    "equipment_needed",
    "weather_conditions",
)

DIFFICULTY_LEVELS = ("Easy", "Moderate", "Difficult", "Expert")


class Hike(Base):
    """A logged hike. Owned by exactly one user."""

    __tablename__ = "hikes"

    hike_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    hike_date: Mapped[date] = mapped_column(Date, nullable=False)
    parking_available: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Kilometres
    length: Mapped[float] = mapped_column(Float, nullable=False)

    difficulty_level: Mapped[str] = mapped_column(String(20), nullable=False)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_duration: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    elevation_gain: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    trail_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    equipment_needed: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    weather_conditions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    __table_args__ = (
        Index("idx_hikes_user_id", "user_id"),
        Index("idx_hikes_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<Hike(hike_id={self.hike_id}, name='{self.name}', user_id={self.user_id})>"
