"""
M-Hike API: Observation SQLAlchemy Model
==========================================

What:  ORM model representing the `observations` table.
How:   An observation belongs to a hike and to the user who recorded it,
       which is not necessarily the hike owner. Only its creator may edit
       or delete it.

Asset column:
    `photo_url` is NULL or a managed `/uploads/<generated-name>` reference.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from mhike.database import Base
from mhike.models.user import utcnow

UPDATABLE_FIELDS = (
    "observation",
    "observation_time",
    "comments",
    "observation_type",
    "latitude",
    "longitude",
)

OBSERVATION_TYPES = ("Wildlife", "Vegetation", "Weather", "Trail Condition", "Other")


class Observation(Base):
    """Something noticed on a hike, optionally with a photo and coordinates."""

    __tablename__ = "observations"

    observation_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    hike_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("hikes.hike_id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )

    observation: Mapped[str] = mapped_column(Text, nullable=False)
    observation_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    observation_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    photo_url: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="NULL or /uploads/<name> reference",
    )

    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

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
        Index("idx_observations_hike_id", "hike_id"),
        Index("idx_observations_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Observation(observation_id={self.observation_id}, "
            f"hike_id={self.hike_id}, user_id={self.user_id})>"
        )
