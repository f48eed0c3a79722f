"""
M-Hike API: Hike Schemas
==========================

JSON request bodies and responses for /api/hikes.

HikeCreate validates the full record. HikeUpdate accepts any subset of the
same fields; services read `model_dump(exclude_unset=True)` so only the keys
the client actually sent are written.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import Field, field_validator

from mhike.models.hike import DIFFICULTY_LEVELS
from mhike.schemas.common import CamelModel

# Columns that may not be cleared by an update
_REQUIRED_ON_UPDATE = (
    "name",
    "location",
    "hike_date",
    "parking_available",
    "length",
    "difficulty_level",
)


class _HikeRules(CamelModel):
    """Field rules shared by create and update."""

    @field_validator("name", "location", check_fields=False)
    @classmethod
    def non_blank(cls, v: Optional[str], info) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            label = "Hike name" if info.field_name == "name" else "Location"
            raise ValueError(f"{label} is required")
        return v

    @field_validator("length", check_fields=False)
    @classmethod
    def positive_length(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("Length must be a positive number")
        return v

    @field_validator("difficulty_level", check_fields=False)
    @classmethod
    def known_difficulty(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in DIFFICULTY_LEVELS:
            raise ValueError("Invalid difficulty level")
        return v

    @field_validator("elevation_gain", check_fields=False)
    @classmethod
    def non_negative_elevation(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("Elevation gain cannot be negative")
        return v


class HikeCreate(_HikeRules):
    name: str
    location: str
    hike_date: date
    parking_available: bool
    length: float
    difficulty_level: str
    description: Optional[str] = None
    estimated_duration: Optional[str] = None
    elevation_gain: Optional[int] = None
    trail_type: Optional[str] = None
    equipment_needed: Optional[str] = None
    weather_conditions: Optional[str] = None


class HikeUpdate(_HikeRules):
    name: Optional[str] = None
    location: Optional[str] = None
    hike_date: Optional[date] = None
    parking_available: Optional[bool] = None
    length: Optional[float] = None
    difficulty_level: Optional[str] = None
    description: Optional[str] = None
    estimated_duration: Optional[str] = None
    elevation_gain: Optional[int] = None
    trail_type: Optional[str] = None
    equipment_needed: Optional[str] = None
    weather_conditions: Optional[str] = None

    @field_validator(*_REQUIRED_ON_UPDATE, mode="before")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be cleared")
        return v


class HikeResponse(CamelModel):
    hike_id: int
    user_id: int
    name: str
    location: str
    hike_date: date
    parking_available: bool
    length: float
    difficulty_level: str
    description: Optional[str] = None
    estimated_duration: Optional[str] = None
    elevation_gain: Optional[int] = None
    trail_type: Optional[str] = None
    equipment_needed: Optional[str] = None
    weather_conditions: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Owner details, joined from users
    username: Optional[str] = None
    user_avatar: Optional[str] = None
    user_email: Optional[str] = None


class HikeListResponse(CamelModel):
    count: int = Field(description="Number of hikes in this response")
    hikes: List[HikeResponse]


class HikeCreatedResponse(CamelModel):
    message: str
    hike_id: int
    hike: HikeResponse


class HikeUpdatedResponse(CamelModel):
    message: str
    hike: HikeResponse
