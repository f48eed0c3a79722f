"""
M-Hike API: Observation Schemas
=================================

Observations are created and updated through multipart forms (they may
carry a photo). The form models below validate the text fields once the
photo, if any, has been received.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from mhike.models.observation import OBSERVATION_TYPES
from mhike.schemas.common import CamelModel


class _ObservationRules(CamelModel):
    @field_validator("observation", check_fields=False)
    @classmethod
    def non_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Observation is required")
        return v

    @field_validator("observation_type", check_fields=False)
    @classmethod
    def known_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in OBSERVATION_TYPES:
            raise ValueError("Invalid observation type")
        return v

    @field_validator("latitude", check_fields=False)
    @classmethod
    def valid_latitude(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not -90 <= v <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        return v

    @field_validator("longitude", check_fields=False)
    @classmethod
    def valid_longitude(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not -180 <= v <= 180:
            raise ValueError("Longitude must be between -180 and 180")
        return v


class ObservationForm(_ObservationRules):
    observation: str = Field(default="", validate_default=True)
    observation_time: Optional[datetime] = None
    comments: Optional[str] = None
    observation_type: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ObservationUpdateForm(_ObservationRules):
    observation: Optional[str] = None
    observation_time: Optional[datetime] = None
    comments: Optional[str] = None
    observation_type: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ObservationResponse(CamelModel):
    observation_id: int
    hike_id: int
    user_id: int
    observation: str
    observation_time: datetime
    comments: Optional[str] = None
    observation_type: Optional[str] = None
    photo_url: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    username: Optional[str] = None
    user_avatar: Optional[str] = None
    user_email: Optional[str] = None

    # Only set on the "my observations" listing
    hike_name: Optional[str] = None
    hike_location: Optional[str] = None


class ObservationListResponse(CamelModel):
    count: int
    observations: List[ObservationResponse]


class ObservationCreatedResponse(CamelModel):
    message: str
    observation_id: int
    observation: ObservationResponse


class ObservationUpdatedResponse(CamelModel):
    message: str
    observation: ObservationResponse
