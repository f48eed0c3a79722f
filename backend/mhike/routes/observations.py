"""
M-Hike API: Observation Route Handlers
========================================

What:  Observation endpoints, nested under /api/hikes.
How:   Create and update are multipart (optional `photo` part). The photo is
       received before the service runs; the service removes it again if
       the request fails at any later step.

Route Inventory:
    POST   /api/hikes/{hike_id}/observations
    GET    /api/hikes/{hike_id}/observations
    GET    /api/hikes/observations/mine
    GET    /api/hikes/observations/{observation_id}
    PUT    /api/hikes/observations/{observation_id}
    DELETE /api/hikes/observations/{observation_id}
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, Path, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from mhike.database import MAX_ROW_ID, get_db_session
from mhike.schemas.common import ErrorResponse, MessageResponse
from mhike.schemas.observation import (
    ObservationCreatedResponse,
    ObservationListResponse,
    ObservationResponse,
    ObservationUpdatedResponse,
)
from mhike.security import Principal, get_current_user
from mhike.services.observation_service import observation_service
from mhike.services.storage import AssetStorage, get_asset_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/hikes", tags=["Observations"])

_ERRORS = {
    400: {"description": "Invalid input or rejected upload", "model": ErrorResponse},
    403: {"description": "Observation belongs to another user", "model": ErrorResponse},
    404: {"description": "Hike or observation not found", "model": ErrorResponse},
}


def _provided(**fields: Optional[str]) -> Dict[str, Any]:
    """Keep only the form fields the client actually sent, keyed by API name."""
    return {name: value for name, value in fields.items() if value is not None}


def _is_true(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("true", "1", "yes", "on")


# ── Literal paths first ───────────────────────────────────────────────────

@router.get(
    "/observations/mine",
    response_model=ObservationListResponse,
    summary="List my observations across all hikes",
)
async def list_my_observations(
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ObservationListResponse:
    return await observation_service.list_mine(db, principal)


@router.get(
    "/observations/{observation_id}",
    response_model=ObservationResponse,
    responses=_ERRORS,
)
async def get_observation(
    observation_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ObservationResponse:
    return await observation_service.get(db, observation_id)


@router.put(
    "/observations/{observation_id}",
    response_model=ObservationUpdatedResponse,
    responses=_ERRORS,
    summary="Update an observation, replace or delete its photo",
    description="Send deletePhoto=true to remove the current photo without replacing it.",
)
async def update_observation(
    observation_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    observation: Optional[str] = Form(None),
    observation_time: Optional[str] = Form(None, alias="observationTime"),
    comments: Optional[str] = Form(None),
    observation_type: Optional[str] = Form(None, alias="observationType"),
    latitude: Optional[str] = Form(None),
    longitude: Optional[str] = Form(None),
    delete_photo: Optional[str] = Form(None, alias="deletePhoto"),
    photo: Optional[UploadFile] = File(None),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: AssetStorage = Depends(get_asset_storage),
) -> ObservationUpdatedResponse:
    pending = await storage.receive(photo, "photo")
    fields = _provided(
        observation=observation,
        observationTime=observation_time,
        comments=comments,
        observationType=observation_type,
        latitude=latitude,
        longitude=longitude,
    )
    return await observation_service.update(
        db, storage, principal, observation_id, fields, pending,
        delete_photo=_is_true(delete_photo),
    )


@router.delete(
    "/observations/{observation_id}",
    response_model=MessageResponse,
    responses=_ERRORS,
)
async def delete_observation(
    observation_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: AssetStorage = Depends(get_asset_storage),
) -> MessageResponse:
    return await observation_service.delete(db, storage, principal, observation_id)


# ── Per-hike collection ───────────────────────────────────────────────────

@router.post(
    "/{hike_id}/observations",
    status_code=201,
    response_model=ObservationCreatedResponse,
    responses=_ERRORS,
    summary="Record an observation on a hike",
)
async def create_observation(
    hike_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    observation: Optional[str] = Form(None),
    observation_time: Optional[str] = Form(None, alias="observationTime"),
    comments: Optional[str] = Form(None),
    observation_type: Optional[str] = Form(None, alias="observationType"),
    latitude: Optional[str] = Form(None),
    longitude: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: AssetStorage = Depends(get_asset_storage),
) -> ObservationCreatedResponse:
    pending = await storage.receive(photo, "photo")
    fields = _provided(
        observation=observation,
        observationTime=observation_time,
        comments=comments,
        observationType=observation_type,
        latitude=latitude,
        longitude=longitude,
    )
    return await observation_service.create(db, storage, principal, hike_id, fields, pending)


@router.get(
    "/{hike_id}/observations",
    response_model=ObservationListResponse,
    responses=_ERRORS,
)
async def list_hike_observations(
    hike_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ObservationListResponse:
    return await observation_service.list_for_hike(db, hike_id)
