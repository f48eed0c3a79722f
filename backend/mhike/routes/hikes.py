"""
M-Hike API: Hike Route Handlers
=================================

What:  CRUD and search endpoints under /api/hikes.
Who:   Called by the mobile app's hike list, search and detail screens.

Route order matters: the literal paths (/all, /search/...) are declared
before /{hike_id} so they are never captured by the path parameter.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from mhike.database import MAX_ROW_ID, get_db_session
from mhike.models.hike import DIFFICULTY_LEVELS
from mhike.schemas.common import ErrorResponse, MessageResponse
from mhike.schemas.hike import (
    HikeCreate,
    HikeCreatedResponse,
    HikeListResponse,
    HikeResponse,
    HikeUpdate,
    HikeUpdatedResponse,
)
from mhike.security import Principal, get_current_user
from mhike.services.hike_service import hike_service
from mhike.services.storage import AssetStorage, get_asset_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/hikes", tags=["Hikes"])

_NOT_OWNER = {
    403: {"description": "Hike belongs to another user", "model": ErrorResponse},
    404: {"description": "Hike not found", "model": ErrorResponse},
}


@router.get("", response_model=HikeListResponse, summary="List my hikes")
async def list_my_hikes(
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> HikeListResponse:
    return await hike_service.list_mine(db, principal)


@router.get(
    "/all",
    response_model=HikeListResponse,
    summary="List hikes logged by other users",
    description=f"Optional filters: difficulty ({', '.join(DIFFICULTY_LEVELS)}) and location.",
)
async def list_other_hikes(
    difficulty: Optional[str] = Query(default=None),
    location: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    offset: int = Query(default=0, ge=0, le=MAX_ROW_ID),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> HikeListResponse:
    return await hike_service.list_others(
        db, principal, difficulty=difficulty, location=location, limit=limit, offset=offset
    )


@router.get("/search/name", response_model=HikeListResponse, summary="Search my hikes by name")
async def search_my_hikes_by_name(
    name: Optional[str] = Query(default=None),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> HikeListResponse:
    return await hike_service.search_mine_by_name(db, principal, name)


@router.get("/search/advanced", response_model=HikeListResponse, summary="Filter my hikes")
async def advanced_search(
    name: Optional[str] = Query(default=None),
    location: Optional[str] = Query(default=None),
    length: Optional[float] = Query(default=None),
    hike_date: Optional[date] = Query(default=None, alias="date"),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> HikeListResponse:
    return await hike_service.advanced_search(
        db, principal, name=name, location=location, length=length, hike_date=hike_date
    )


@router.get(
    "/search/all/name",
    response_model=HikeListResponse,
    summary="Search other users' hikes by name",
)
async def search_other_hikes_by_name(
    name: Optional[str] = Query(default=None),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> HikeListResponse:
    return await hike_service.search_others_by_name(db, principal, name)


@router.post("", status_code=201, response_model=HikeCreatedResponse, summary="Log a hike")
async def create_hike(
    data: HikeCreate,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> HikeCreatedResponse:
    return await hike_service.create(db, principal, data)


@router.get(
    "/{hike_id}",
    response_model=HikeResponse,
    responses={404: {"description": "Hike not found", "model": ErrorResponse}},
)
async def get_hike(
    hike_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> HikeResponse:
    return await hike_service.get(db, hike_id)


@router.put("/{hike_id}", response_model=HikeUpdatedResponse, responses=_NOT_OWNER)
async def update_hike(
    data: HikeUpdate,
    hike_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> HikeUpdatedResponse:
    return await hike_service.update(db, principal, hike_id, data)


@router.delete(
    "/{hike_id}",
    response_model=MessageResponse,
    responses=_NOT_OWNER,
    summary="Delete a hike with its observations",
)
async def delete_hike(
    hike_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: AssetStorage = Depends(get_asset_storage),
) -> MessageResponse:
    return await hike_service.delete(db, storage, principal, hike_id)
