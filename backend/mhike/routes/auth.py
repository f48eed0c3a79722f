"""
M-Hike API: Auth & Profile Route Handlers
===========================================

What:  Registration, login, profile, password and avatar endpoints.
How:   Multipart endpoints receive the avatar first (UploadRejected is
       raised here, before any database work), then hand the PendingUpload
       and the raw form fields to UserService, which owns validation, the
       database write and the asset lifecycle.
Who:   Called by the mobile app's account screens.

Request Flow (POST /api/auth/register with avatar):
    1. FastAPI parses the multipart body (file part spooled by Starlette)
    2. AssetStorage.receive(): MIME + size check, stream to uploads/
    3. UserService.register(): validate → uniqueness → insert → commit
    4. On any failure after step 2 the avatar file is deleted before the
       error response is sent
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from mhike.config import Settings, get_settings
from mhike.database import get_db_session
from mhike.schemas.common import ErrorResponse, MessageResponse
from mhike.schemas.user import (
    AuthResponse,
    AvatarResponse,
    ChangePasswordRequest,
    LoginRequest,
    ProfileResponse,
    ProfileUpdateResponse,
    PublicUserResponse,
)
from mhike.security import Principal, get_current_user
from mhike.services.storage import AssetStorage, get_asset_storage
from mhike.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

_ERRORS = {
    400: {"description": "Invalid input or rejected upload", "model": ErrorResponse},
    401: {"description": "Missing or invalid credentials", "model": ErrorResponse},
}


@router.post(
    "/register",
    status_code=201,
    response_model=AuthResponse,
    responses={**_ERRORS, 409: {"description": "Username or email taken", "model": ErrorResponse}},
    summary="Create an account",
    description=(
        "Multipart form with username, email, password, optional phone and an "
        "optional avatar image (jpeg, png, gif, webp; max 20MB)."
    ),
)
async def register(
    username: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db_session),
    storage: AssetStorage = Depends(get_asset_storage),
    settings: Settings = Depends(get_settings),
) -> AuthResponse:
    pending = await storage.receive(avatar, "avatar")
    fields = {"username": username, "email": email, "password": password, "phone": phone}
    return await user_service.register(
        db, storage, settings, {k: v for k, v in fields.items() if v is not None}, pending
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    responses=_ERRORS,
    summary="Log in with email or username",
)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> AuthResponse:
    return await user_service.login(db, settings, credentials)


@router.get("/profile", response_model=ProfileResponse, responses=_ERRORS)
async def get_profile(
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    return await user_service.get_profile(db, principal.user_id)


@router.put(
    "/profile",
    response_model=ProfileUpdateResponse,
    responses={**_ERRORS, 409: {"description": "Email taken", "model": ErrorResponse}},
    summary="Update email, phone and/or avatar",
)
async def update_profile(
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: AssetStorage = Depends(get_asset_storage),
) -> ProfileUpdateResponse:
    pending = await storage.receive(avatar, "avatar")
    fields = {"email": email, "phone": phone}
    return await user_service.update_profile(
        db, storage, principal, {k: v for k, v in fields.items() if v is not None}, pending
    )


@router.post("/change-password", response_model=MessageResponse, responses=_ERRORS)
async def change_password(
    request: ChangePasswordRequest,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    return await user_service.change_password(db, settings, principal, request)


@router.post(
    "/avatar",
    response_model=AvatarResponse,
    responses=_ERRORS,
    summary="Replace the current user's avatar",
)
async def upload_avatar(
    avatar: Optional[UploadFile] = File(None),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: AssetStorage = Depends(get_asset_storage),
) -> AvatarResponse:
    pending = await storage.receive(avatar, "avatar")
    return await user_service.upload_avatar(db, storage, principal, pending)


@router.get("/users/{username}", response_model=PublicUserResponse, responses=_ERRORS)
async def get_user_by_username(
    username: str,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> PublicUserResponse:
    return await user_service.get_by_username(db, username)
