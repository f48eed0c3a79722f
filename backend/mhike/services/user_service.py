"""
M-Hike API: User Service (Accounts, Profiles & Avatars)
=========================================================

What:  Registration, login, profile reads/updates, password changes and
       avatar replacement.
How:   Every mutation that may carry an avatar runs inside an
       AssetTransaction: validation and the database write happen inside
       the block, the session is committed, and only then is the asset
       transaction committed (which reaps the avatar the write replaced).
Who:   Called by the /api/auth route handlers.

Registration race:
    Two requests for the same username can both pass the existence
    pre-check. The unique constraint settles it at commit time; the loser
    gets a Conflict and its avatar file is deleted when its block unwinds.
"""

import logging
from typing import Any, Mapping, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from mhike.config import Settings
from mhike.database import commit_or_raise
from mhike.exceptions import AuthenticationFailed, Conflict, NotFound, ValidationFailed
from mhike.models.user import User
from mhike.schemas.common import MessageResponse, parse_form
from mhike.schemas.user import (
    AuthResponse,
    AvatarResponse,
    ChangePasswordRequest,
    LoginRequest,
    ProfileResponse,
    ProfileUpdateForm,
    ProfileUpdateResponse,
    PublicUserResponse,
    RegisterForm,
    UserResponse,
)
from mhike.security import Principal, create_access_token, hash_password, verify_password
from mhike.services.asset_lifecycle import AssetTransaction
from mhike.services.storage import AssetStorage, PendingUpload

logger = logging.getLogger(__name__)

DUPLICATE_ACCOUNT = "Username or email already exists"
EMAIL_TAKEN = "Email already taken"


class UserService:
    """
    Stateless business logic for user accounts.

    Sessions, storage and settings are passed in per call.
    """

    async def register(
        self,
        db: AsyncSession,
        storage: AssetStorage,
        settings: Settings,
        fields: Mapping[str, Any],
        avatar: Optional[PendingUpload] = None,
    ) -> AuthResponse:
        """
        Create an account, optionally with an avatar.

        Raises:
            ValidationFailed: bad username, email or password
            Conflict:         username or email already registered
        """
        async with AssetTransaction(storage, avatar) as assets:
            form = parse_form(RegisterForm, fields)

            existing = await db.execute(
                select(User.user_id).where(
                    or_(User.username == form.username, User.email == form.email)
                )
            )
            if existing.first() is not None:
                raise Conflict(message=DUPLICATE_ACCOUNT)

            password_hash = await run_in_threadpool(
                hash_password, form.password, settings.bcrypt_rounds
            )
            user = User(
                username=form.username,
                email=form.email,
                password=password_hash,
                phone=form.phone,
                avatar=assets.reference or settings.default_avatar,
            )
            db.add(user)
            await commit_or_raise(db, DUPLICATE_ACCOUNT, operation="register")
            await assets.commit()

        logger.info("User registered: %s (id=%d)", user.username, user.user_id)
        return AuthResponse(
            message="User registered successfully",
            user=UserResponse.model_validate(user),
            token=create_access_token(settings, user.user_id, user.username, user.email),
        )

    async def login(
        self,
        db: AsyncSession,
        settings: Settings,
        credentials: LoginRequest,
    ) -> AuthResponse:
        """Authenticate by email or username. Inactive accounts cannot log in."""
        if not credentials.email and not credentials.username:
            raise ValidationFailed.for_field("email", "Email or username is required")

        if credentials.email:
            condition = User.email == credentials.email.strip().lower()
        else:
            condition = User.username == credentials.username.strip()

        result = await db.execute(select(User).where(condition, User.is_active.is_(True)))
        user = result.scalar_one_or_none()

        valid = user is not None and await run_in_threadpool(
            verify_password, credentials.password, user.password
        )
        if not valid:
            raise AuthenticationFailed(message="Invalid credentials")

        logger.info("User logged in: %s", user.username)
        return AuthResponse(
            message="Login successful",
            user=UserResponse.model_validate(user),
            token=create_access_token(settings, user.user_id, user.username, user.email),
        )

    async def get_profile(self, db: AsyncSession, user_id: int) -> ProfileResponse:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFound(resource="User", resource_id=user_id)
        return ProfileResponse.model_validate(user)

    async def get_by_username(self, db: AsyncSession, username: str) -> PublicUserResponse:
        result = await db.execute(select(User).where(User.username == username))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFound(resource="User", resource_id=username)
        return PublicUserResponse.model_validate(user)

    async def update_profile(
        self,
        db: AsyncSession,
        storage: AssetStorage,
        principal: Principal,
        fields: Mapping[str, Any],
        avatar: Optional[PendingUpload] = None,
    ) -> ProfileUpdateResponse:
        """
        Update email, phone and/or avatar.

        The previous avatar is reaped only after the new value is committed,
        and never when it is the shared default.
        """
        async with AssetTransaction(storage, avatar) as assets:
            form = parse_form(ProfileUpdateForm, fields)

            if form.email is None and form.phone is None and not assets.has_file:
                raise ValidationFailed.for_field("request", "No fields to update")

            if form.email is not None:
                taken = await db.execute(
                    select(User.user_id).where(
                        User.email == form.email, User.user_id != principal.user_id
                    )
                )
                if taken.first() is not None:
                    raise Conflict(message=EMAIL_TAKEN)

            user = await db.get(User, principal.user_id)
            if user is None:
                raise NotFound(resource="User", resource_id=principal.user_id)

            if form.email is not None:
                user.email = form.email
            if form.phone is not None:
                user.phone = form.phone
            if assets.has_file:
                assets.supersede(user.avatar)
                user.avatar = assets.reference

            await commit_or_raise(db, EMAIL_TAKEN, operation="update_profile")
            await assets.commit()

        logger.info("Profile updated for user %d", principal.user_id)
        return ProfileUpdateResponse(
            message="Profile updated successfully",
            user=UserResponse.model_validate(user),
        )

    async def change_password(
        self,
        db: AsyncSession,
        settings: Settings,
        principal: Principal,
        request: ChangePasswordRequest,
    ) -> MessageResponse:
        if request.new_password != request.confirm_password:
            raise ValidationFailed.for_field("confirmPassword", "Passwords do not match")
        if request.new_password == request.old_password:
            raise ValidationFailed.for_field(
                "newPassword", "New password must be different from old password"
            )

        user = await db.get(User, principal.user_id)
        if user is None:
            raise NotFound(resource="User", resource_id=principal.user_id)

        if not await run_in_threadpool(verify_password, request.old_password, user.password):
            raise AuthenticationFailed(message="Current password is incorrect")

        user.password = await run_in_threadpool(
            hash_password, request.new_password, settings.bcrypt_rounds
        )
        await commit_or_raise(db, operation="change_password")

        logger.info("Password changed for user %d", principal.user_id)
        return MessageResponse(message="Password changed successfully")

    async def upload_avatar(
        self,
        db: AsyncSession,
        storage: AssetStorage,
        principal: Principal,
        avatar: Optional[PendingUpload],
    ) -> AvatarResponse:
        """Replace the caller's avatar. A file part is required."""
        async with AssetTransaction(storage, avatar) as assets:
            if not assets.has_file:
                raise ValidationFailed.for_field("avatar", "No file uploaded")

            user = await db.get(User, principal.user_id)
            if user is None:
                raise NotFound(resource="User", resource_id=principal.user_id)

            assets.supersede(user.avatar)
            user.avatar = assets.reference

            await commit_or_raise(db, operation="upload_avatar")
            await assets.commit()

        return AvatarResponse(message="Avatar uploaded successfully", avatar_url=user.avatar)


# Module-level singleton
user_service = UserService()
