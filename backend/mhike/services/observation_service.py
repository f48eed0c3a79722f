"""
M-Hike API: Observation Service
=================================

What:  Create, read, update and delete observations and their photos.
How:   Mutations that may carry a photo run inside an AssetTransaction.
       Any failure before the commit (missing hike, wrong owner, invalid
       field, failed write) removes the freshly uploaded photo. A replaced
       or cleared photo is reaped after the commit.
Who:   Called by the observation route handlers under /api/hikes.

Photo updates (PUT):
    new photo           → reference replaced, old file reaped after commit
    deletePhoto=true    → reference cleared, old file reaped after commit
    both in one request → ValidationFailed, uploaded file discarded
"""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from mhike.database import commit_or_raise
from mhike.exceptions import Forbidden, NotFound, ValidationFailed
from mhike.models.hike import Hike
from mhike.models.observation import UPDATABLE_FIELDS, Observation
from mhike.models.user import User
from mhike.schemas.common import MessageResponse, parse_form
from mhike.schemas.observation import (
    ObservationCreatedResponse,
    ObservationForm,
    ObservationListResponse,
    ObservationResponse,
    ObservationUpdatedResponse,
    ObservationUpdateForm,
)
from mhike.security import Principal
from mhike.services.asset_lifecycle import AssetTransaction
from mhike.services.storage import AssetStorage, PendingUpload

logger = logging.getLogger(__name__)


def _observations_with_author() -> Select:
    return select(Observation, User.username, User.avatar, User.email).outerjoin(
        User, Observation.user_id == User.user_id
    )


def _to_response(observation: Observation, username=None, avatar=None, email=None,
                 hike_name=None, hike_location=None) -> ObservationResponse:
    response = ObservationResponse.model_validate(observation)
    response.username = username
    response.user_avatar = avatar
    response.user_email = email
    response.hike_name = hike_name
    response.hike_location = hike_location
    return response


class ObservationService:
    """Stateless observation operations."""

    # ── Reads ─────────────────────────────────────────────────────────────

    async def list_for_hike(self, db: AsyncSession, hike_id: int) -> ObservationListResponse:
        if await db.get(Hike, hike_id) is None:
            raise NotFound(resource="Hike", resource_id=hike_id)

        query = (
            _observations_with_author()
            .where(Observation.hike_id == hike_id)
            .order_by(Observation.observation_time.desc(), Observation.observation_id.desc())
        )
        rows = (await db.execute(query)).all()
        observations = [_to_response(*row) for row in rows]
        return ObservationListResponse(count=len(observations), observations=observations)

    async def list_mine(self, db: AsyncSession, principal: Principal) -> ObservationListResponse:
        """The caller's observations across all hikes, with hike name and location."""
        query = (
            select(Observation, User.username, User.avatar, User.email, Hike.name, Hike.location)
            .join(Hike, Observation.hike_id == Hike.hike_id)
            .outerjoin(User, Observation.user_id == User.user_id)
            .where(Observation.user_id == principal.user_id)
            .order_by(Observation.observation_time.desc(), Observation.observation_id.desc())
        )
        rows = (await db.execute(query)).all()
        observations = [_to_response(*row) for row in rows]
        return ObservationListResponse(count=len(observations), observations=observations)

    async def get(self, db: AsyncSession, observation_id: int) -> ObservationResponse:
        query = _observations_with_author().where(Observation.observation_id == observation_id)
        row = (await db.execute(query)).first()
        if row is None:
            raise NotFound(resource="Observation", resource_id=observation_id)
        return _to_response(*row)

    # ── Writes ────────────────────────────────────────────────────────────

    async def create(
        self,
        db: AsyncSession,
        storage: AssetStorage,
        principal: Principal,
        hike_id: int,
        fields: Mapping[str, Any],
        photo: Optional[PendingUpload] = None,
    ) -> ObservationCreatedResponse:
        """
        Record an observation on any existing hike.

        Raises:
            NotFound:         the hike does not exist (photo discarded)
            ValidationFailed: invalid fields (photo discarded)
        """
        async with AssetTransaction(storage, photo) as assets:
            if await db.get(Hike, hike_id) is None:
                raise NotFound(resource="Hike", resource_id=hike_id)

            form = parse_form(ObservationForm, fields)
            observation = Observation(
                hike_id=hike_id,
                user_id=principal.user_id,
                observation=form.observation,
                observation_time=form.observation_time or datetime.now(timezone.utc),
                comments=form.comments,
                observation_type=form.observation_type,
                photo_url=assets.reference,
                latitude=form.latitude,
                longitude=form.longitude,
            )
            db.add(observation)
            await commit_or_raise(
                db,
                operation="create_observation",
                integrity_error=NotFound(resource="Hike", resource_id=hike_id),
            )
            await assets.commit()

        logger.info(
            "Observation %d added to hike %d by user %d%s",
            observation.observation_id, hike_id, principal.user_id,
            " with photo" if observation.photo_url else "",
        )
        return ObservationCreatedResponse(
            message="Observation created successfully",
            observation_id=observation.observation_id,
            observation=await self.get(db, observation.observation_id),
        )

    async def update(
        self,
        db: AsyncSession,
        storage: AssetStorage,
        principal: Principal,
        observation_id: int,
        fields: Mapping[str, Any],
        photo: Optional[PendingUpload] = None,
        delete_photo: bool = False,
    ) -> ObservationUpdatedResponse:
        """Creator-only partial update; see the module docstring for photos."""
        async with AssetTransaction(storage, photo) as assets:
            observation = await self._owned(db, principal, observation_id, action="update")

            if delete_photo and assets.has_file:
                raise ValidationFailed.for_field(
                    "deletePhoto", "Cannot upload a photo and delete the photo in one request"
                )

            form = parse_form(ObservationUpdateForm, fields)
            changes = {
                key: value
                for key, value in form.model_dump(exclude_unset=True).items()
                if key in UPDATABLE_FIELDS
            }
            # observation and observation_time are NOT NULL
            for key in ("observation", "observation_time"):
                if key in changes and changes[key] is None:
                    del changes[key]
            if not changes and not delete_photo and not assets.has_file:
                raise ValidationFailed.for_field("request", "No fields to update")

            for key, value in changes.items():
                setattr(observation, key, value)

            if delete_photo:
                assets.supersede(observation.photo_url)
                observation.photo_url = None
            elif assets.has_file:
                assets.supersede(observation.photo_url)
                observation.photo_url = assets.reference

            await commit_or_raise(db, operation="update_observation")
            await assets.commit()

        logger.info("Observation %d updated by user %d", observation_id, principal.user_id)
        return ObservationUpdatedResponse(
            message="Observation updated successfully",
            observation=await self.get(db, observation_id),
        )

    async def delete(
        self,
        db: AsyncSession,
        storage: AssetStorage,
        principal: Principal,
        observation_id: int,
    ) -> MessageResponse:
        async with AssetTransaction(storage) as assets:
            observation = await self._owned(db, principal, observation_id, action="delete")
            assets.supersede(observation.photo_url)

            await db.delete(observation)
            await commit_or_raise(db, operation="delete_observation")
            await assets.commit()

        logger.info("Observation %d deleted by user %d", observation_id, principal.user_id)
        return MessageResponse(message="Observation deleted successfully")

    async def _owned(
        self, db: AsyncSession, principal: Principal, observation_id: int, action: str
    ) -> Observation:
        observation = await db.get(Observation, observation_id)
        if observation is None:
            raise NotFound(resource="Observation", resource_id=observation_id)
        if observation.user_id != principal.user_id:
            raise Forbidden(message=f"Not authorized to {action} this observation")
        return observation


# Module-level singleton
observation_service = ObservationService()
