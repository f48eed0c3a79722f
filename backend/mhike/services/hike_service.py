"""
M-Hike API: Hike Service
==========================

What:  CRUD and search over hikes, with owner details joined from users.
Who:   Called by the /api/hikes route handlers.

Deleting a hike:
    Observations go with their hike. Their stored photos are collected
    before the delete, registered as superseded on an AssetTransaction, and
    reaped only after the delete has been committed.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import Select, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from mhike.database import commit_or_raise
from mhike.exceptions import Forbidden, NotFound, ValidationFailed
from mhike.models.hike import UPDATABLE_FIELDS, Hike
from mhike.models.observation import Observation
from mhike.models.user import User
from mhike.schemas.common import MessageResponse
from mhike.schemas.hike import (
    HikeCreate,
    HikeCreatedResponse,
    HikeListResponse,
    HikeResponse,
    HikeUpdate,
    HikeUpdatedResponse,
)
from mhike.security import Principal
from mhike.services.asset_lifecycle import AssetTransaction
from mhike.services.storage import AssetStorage

logger = logging.getLogger(__name__)


def _hikes_with_owner() -> Select:
    return select(Hike, User.username, User.avatar, User.email).outerjoin(
        User, Hike.user_id == User.user_id
    )


def _to_response(hike: Hike, username=None, avatar=None, email=None) -> HikeResponse:
    response = HikeResponse.model_validate(hike)
    response.username = username
    response.user_avatar = avatar
    response.user_email = email
    return response


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, term: str):
    return column.ilike(f"%{_escape_like(term)}%", escape="\\")


class HikeService:
    """Stateless hike operations; the session is passed in per call."""

    # ── Reads ─────────────────────────────────────────────────────────────

    async def _list(self, db: AsyncSession, query: Select) -> HikeListResponse:
        rows = (await db.execute(query)).all()
        hikes = [_to_response(*row) for row in rows]
        return HikeListResponse(count=len(hikes), hikes=hikes)

    async def list_mine(self, db: AsyncSession, principal: Principal) -> HikeListResponse:
        query = (
            _hikes_with_owner()
            .where(Hike.user_id == principal.user_id)
            .order_by(Hike.created_at.desc(), Hike.hike_id.desc())
        )
        return await self._list(db, query)

    async def list_others(
        self,
        db: AsyncSession,
        principal: Principal,
        difficulty: Optional[str] = None,
        location: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> HikeListResponse:
        """Hikes logged by everyone except the caller, newest first."""
        query = _hikes_with_owner().where(Hike.user_id != principal.user_id)
        if difficulty:
            query = query.where(Hike.difficulty_level == difficulty)
        if location:
            query = query.where(_contains(Hike.location, location))
        query = query.order_by(Hike.created_at.desc(), Hike.hike_id.desc())
        if limit is not None:
            query = query.limit(limit).offset(offset)
        return await self._list(db, query)

    async def search_mine_by_name(
        self, db: AsyncSession, principal: Principal, name: Optional[str]
    ) -> HikeListResponse:
        term = self._require_search_term(name)
        query = (
            _hikes_with_owner()
            .where(Hike.user_id == principal.user_id, _contains(Hike.name, term))
            .order_by(Hike.name)
        )
        return await self._list(db, query)

    async def search_others_by_name(
        self, db: AsyncSession, principal: Principal, name: Optional[str]
    ) -> HikeListResponse:
        term = self._require_search_term(name)
        query = (
            _hikes_with_owner()
            .where(Hike.user_id != principal.user_id, _contains(Hike.name, term))
            .order_by(Hike.name)
        )
        return await self._list(db, query)

    async def advanced_search(
        self,
        db: AsyncSession,
        principal: Principal,
        name: Optional[str] = None,
        location: Optional[str] = None,
        length: Optional[float] = None,
        hike_date: Optional[date] = None,
    ) -> HikeListResponse:
        """
        Search the caller's own hikes. Name and location match substrings,
        length and date match exactly. All filters are optional.
        """
        query = _hikes_with_owner().where(Hike.user_id == principal.user_id)
        if name:
            query = query.where(_contains(Hike.name, name))
        if location:
            query = query.where(_contains(Hike.location, location))
        if length is not None:
            query = query.where(Hike.length == length)
        if hike_date is not None:
            query = query.where(Hike.hike_date == hike_date)
        query = query.order_by(Hike.hike_date.desc(), Hike.hike_id.desc())
        return await self._list(db, query)

    async def get(self, db: AsyncSession, hike_id: int) -> HikeResponse:
        row = (await db.execute(_hikes_with_owner().where(Hike.hike_id == hike_id))).first()
        if row is None:
            raise NotFound(resource="Hike", resource_id=hike_id)
        return _to_response(*row)

    # ── Writes ────────────────────────────────────────────────────────────

    async def create(
        self, db: AsyncSession, principal: Principal, data: HikeCreate
    ) -> HikeCreatedResponse:
        hike = Hike(user_id=principal.user_id, **data.model_dump())
        db.add(hike)
        await commit_or_raise(
            db,
            operation="create_hike",
            integrity_error=NotFound(resource="User", resource_id=principal.user_id),
        )

        logger.info("Hike %d created by user %d", hike.hike_id, principal.user_id)
        return HikeCreatedResponse(
            message="Hike created successfully",
            hike_id=hike.hike_id,
            hike=await self.get(db, hike.hike_id),
        )

    async def update(
        self, db: AsyncSession, principal: Principal, hike_id: int, data: HikeUpdate
    ) -> HikeUpdatedResponse:
        """Owner-only partial update restricted to UPDATABLE_FIELDS."""
        hike = await self._owned(db, principal, hike_id, action="update")

        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if key in UPDATABLE_FIELDS
        }
        if not changes:
            raise ValidationFailed.for_field("request", "No fields to update")

        for key, value in changes.items():
            setattr(hike, key, value)
        await commit_or_raise(db, operation="update_hike")

        logger.info("Hike %d updated (%s)", hike_id, ", ".join(sorted(changes)))
        return HikeUpdatedResponse(
            message="Hike updated successfully",
            hike=await self.get(db, hike_id),
        )

    async def delete(
        self,
        db: AsyncSession,
        storage: AssetStorage,
        principal: Principal,
        hike_id: int,
    ) -> MessageResponse:
        async with AssetTransaction(storage) as assets:
            hike = await self._owned(db, principal, hike_id, action="delete")

            photos = await db.execute(
                select(Observation.photo_url).where(
                    Observation.hike_id == hike_id, Observation.photo_url.is_not(None)
                )
            )
            for reference in photos.scalars():
                assets.supersede(reference)

            await db.execute(delete(Observation).where(Observation.hike_id == hike_id))
            await db.delete(hike)
            await commit_or_raise(db, operation="delete_hike")
            await assets.commit()

        logger.info("Hike %d deleted by user %d", hike_id, principal.user_id)
        return MessageResponse(message="Hike deleted successfully")

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _owned(
        self, db: AsyncSession, principal: Principal, hike_id: int, action: str
    ) -> Hike:
        hike = await db.get(Hike, hike_id)
        if hike is None:
            raise NotFound(resource="Hike", resource_id=hike_id)
        if hike.user_id != principal.user_id:
            raise Forbidden(message=f"Not authorized to {action} this hike")
        return hike

    @staticmethod
    def _require_search_term(name: Optional[str]) -> str:
        term = (name or "").strip()
        if not term:
            raise ValidationFailed.for_field("name", "Search name is required")
        return term


# Module-level singleton
hike_service = HikeService()
