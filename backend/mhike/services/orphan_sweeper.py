"""
M-Hike API: Orphan Sweeper
============================

What:  Deletes stored uploads that no row references.
Why:   The request path cleans up after itself, but a process killed between
       writing an upload and committing its row (or a client that vanished
       mid-request on a crashed worker) can still strand a file.
How:   Collects every managed reference in users.avatar and
       observations.photo_url, lists the upload directory, and removes the
       unreferenced files whose modification time is older than the grace
       period. Younger files may belong to a request that is still running.
When:  Once at startup and then every `orphan_sweep_interval_minutes`, as a
       task owned by the application lifespan.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Set

import aiofiles.os
from sqlalchemy import select

from mhike.database import Database
from mhike.models.observation import Observation
from mhike.models.user import User
from mhike.services.storage import AssetStorage

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    scanned: int = 0
    referenced: int = 0
    too_recent: int = 0
    removed: List[str] = field(default_factory=list)


class OrphanSweeper:
    def __init__(self, database: Database, storage: AssetStorage, grace_minutes: int = 30):
        self.database = database
        self.storage = storage
        self.grace_seconds = grace_minutes * 60

    async def referenced_filenames(self) -> Set[str]:
        """Names of every managed file some row currently points at."""
        async with self.database.session() as session:
            avatars = await session.execute(select(User.avatar).where(User.avatar.is_not(None)))
            photos = await session.execute(
                select(Observation.photo_url).where(Observation.photo_url.is_not(None))
            )
            references = list(avatars.scalars()) + list(photos.scalars())

        names = set()
        for reference in references:
            path = self.storage.path_for_reference(reference)
            if path is not None:
                names.add(path.name)
        return names

    async def sweep(self, now: Optional[float] = None) -> SweepResult:
        """Run one reconciliation pass and report what it did."""
        now = time.time() if now is None else now
        result = SweepResult()
        referenced = await self.referenced_filenames()

        for path in await self.storage.list_files():
            result.scanned += 1
            if path.name in referenced:
                result.referenced += 1
                continue
            try:
                age = now - (await aiofiles.os.stat(path)).st_mtime
            except FileNotFoundError:
                continue
            if age < self.grace_seconds:
                result.too_recent += 1
                continue
            if await self.storage.remove_file(path):
                result.removed.append(path.name)

        if result.removed:
            logger.warning(
                "Orphan sweep removed %d unreferenced file(s): %s",
                len(result.removed), ", ".join(result.removed),
            )
        else:
            logger.info(
                "Orphan sweep: %d file(s) scanned, nothing to remove", result.scanned
            )
        return result

    async def run_periodically(self, interval_minutes: int) -> None:
        """Sweep every `interval_minutes` until cancelled."""
        interval = interval_minutes * 60
        logger.info("Orphan sweeper scheduled every %d minute(s)", interval_minutes)
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception as e:
                # Keep the schedule alive; the next pass retries
                logger.error("Orphan sweep failed: %s", str(e), exc_info=True)
