"""
M-Hike API: Asset Lifecycle (upload ↔ database transaction coupling)
=====================================================================

What:  Ties a just-received upload to the database write that will
       reference it, so that no failed request leaves a file behind and no
       successful request deletes a file before its replacement is durable.
How:   `AssetTransaction` is an async context manager. Entering it takes
       ownership of the PendingUpload (if any) and arms its cleanup. The
       service commits the database session, then calls `commit()`, which
       disarms the cleanup and reaps the assets the write superseded.
       Leaving the block without `commit()` deletes the pending file.

State machine (one per mutating request):

    NoFile ──────────────────────────────────▶ Committed
    Received ──commit()──▶ Committed ──reap──▶ Reaped
    Received ──exit without commit()──────────▶ Discarded

    Discarded covers every failure path: upload-time rejection is handled
    by the receiver itself, and validation errors, ownership errors and
    failed writes all unwind through __aexit__.

Usage:
    pending = await storage.receive(photo, "photo")
    async with AssetTransaction(storage, pending) as assets:
        row = await load_and_check(db)              # may raise → file deleted
        assets.supersede(row.photo_url)             # reap after commit
        row.photo_url = assets.reference
        await db.commit()                           # may raise → file deleted
        await assets.commit()                       # old photo deleted now
"""

import logging
from enum import Enum
from typing import List, Optional

from mhike.services.storage import AssetStorage, PendingUpload

logger = logging.getLogger(__name__)


class AssetState(str, Enum):
    NO_FILE = "no_file"
    RECEIVED = "received"
    COMMITTED = "committed"
    REAPED = "reaped"
    DISCARDED = "discarded"


class AssetTransaction:
    """
    Scoped owner of at most one pending upload and of the references it
    replaces.

    Guarantees:
        - The pending file is deleted exactly once on any exit path that did
          not reach `commit()`.
        - Superseded references are deleted only from `commit()`, i.e. after
          the caller's database commit returned.
        - Default sentinel assets are never deleted.
    """

    def __init__(self, storage: AssetStorage, pending: Optional[PendingUpload] = None):
        self.storage = storage
        self.pending = pending
        self.state = AssetState.RECEIVED if pending else AssetState.NO_FILE
        self._superseded: List[str] = []

    @property
    def reference(self) -> Optional[str]:
        """The reference to write into the row, or None without a file."""
        return self.pending.reference if self.pending else None

    @property
    def has_file(self) -> bool:
        return self.pending is not None

    def supersede(self, previous_reference: Optional[str]) -> None:
        """
        Record a reference the pending write replaces or clears.

        Capture it from the row BEFORE mutating the row. It is only deleted
        once `commit()` runs.
        """
        if not previous_reference or previous_reference == self.reference:
            return
        if self.storage.is_sentinel(previous_reference):
            logger.debug("Keeping default asset %s", previous_reference)
            return
        if previous_reference not in self._superseded:
            self._superseded.append(previous_reference)

    async def commit(self) -> None:
        """
        Promote the pending upload and reap superseded assets.

        Call only after the database commit succeeded.
        """
        if self.state not in (AssetState.NO_FILE, AssetState.RECEIVED):
            raise RuntimeError(f"Asset transaction already finished ({self.state.value})")

        self.state = AssetState.COMMITTED
        if self.pending:
            logger.debug("Upload %s committed", self.pending.filename)

        if not self._superseded:
            return

        for reference in self._superseded:
            if await self.storage.discard_reference(reference):
                logger.info("Reaped superseded asset %s", reference)
        self._superseded.clear()
        self.state = AssetState.REAPED

    async def discard(self) -> None:
        """Delete the pending file unless it was committed. Idempotent."""
        if self.state is not AssetState.RECEIVED:
            return
        self.state = AssetState.DISCARDED
        self._superseded.clear()
        await self.storage.remove_file(self.pending.path)
        logger.info("Discarded orphaned upload %s", self.pending.filename)

    async def __aenter__(self) -> "AssetTransaction":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if self.state is AssetState.RECEIVED and exc_type is None:
            logger.warning(
                "Asset transaction for %s closed without commit; discarding file",
                self.pending.filename,
            )
        await self.discard()
        return False
