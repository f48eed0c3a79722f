"""
M-Hike API: Asset Storage & Upload Receiver
=============================================

What:  Receives avatar/photo uploads, validates them, writes them to the
       upload directory, and deletes stored files on request.
How:   Validates MIME type and size, streams the bytes to disk under a
       collision-free name, and hands back a PendingUpload describing it.
Who:   Route handlers call `receive()`; the asset lifecycle and the orphan
       sweeper call the delete helpers.
When:  Before any database work on mutating requests that carry a file part.

Validation order:
    1. MIME type against the allow-list (no bytes read)
    2. Declared size, when the multipart part reports one (no bytes written)
    3. Actual size while streaming; an overflow removes the partial file

Naming:
    <sanitised original base>-<uuid4><ext>, e.g. "summit-4f1c...e2.jpg".
    The uuid keeps concurrent uploads of "photo.jpg" apart, and the
    sanitised base keeps user input free of path separators. <ext> always
    belongs to the accepted MIME type: "evil.html" sent as image/png is
    stored as "evil-<uuid4>.png".

References:
    Rows never store filesystem paths. They store `/uploads/<name>`, which
    `path_for_reference()` maps back into the upload directory. Anything
    that does not map there (the default sentinels, legacy values, "../"
    tricks) is never touched by delete helpers.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

import aiofiles
import aiofiles.os
from fastapi import Request, UploadFile

from mhike.config import Settings
from mhike.exceptions import StorageError, UploadRejected

logger = logging.getLogger(__name__)

# Bytes read from the multipart part per iteration while streaming to disk
CHUNK_SIZE = 1024 * 1024

# Stored extension per accepted MIME type. A client suffix is kept only when
# it names the same format as the declared type.
MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}

ALLOWED_EXTENSIONS = {
    "image/jpeg": {".jpg", ".jpeg"},
    "image/jpg": {".jpg", ".jpeg"},
    "image/png": {".png"},
    "image/gif": {".gif"},
    "image/webp": {".webp"},
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


@dataclass
class PendingUpload:
    """
    A file that has been written to storage but is not yet referenced by
    any committed row. Lives for one request only.
    """

    path: Path
    filename: str
    original_name: str
    content_type: str
    size: int
    reference: str


class AssetStorage:
    """
    Owns the upload directory.

    Directory layout is flat:
        uploads/
        ├── default_avatar.png             (sentinel, never deleted)
        ├── summit-0b6e...c1.jpg
        └── heron-93aa...7f.png
    """

    def __init__(
        self,
        upload_dir: Path,
        url_prefix: str = "/uploads",
        max_size: int = 20 * 1024 * 1024,
        allowed_mime_types: Iterable[str] = tuple(MIME_EXTENSIONS),
        sentinels: Iterable[str] = (),
    ):
        self.upload_dir = Path(upload_dir).resolve()
        self.url_prefix = "/" + url_prefix.strip("/")
        self.max_size = max_size
        configured = {m.lower() for m in allowed_mime_types}
        unknown = configured - set(MIME_EXTENSIONS)
        if unknown:
            logger.warning("Ignoring MIME types with no image extension: %s", sorted(unknown))
        self.allowed_mime_types = configured & set(MIME_EXTENSIONS)
        self.sentinels = {s for s in sentinels if s}

    @classmethod
    def from_settings(cls, settings: Settings) -> "AssetStorage":
        return cls(
            upload_dir=settings.upload_path,
            url_prefix=settings.upload_url_prefix,
            max_size=settings.max_upload_size,
            allowed_mime_types=settings.allowed_mime_types_list,
            sentinels=(settings.default_avatar, settings.default_photo),
        )

    def ensure_directory(self) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_mime_type(self, content_type: Optional[str], field: str) -> str:
        """
        Check the part's declared content type against the allow-list.

        Returns the normalized MIME type. Raises UploadRejected otherwise.
        """
        mime_type = (content_type or "").split(";")[0].strip().lower()
        if mime_type not in self.allowed_mime_types:
            raise UploadRejected(
                message="Only image files are allowed (jpeg, jpg, png, gif, webp)",
                field=field,
                context={"content_type": mime_type, "allowed": sorted(self.allowed_mime_types)},
            )
        return mime_type

    def validate_size(self, size: Optional[int], field: str) -> None:
        """Reject a size above the configured maximum. None means unknown."""
        if size is not None and size > self.max_size:
            max_mb = self.max_size / (1024 * 1024)
            raise UploadRejected(
                message=f"File size exceeds maximum limit of {max_mb:.0f}MB",
                field=field,
                context={"max_size": self.max_size, "size": size},
            )

    # ── Naming & References ───────────────────────────────────────────────

    def generate_filename(self, original_name: str, mime_type: str) -> str:
        """
        Build `<base>-<uuid4><ext>` from the client's filename.

        The extension always matches `mime_type`. Raises UploadRejected for a
        type without a known image extension.
        """
        if mime_type not in MIME_EXTENSIONS:
            raise UploadRejected(
                message="Only image files are allowed (jpeg, jpg, png, gif, webp)",
                context={"content_type": mime_type},
            )
        original = Path(original_name or "")
        base = _UNSAFE_CHARS.sub("_", original.stem).strip("_")[:50] or "upload"
        ext = original.suffix.lower()
        if ext not in ALLOWED_EXTENSIONS[mime_type]:
            ext = MIME_EXTENSIONS[mime_type]
        return f"{base}-{uuid.uuid4()}{ext}"

    def reference_for(self, filename: str) -> str:
        return f"{self.url_prefix}/{filename}"

    def is_sentinel(self, reference: Optional[str]) -> bool:
        if not reference:
            return False
        return reference in self.sentinels or Path(reference).name in self.sentinels

    def path_for_reference(self, reference: Optional[str]) -> Optional[Path]:
        """
        Map a stored `/uploads/<name>` reference to its file path.

        Returns None for empty values, sentinels, and anything outside the
        managed namespace.
        """
        if not reference or self.is_sentinel(reference):
            return None
        prefix = self.url_prefix + "/"
        if not reference.startswith(prefix):
            return None
        name = reference[len(prefix):]
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            return None
        path = (self.upload_dir / name).resolve()
        if path.parent != self.upload_dir:
            return None
        return path

    async def list_files(self) -> List[Path]:
        """Every regular file in the upload directory, sentinels excluded."""
        if not await aiofiles.os.path.isdir(self.upload_dir):
            return []
        files = []
        for name in sorted(await aiofiles.os.listdir(self.upload_dir)):
            path = self.upload_dir / name
            if name not in self.sentinels and await aiofiles.os.path.isfile(path):
                files.append(path)
        return files

    # ── Receive ───────────────────────────────────────────────────────────

    async def receive(self, upload: Optional[UploadFile], field: str) -> Optional[PendingUpload]:
        """
        Validate and persist a single uploaded file part.

        Returns None when the request carries no file for `field`.

        Raises:
            UploadRejected: bad MIME type or size (nothing left on disk)
            StorageError: the write itself failed (partial file removed)
        """
        if upload is None or not upload.filename:
            return None

        try:
            mime_type = self.validate_mime_type(upload.content_type, field)
            self.validate_size(upload.size, field)

            filename = self.generate_filename(upload.filename, mime_type)
            path = self.upload_dir / filename
            written = await self._stream_to_disk(upload, path, field)
        finally:
            await upload.close()

        logger.info("Upload stored: %s (%d bytes, %s)", filename, written, mime_type)
        return PendingUpload(
            path=path,
            filename=filename,
            original_name=upload.filename,
            content_type=mime_type,
            size=written,
            reference=self.reference_for(filename),
        )

    async def _stream_to_disk(self, upload: UploadFile, path: Path, field: str) -> int:
        written = 0
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as out:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_size:
                        break
                    await out.write(chunk)
        except OSError as e:
            logger.error("Failed to store upload at %s: %s", path, str(e))
            await self.remove_file(path)
            raise StorageError(
                message="Failed to save uploaded file. Please try again.",
                context={"path": str(path), "os_error": str(e)},
            )

        if written > self.max_size:
            await self.remove_file(path)
            self.validate_size(written, field)
        return written

    # ── Delete ────────────────────────────────────────────────────────────

    async def remove_file(self, path: Path) -> bool:
        """
        Delete a file if it exists. Never raises.

        Returns True when a file was removed. A missing file is a no-op and a
        failed delete is logged as a storage error, since the request's
        database outcome has already been decided.
        """
        try:
            if not await aiofiles.os.path.exists(path):
                logger.debug("Cleanup: file already gone: %s", Path(path).name)
                return False
            await aiofiles.os.remove(path)
            logger.info("Removed file: %s", Path(path).name)
            return True
        except OSError as e:
            err = StorageError(
                message="Failed to delete stored file",
                context={"path": str(path), "os_error": str(e)},
            )
            logger.warning("%s | Context: %s", err.message, err.context)
            return False

    async def discard_reference(self, reference: Optional[str]) -> bool:
        """Delete the file behind a stored reference; sentinels are skipped."""
        path = self.path_for_reference(reference)
        if path is None:
            if reference:
                logger.debug("Not deleting unmanaged or default asset: %s", reference)
            return False
        return await self.remove_file(path)


def get_asset_storage(request: Request) -> AssetStorage:
    """FastAPI dependency returning the storage opened by the lifespan."""
    return request.app.state.storage
