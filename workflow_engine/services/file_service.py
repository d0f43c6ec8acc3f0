"""Files collaborator: resolves an opaque file id to metadata and bytes for its owner."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from ..core.config import settings
from ..core.exceptions import ForbiddenError, StoredFileNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class StoredFile:
    """Metadata of an uploaded file."""

    id: str
    owner_id: str
    filename: str
    mimetype: str
    path: str
    size: int = 0
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class FileService(Protocol):
    """Contract the readFile/uploadFile handlers depend on."""

    async def get_file_by_id(self, file_id: str, owner_id: str) -> StoredFile:
        ...

    async def get_file_content(self, file_id: str, owner_id: str) -> bytes:
        ...


class LocalFileService:
    """File registry backed by the local upload directory. Enforces ownership."""

    def __init__(self, upload_dir: str | None = None) -> None:
        self._upload_dir = Path(upload_dir or settings.upload_dir)
        self._files: dict[str, StoredFile] = {}
        self._lock = threading.Lock()

    def register(
        self,
        owner_id: str,
        path: str | Path,
        filename: str | None = None,
        mimetype: str | None = None,
        file_id: str | None = None,
    ) -> StoredFile:
        """Record metadata for a file already on disk. Relative paths are under the upload dir."""
        file_path = Path(path)
        if not file_path.is_absolute():
            file_path = self._upload_dir / file_path

        name = filename or file_path.name
        stored = StoredFile(
            id=file_id or uuid.uuid4().hex,
            owner_id=owner_id,
            filename=name,
            mimetype=mimetype or mimetypes.guess_type(name)[0] or "application/octet-stream",
            path=str(file_path),
            size=file_path.stat().st_size if file_path.exists() else 0,
        )
        with self._lock:
            self._files[stored.id] = stored
        logger.debug("Registered file %s (%s) for %s", stored.id, stored.filename, owner_id)
        return stored

    async def get_file_by_id(self, file_id: str, owner_id: str) -> StoredFile:
        stored = self._files.get(file_id)
        if stored is None:
            raise StoredFileNotFoundError(file_id)
        if stored.owner_id != owner_id:
            raise ForbiddenError("Access denied", details={"file_id": file_id})
        return stored

    async def get_file_content(self, file_id: str, owner_id: str) -> bytes:
        stored = await self.get_file_by_id(file_id, owner_id)
        try:
            return await asyncio.to_thread(Path(stored.path).read_bytes)
        except FileNotFoundError as e:
            raise StoredFileNotFoundError(file_id) from e
