"""Image storage handling."""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from ..generation.generation_errors import StorageError
from .media_helpers import extension_for_mime

_FOLDER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


class ImageStore(Protocol):
    """Upload collaborator returning a dereferenceable location."""

    async def store(self, payload: bytes, mime_type: str, folder: str) -> str: ...


@dataclass(slots=True)
class LocalImageStore:
    """Store images under ``MEDIA_ROOT`` and expose them via ``/media``."""

    root: Path
    public_base_url: str
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def folder_dir(self, folder: str) -> Path:
        if not _FOLDER_PATTERN.match(folder):
            raise StorageError(f"invalid storage folder '{folder}'")
        return self.root / folder

    async def store(self, payload: bytes, mime_type: str, folder: str) -> str:
        if not payload:
            raise StorageError("refusing to store an empty payload")
        directory = self.folder_dir(folder)
        name = f"{uuid.uuid4().hex}.{extension_for_mime(mime_type)}"
        path = directory / name
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(payload)
        except OSError as exc:
            raise StorageError(f"failed to write {path}: {exc}") from exc

        location = f"{self.public_base_url.rstrip('/')}/media/{folder}/{name}"
        self.log.info(
            "media.image.stored",
            extra={"folder": folder, "path": str(path), "size_bytes": len(payload)},
        )
        return location
