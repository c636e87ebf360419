from __future__ import annotations

from pathlib import Path

import pytest

from src.thumbforge.generation.generation_errors import StorageError
from src.thumbforge.media.media_service import LocalImageStore
from tests.mocks.providers import JPEG_BYTES


@pytest.mark.asyncio
async def test_store_writes_file_and_returns_public_url(tmp_path: Path) -> None:
    store = LocalImageStore(root=tmp_path, public_base_url="https://thumbs.example/")

    location = await store.store(JPEG_BYTES, "image/jpeg", "thumbnails")

    assert location.startswith("https://thumbs.example/media/thumbnails/")
    assert location.endswith(".jpg")
    name = location.rsplit("/", 1)[1]
    assert (tmp_path / "thumbnails" / name).read_bytes() == JPEG_BYTES


@pytest.mark.asyncio
async def test_each_store_gets_a_unique_name(tmp_path: Path) -> None:
    store = LocalImageStore(root=tmp_path, public_base_url="http://localhost:8000")

    first = await store.store(JPEG_BYTES, "image/jpeg", "thumbnails")
    second = await store.store(JPEG_BYTES, "image/jpeg", "thumbnails")

    assert first != second
    assert len(list((tmp_path / "thumbnails").iterdir())) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("folder", ["../escape", "", "a/b"])
async def test_invalid_folder_is_rejected(tmp_path: Path, folder: str) -> None:
    store = LocalImageStore(root=tmp_path, public_base_url="http://localhost:8000")

    with pytest.raises(StorageError):
        await store.store(JPEG_BYTES, "image/jpeg", folder)


@pytest.mark.asyncio
async def test_empty_payload_is_rejected(tmp_path: Path) -> None:
    store = LocalImageStore(root=tmp_path, public_base_url="http://localhost:8000")

    with pytest.raises(StorageError):
        await store.store(b"", "image/png", "thumbnails")


@pytest.mark.asyncio
async def test_write_failure_is_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory")
    store = LocalImageStore(root=blocker, public_base_url="http://localhost:8000")

    with pytest.raises(StorageError):
        await store.store(JPEG_BYTES, "image/jpeg", "thumbnails")
