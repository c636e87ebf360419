"""Persistence layer for generated thumbnails."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.db_models import ThumbnailModel
from ..exceptions import handle_sqlalchemy_errors
from ..generation.generation_models import StoredThumbnailRecord


class ThumbnailRepository(Protocol):
    """Write target for one record per stored image."""

    def save(self, record: StoredThumbnailRecord) -> str: ...


class SqlThumbnailRepository:
    """Manage thumbnail records."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def save(self, record: StoredThumbnailRecord) -> str:
        record_id = record.record_id or uuid.uuid4().hex
        with handle_sqlalchemy_errors(entity="thumbnail"):
            with self._session_factory() as session:
                session.add(
                    ThumbnailModel(
                        id=record_id,
                        owner_id=record.owner_id,
                        prompt=record.prompt_text,
                        image_url=record.final_image_location,
                        original_image_url=record.reference_image_location,
                        query_rewrite=record.enhanced_prompt_text,
                        provider=record.provider_id,
                        created_at=record.created_at,
                    )
                )
                session.commit()
        record.record_id = record_id
        return record_id

    def list_for_owner(self, owner_id: str, *, limit: int = 50) -> list[StoredThumbnailRecord]:
        """Return the newest records of ``owner_id``."""
        stmt = (
            select(ThumbnailModel)
            .where(ThumbnailModel.owner_id == owner_id)
            .order_by(ThumbnailModel.created_at.desc())
            .limit(limit)
        )
        with handle_sqlalchemy_errors(entity="thumbnail"):
            with self._session_factory() as session:
                rows = session.scalars(stmt).all()
        return [_to_record(row) for row in rows]


def _to_record(model: ThumbnailModel) -> StoredThumbnailRecord:
    return StoredThumbnailRecord(
        owner_id=model.owner_id,
        prompt_text=model.prompt,
        final_image_location=model.image_url,
        reference_image_location=model.original_image_url,
        enhanced_prompt_text=model.query_rewrite,
        created_at=model.created_at,
        provider_id=model.provider,
        record_id=model.id,
    )
