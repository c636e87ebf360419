"""Pydantic response models for the generation API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from .generation_models import PromptRewrite, StoredThumbnailRecord


class ThumbnailOut(BaseModel):
    id: str | None = None
    prompt: str
    image_url: str
    original_image_url: str | None = None
    query_rewrite: str | None = None
    provider: str | None = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: StoredThumbnailRecord) -> "ThumbnailOut":
        return cls(
            id=record.record_id,
            prompt=record.prompt_text,
            image_url=record.final_image_location,
            original_image_url=record.reference_image_location,
            query_rewrite=record.enhanced_prompt_text,
            provider=record.provider_id,
            created_at=record.created_at,
        )


class GenerateResponse(BaseModel):
    urls: list[str] = Field(default_factory=list)
    thumbnails: list[ThumbnailOut] = Field(default_factory=list)

    @classmethod
    def from_records(cls, records: list[StoredThumbnailRecord]) -> "GenerateResponse":
        return cls(
            urls=[record.final_image_location for record in records],
            thumbnails=[ThumbnailOut.from_record(record) for record in records],
        )


class ThumbnailListResponse(BaseModel):
    thumbnails: list[ThumbnailOut] = Field(default_factory=list)


class RewriteResponse(BaseModel):
    original_prompt: str
    rewritten_prompt: str
    note: str | None = None

    @classmethod
    def from_rewrite(cls, rewrite: PromptRewrite) -> "RewriteResponse":
        return cls(
            original_prompt=rewrite.original_prompt,
            rewritten_prompt=rewrite.rewritten_prompt,
            note=rewrite.note,
        )
