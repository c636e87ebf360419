"""Persistence adapters."""

from .thumbnail_repository import SqlThumbnailRepository, ThumbnailRepository

__all__ = ["SqlThumbnailRepository", "ThumbnailRepository"]
