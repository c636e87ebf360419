"""Database helpers for ThumbForge."""

from .db_init import init_db
from .db_models import Base, ThumbnailModel

__all__ = ["Base", "ThumbnailModel", "init_db"]
