"""Media storage for generated and reference images."""

from .media_service import ImageStore, LocalImageStore

__all__ = ["ImageStore", "LocalImageStore"]
