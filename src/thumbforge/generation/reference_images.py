"""Resolve stored reference images into what a provider can consume."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx

from ..media.media_helpers import is_data_uri, parse_data_uri, resolve_image_mime
from .generation_errors import ReferenceImageError
from .generation_models import MaterializedImage

logger = logging.getLogger(__name__)

MAX_REFERENCE_BYTES = 20 * 1024 * 1024


@dataclass(slots=True)
class ReferenceImageResolver:
    """Pass references through as URLs or fetch them as bytes.

    References must be independently fetchable: an ``http(s)`` URL or a
    base64 ``data:`` URI. Local filesystem paths are rejected.
    """

    timeout_seconds: float = 30.0
    max_bytes: int = MAX_REFERENCE_BYTES
    log: logging.Logger = field(default_factory=lambda: logger)

    def as_url(self, reference: str) -> str:
        value = reference.strip()
        if is_data_uri(value):
            return value
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ReferenceImageError(
                "Reference image must be an http(s) URL or a base64 data URI"
            )
        return value

    async def fetch(self, reference: str) -> MaterializedImage:
        value = reference.strip()
        if is_data_uri(value):
            try:
                payload, mime = parse_data_uri(value)
            except ValueError as exc:
                raise ReferenceImageError(f"Reference image data URI is invalid: {exc}") from exc
            return MaterializedImage(payload=payload, mime_type=resolve_image_mime(payload, mime))

        url = self.as_url(value)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, follow_redirects=True
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            self.log.warning(
                "reference.fetch.http_error",
                extra={"url": url, "error": str(exc)},
            )
            raise ReferenceImageError(f"Reference image could not be fetched: {exc}") from exc

        if response.status_code != 200:
            raise ReferenceImageError(
                f"Reference image fetch failed with status {response.status_code}"
            )
        payload = response.content
        if not payload:
            raise ReferenceImageError("Reference image is empty")
        if len(payload) > self.max_bytes:
            raise ReferenceImageError("Reference image exceeds the size limit")

        self.log.info(
            "reference.fetch.done",
            extra={"url": url, "size_bytes": len(payload)},
        )
        return MaterializedImage(
            payload=payload,
            mime_type=resolve_image_mime(payload, response.headers.get("Content-Type")),
        )
