"""Turn provider results into concrete image bytes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from ..media.media_helpers import (
    decode_base64,
    is_data_uri,
    parse_data_uri,
    resolve_image_mime,
)
from .generation_errors import (
    EmptyResultError,
    ProviderJobFailedError,
    ProviderTimeoutError,
)
from .generation_models import (
    FailedResult,
    InlineImage,
    InlineResult,
    MaterializedImage,
    ProviderResult,
    RemoteResult,
    TimeoutResult,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResultMaterializer:
    """Decode inline payloads and download remote images, in provider order.

    Individual entries that cannot be decoded or downloaded are dropped with
    a warning; an empty outcome raises :class:`EmptyResultError`.
    """

    timeout_seconds: float = 60.0
    log: logging.Logger = field(default_factory=lambda: logger)

    async def materialize_all(self, result: ProviderResult) -> list[MaterializedImage]:
        if isinstance(result, FailedResult):
            raise ProviderJobFailedError(
                f"{result.provider_id} job failed: {result.reason}",
                provider_id=result.provider_id,
            )
        if isinstance(result, TimeoutResult):
            raise ProviderTimeoutError(
                f"{result.provider_id} job did not finish in time",
                provider_id=result.provider_id,
                timeout_seconds=result.timeout_seconds,
            )
        if isinstance(result, InlineResult):
            images = self._decode_inline(result)
            requested = len(result.images)
        elif isinstance(result, RemoteResult):
            images = await self._download_remote(result)
            requested = len(result.image_urls)
        else:  # pragma: no cover - exhaustive over ProviderResult
            raise TypeError(f"unsupported provider result: {result!r}")

        if not images:
            raise EmptyResultError(
                f"{result.provider_id} produced no usable image ({requested} candidate(s))"
            )
        self.log.info(
            "materializer.done",
            extra={
                "provider": result.provider_id,
                "kind": result.kind,
                "requested": requested,
                "materialized": len(images),
            },
        )
        return images

    def _decode_inline(self, result: InlineResult) -> list[MaterializedImage]:
        images: list[MaterializedImage] = []
        for index, image in enumerate(result.images):
            try:
                images.append(decode_inline_image(image))
            except ValueError as exc:
                self.log.warning(
                    "materializer.inline.invalid",
                    extra={"provider": result.provider_id, "index": index, "error": str(exc)},
                )
        return images

    async def _download_remote(self, result: RemoteResult) -> list[MaterializedImage]:
        images: list[MaterializedImage] = []
        async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True) as client:
            for index, url in enumerate(result.image_urls):
                if is_data_uri(url):
                    try:
                        images.append(decode_inline_image(InlineImage(data=url)))
                    except ValueError as exc:
                        self.log.warning(
                            "materializer.inline.invalid",
                            extra={"provider": result.provider_id, "index": index, "error": str(exc)},
                        )
                    continue

                try:
                    response = await client.get(url)
                except httpx.HTTPError as exc:
                    self.log.warning(
                        "materializer.download.http_error",
                        extra={"provider": result.provider_id, "index": index, "url": url, "error": str(exc)},
                    )
                    continue
                if response.status_code != 200 or not response.content:
                    self.log.warning(
                        "materializer.download.failed",
                        extra={
                            "provider": result.provider_id,
                            "index": index,
                            "url": url,
                            "http_status": response.status_code,
                        },
                    )
                    continue

                payload = response.content
                images.append(
                    MaterializedImage(
                        payload=payload,
                        mime_type=resolve_image_mime(payload, response.headers.get("Content-Type")),
                    )
                )
        return images


def decode_inline_image(image: InlineImage) -> MaterializedImage:
    """Decode raw bytes, a bare base64 string or a data URI.

    Raises ``ValueError`` when the payload is empty or not decodable.
    """
    declared = image.mime_type
    if isinstance(image.data, bytes):
        payload = image.data
    elif is_data_uri(image.data):
        payload, uri_mime = parse_data_uri(image.data)
        declared = uri_mime or declared
    else:
        payload = decode_base64(image.data)
    if not payload:
        raise ValueError("inline image is empty")
    return MaterializedImage(payload=payload, mime_type=resolve_image_mime(payload, declared))
