"""Gemini ``generateContent`` image provider."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from ..generation.generation_models import (
    FailedResult,
    GenerationRequest,
    InlineImage,
    InlineResult,
)
from ..generation.reference_images import ReferenceImageResolver
from .providers_base import (
    ProviderAdapter,
    ensure_success,
    network_error,
    parse_json_body,
    require_prompt,
)

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


@dataclass(slots=True)
class GeminiAdapter(ProviderAdapter):
    """Call Gemini directly; images come back as inline_data parts."""

    provider_id: ClassVar[str] = "gemini"

    api_key: str
    reference_resolver: ReferenceImageResolver
    model: str = "gemini-2.5-flash-image"
    api_url_base: str = GEMINI_API_BASE
    timeout_seconds: float = 60.0
    log: logging.Logger = field(default_factory=lambda: logger)

    async def submit(self, request: GenerationRequest) -> InlineResult | FailedResult:
        prompt = require_prompt(request)

        # Gemini cannot dereference URLs, the reference goes inline.
        parts: list[dict[str, Any]] = []
        if request.reference_image_ref:
            reference = await self.reference_resolver.fetch(request.reference_image_ref)
            parts.append(
                {
                    "inline_data": {
                        "mime_type": reference.mime_type,
                        "data": base64.b64encode(reference.payload).decode("ascii"),
                    }
                }
            )
        parts.append({"text": prompt})

        body: dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }
        url = f"{self.api_url_base}/models/{self.model}:generateContent"
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

        self.log.info(
            "gemini.request.start",
            extra={"model": self.model, "prompt_len": len(prompt), "part_count": len(parts)},
        )
        try:
            response = await self._post(url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise network_error(exc, provider_id=self.provider_id, operation="generateContent") from exc
        ensure_success(response, provider_id=self.provider_id, operation="generateContent", log=self.log)
        data = parse_json_body(response, provider_id=self.provider_id, operation="generateContent")

        images = _inline_images(data)
        if images:
            self.log.info(
                "gemini.request.success",
                extra={"model": self.model, "image_count": len(images)},
            )
            return InlineResult(images=tuple(images), provider_id=self.provider_id)

        reason = _finish_reason(data)
        self.log.warning(
            "gemini.response.no_inline_data %s",
            _preview(data),
            extra={"model": self.model, "finish_reason": reason},
        )
        if reason:
            return FailedResult(reason=reason, provider_id=self.provider_id)
        return InlineResult(images=(), provider_id=self.provider_id)

    async def _post(
        self, url: str, *, headers: dict[str, str], json: dict[str, Any]
    ) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(url, headers=headers, json=json)


def _dicts(value: Any) -> list[dict[str, Any]]:
    """Keep the object entries of a JSON array; anything else yields nothing."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _object(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _inline_images(data: dict[str, Any]) -> list[InlineImage]:
    images: list[InlineImage] = []
    for candidate in _dicts(data.get("candidates")):
        content = _object(candidate.get("content"))
        for part in _dicts(content.get("parts")):
            inline = _object(part.get("inline_data") or part.get("inlineData"))
            encoded = inline.get("data")
            if encoded and isinstance(encoded, str):
                mime = inline.get("mime_type") or inline.get("mimeType")
                images.append(
                    InlineImage(data=encoded, mime_type=mime if isinstance(mime, str) else None)
                )
    return images


def _finish_reason(data: dict[str, Any]) -> str | None:
    feedback = _object(data.get("promptFeedback"))
    if feedback.get("blockReason"):
        return f"Prompt blocked ({feedback['blockReason']})"
    candidates = data.get("candidates")
    first = _object(candidates[0]) if isinstance(candidates, list) and candidates else {}
    message = first.get("finishMessage") or first.get("finish_message")
    if message:
        return str(message)
    reason = first.get("finishReason") or first.get("finish_reason")
    if reason and reason != "STOP":
        return f"Gemini response has no image (finish_reason={reason})"
    return None


def _mask_inline_data(obj: Any) -> Any:
    """Remove inline_data payloads to avoid logging base64 blobs."""
    if isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            if key in {"inline_data", "inlineData"} and isinstance(value, dict):
                result[key] = {k: v for k, v in value.items() if k != "data"}
            else:
                result[key] = _mask_inline_data(value)
        return result
    if isinstance(obj, list):
        return [_mask_inline_data(item) for item in obj]
    return obj


def _preview(data: dict[str, Any], limit: int = 2000) -> str:
    text = json.dumps(_mask_inline_data(data), ensure_ascii=False)
    if len(text) > limit:
        return text[:limit] + "...(truncated)"
    return text
