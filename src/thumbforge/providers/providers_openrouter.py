"""OpenRouter chat-completion image provider."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from ..generation.generation_errors import ProviderError
from ..generation.generation_models import (
    GenerationRequest,
    InlineImage,
    InlineResult,
    RemoteResult,
)
from ..generation.reference_images import ReferenceImageResolver
from ..media.media_helpers import is_data_uri
from .providers_base import (
    MALFORMED_RESPONSE_STATUS,
    ProviderAdapter,
    ensure_success,
    network_error,
    parse_json_body,
    require_prompt,
)

logger = logging.getLogger(__name__)

OPENROUTER_CHAT_URL = "https://openrouter.ai/api/v1/chat/completions"

THUMBNAIL_SYSTEM_PROMPT = """You are an AI trained to generate high-quality YouTube thumbnails. \
Your output should always be a visually striking image optimized for maximum click-through rate on YouTube. \
Focus on clear, impactful imagery, concise text (if requested), and strong visual hierarchy. \
Consider the following when generating:
Clarity: Is the main subject immediately recognizable?
Impact: Does it grab attention quickly?
Relevance: Does it accurately represent the video content?
Text (Optional): If text is included, is it legible, short, and punchy? (Max 5-7 words)
Composition: Use the rule of thirds or other strong compositional techniques.
Color: Employ vibrant, contrasting colors to stand out.
Emotion/Intrigue: Does it evoke curiosity or a strong emotion?
Cropping: All generated images must use a strict 16:9 aspect ratio. \
The resolution should be at least 1280x720 pixels, ideally 1920x1080 pixels."""

# Some models embed the image inside the text reply instead of message.images.
INLINE_DATA_URI = re.compile(
    r"data:image/(?:png|jpeg|jpg|webp|gif);base64,[^\"'\s)\]]+",
    re.IGNORECASE,
)


@dataclass(slots=True)
class OpenRouterAdapter(ProviderAdapter):
    """Call an image-capable chat model and collect the images it returns."""

    provider_id: ClassVar[str] = "openrouter"

    api_key: str
    reference_resolver: ReferenceImageResolver
    model: str = "google/gemini-2.5-flash-image-preview"
    referer: str = "https://thumbforge.local"
    title: str = "ThumbForge"
    api_url: str = OPENROUTER_CHAT_URL
    timeout_seconds: float = 60.0
    log: logging.Logger = field(default_factory=lambda: logger)

    async def submit(self, request: GenerationRequest) -> InlineResult | RemoteResult:
        prompt = require_prompt(request)
        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        if request.reference_image_ref:
            content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": self.reference_resolver.as_url(request.reference_image_ref)},
                }
            )

        body: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": THUMBNAIL_SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ],
            "modalities": ["image", "text"],
            "max_tokens": 4096,
        }
        self.log.info(
            "openrouter.request.start",
            extra={
                "model": self.model,
                "prompt_len": len(prompt),
                "has_reference": bool(request.reference_image_ref),
            },
        )

        try:
            response = await self._post(body)
        except httpx.HTTPError as exc:
            raise network_error(exc, provider_id=self.provider_id, operation="chat completion") from exc
        ensure_success(response, provider_id=self.provider_id, operation="chat completion", log=self.log)
        data = parse_json_body(response, provider_id=self.provider_id, operation="chat completion")
        _raise_embedded_error(data)

        sources = extract_image_sources(data)
        self.log.info(
            "openrouter.request.success",
            extra={"model": self.model, "image_count": len(sources)},
        )
        if all(is_data_uri(source) for source in sources):
            return InlineResult(
                images=tuple(InlineImage(data=source) for source in sources),
                provider_id=self.provider_id,
            )
        return RemoteResult(image_urls=tuple(sources), provider_id=self.provider_id)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
            "X-Title": self.title,
        }

    async def _post(self, body: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(self.api_url, headers=self._headers(), json=body)


def extract_image_sources(data: dict[str, Any]) -> list[str]:
    """Collect image data-URIs/URLs from the first choice, in provider order.

    Data-URIs found in the text reply come first, followed by the structured
    ``message.images`` list. Exact duplicates are dropped.
    """
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ProviderError(
            "openrouter response has no choices",
            provider_id=OpenRouterAdapter.provider_id,
            status_code=MALFORMED_RESPONSE_STATUS,
        )
    first = choices[0] if isinstance(choices[0], dict) else None
    message = first.get("message") if first is not None else None
    if not isinstance(message, dict):
        raise ProviderError(
            "openrouter response has no message object in its first choice",
            provider_id=OpenRouterAdapter.provider_id,
            status_code=MALFORMED_RESPONSE_STATUS,
        )

    sources: list[str] = []
    content = message.get("content")
    if isinstance(content, str):
        sources.extend(INLINE_DATA_URI.findall(content))
    elif isinstance(content, list):
        for part in content:
            if not isinstance(part, dict):
                continue
            if isinstance(part.get("text"), str):
                sources.extend(INLINE_DATA_URI.findall(part["text"]))
            url = _image_url(part)
            if url:
                sources.append(url)

    images = message.get("images")
    for image in images if isinstance(images, list) else []:
        url = _image_url(image)
        if url:
            sources.append(url)

    return list(dict.fromkeys(sources))


def _image_url(part: Any) -> str | None:
    if not isinstance(part, dict):
        return None
    image_url = part.get("image_url")
    if isinstance(image_url, dict):
        url = image_url.get("url")
    else:
        url = image_url
    if isinstance(url, str) and url.strip():
        return url.strip()
    return None


def _raise_embedded_error(data: dict[str, Any]) -> None:
    error = data.get("error")
    if not error:
        return
    if isinstance(error, dict):
        message = str(error.get("message") or "unknown error")
        code = error.get("code")
    else:
        message, code = str(error), None
    try:
        status_code = int(code) if code is not None else MALFORMED_RESPONSE_STATUS
    except (TypeError, ValueError):
        status_code = MALFORMED_RESPONSE_STATUS
    raise ProviderError(
        f"openrouter reported an error: {message}",
        provider_id=OpenRouterAdapter.provider_id,
        status_code=status_code,
    )
