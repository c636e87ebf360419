"""Prompt rewrite through an OpenRouter chat model."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..providers.providers_base import (
    ensure_success,
    network_error,
    parse_json_body,
)
from ..providers.providers_openrouter import OPENROUTER_CHAT_URL
from .generation_errors import ConfigurationError, InvalidRequestError, ProviderError
from .generation_models import PromptRewrite

logger = logging.getLogger(__name__)

PROVIDER_ID = "openrouter"
FALLBACK_NOTE = "Using fallback enhancement due to missing API configuration"


def fallback_enhancement(prompt: str) -> str:
    return (
        f"Enhanced YouTube Thumbnail: {prompt} - High quality, eye-catching design "
        "with bold text and vibrant colors"
    )


@dataclass(slots=True)
class PromptEnhancer:
    """Rewrite a user prompt into a richer thumbnail brief."""

    api_key: str
    model: str = "google/gemini-2.5-flash"
    referer: str = "https://thumbforge.local"
    title: str = "ThumbForge"
    api_url: str = OPENROUTER_CHAT_URL
    timeout_seconds: float = 30.0
    max_tokens: int = 200
    log: logging.Logger = field(default_factory=lambda: logger)

    async def rewrite(self, prompt: str, reference_image_url: str | None = None) -> PromptRewrite:
        prompt = (prompt or "").strip()
        if not prompt:
            raise InvalidRequestError("Prompt is required")

        if not self.api_key:
            self.log.warning("prompt.rewrite.fallback", extra={"reason": "missing_api_key"})
            return PromptRewrite(
                original_prompt=prompt,
                rewritten_prompt=fallback_enhancement(prompt),
                note=FALLBACK_NOTE,
            )

        system = "Enhance the prompt for a YouTube thumbnail."
        user_content: Any = f"Rewrite: {prompt}"
        if reference_image_url:
            system += " Use the uploaded image as reference."
            user_content = [
                {"type": "text", "text": f"Rewrite: {prompt}"},
                {"type": "image_url", "image_url": {"url": reference_image_url}},
            ]

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
            "X-Title": self.title,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.api_url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise network_error(exc, provider_id=PROVIDER_ID, operation="prompt rewrite") from exc

        try:
            ensure_success(response, provider_id=PROVIDER_ID, operation="prompt rewrite", log=self.log)
        except ProviderError as exc:
            if exc.is_auth_failure:
                raise ConfigurationError(
                    "AI service authentication failed; the OpenRouter API key appears to be invalid or expired"
                ) from exc
            raise
        data = parse_json_body(response, provider_id=PROVIDER_ID, operation="prompt rewrite")

        rewritten = _first_message_text(data) or prompt
        self.log.info(
            "prompt.rewrite.done",
            extra={"prompt_len": len(prompt), "rewritten_len": len(rewritten)},
        )
        return PromptRewrite(original_prompt=prompt, rewritten_prompt=rewritten)


def _first_message_text(data: dict[str, Any]) -> str:
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if isinstance(content, list):
        content = " ".join(
            part["text"] for part in content if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
    return content.strip() if isinstance(content, str) else ""
