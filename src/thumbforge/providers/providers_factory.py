"""Factory for provider adapters."""

from __future__ import annotations

from ..config import ProviderSettings
from ..generation.generation_errors import ConfigurationError
from ..generation.generation_models import ProviderId
from ..generation.reference_images import ReferenceImageResolver
from .providers_base import ProviderAdapter
from .providers_gemini import GeminiAdapter
from .providers_openrouter import OpenRouterAdapter
from .providers_replicate import ReplicateAdapter


def create_provider(
    name: str,
    *,
    settings: ProviderSettings,
    reference_resolver: ReferenceImageResolver | None = None,
) -> ProviderAdapter:
    """Instantiate a provider adapter by name.

    Raises :class:`ConfigurationError` when the provider is unknown or its
    credentials are missing.
    """
    resolver = reference_resolver or ReferenceImageResolver()
    try:
        provider = ProviderId(name.strip().lower())
    except ValueError as exc:
        raise ConfigurationError(f"Unsupported provider '{name}'") from exc

    if provider is ProviderId.OPENROUTER:
        if not settings.openrouter_api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is not set")
        return OpenRouterAdapter(
            api_key=settings.openrouter_api_key,
            reference_resolver=resolver,
            model=settings.openrouter_model,
            referer=settings.openrouter_referer,
            title=settings.openrouter_title,
            timeout_seconds=settings.http_timeout_seconds,
        )
    if provider is ProviderId.GEMINI:
        if not settings.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is not set")
        return GeminiAdapter(
            api_key=settings.gemini_api_key,
            reference_resolver=resolver,
            model=settings.gemini_model,
            timeout_seconds=settings.http_timeout_seconds,
        )
    if not settings.replicate_api_token:
        raise ConfigurationError("REPLICATE_API_TOKEN is not set")
    return ReplicateAdapter(
        api_token=settings.replicate_api_token,
        reference_resolver=resolver,
        model=settings.replicate_model,
        timeout_seconds=settings.http_timeout_seconds,
    )
