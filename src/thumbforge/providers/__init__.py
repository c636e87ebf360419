"""Adapters for third-party image generation providers."""

from .providers_base import AsyncJobProviderAdapter, ProviderAdapter
from .providers_factory import create_provider
from .providers_gemini import GeminiAdapter
from .providers_openrouter import OpenRouterAdapter
from .providers_replicate import ReplicateAdapter

__all__ = [
    "ProviderAdapter",
    "AsyncJobProviderAdapter",
    "GeminiAdapter",
    "OpenRouterAdapter",
    "ReplicateAdapter",
    "create_provider",
]
