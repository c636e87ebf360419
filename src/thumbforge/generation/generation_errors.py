"""Domain-specific exceptions for the generation pipeline."""

from __future__ import annotations

RETRYABLE_STATUS_CODES = frozenset({408, 429})
AUTH_STATUS_CODES = frozenset({401, 403})


class GenerationError(Exception):
    """Base class for generation-related errors."""


class InvalidRequestError(GenerationError):
    """Raised when the generation request itself is unusable."""


class ReferenceImageError(InvalidRequestError):
    """Raised when the reference image cannot be fetched or decoded."""


class ConfigurationError(GenerationError):
    """Raised when provider credentials or settings are missing or rejected."""


class ProviderError(GenerationError):
    """Raised when a provider call fails or returns an unusable body.

    ``status_code`` is ``None`` for network failures and the HTTP status (or a
    provider error code) otherwise.
    """

    def __init__(
        self,
        message: str,
        *,
        provider_id: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.provider_id = provider_id
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code in RETRYABLE_STATUS_CODES or self.status_code >= 500

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in AUTH_STATUS_CODES


class ProviderJobFailedError(ProviderError):
    """Raised when the provider finished the job with a failure status."""

    @property
    def retryable(self) -> bool:
        return False


class ProviderTimeoutError(GenerationError):
    """Raised when the provider job does not finish before the poll deadline."""

    def __init__(self, message: str, *, provider_id: str, timeout_seconds: float | None = None) -> None:
        super().__init__(message)
        self.provider_id = provider_id
        self.timeout_seconds = timeout_seconds


class EmptyResultError(GenerationError):
    """Raised when a successful job yields no usable image."""


class StorageError(GenerationError):
    """Raised when produced images could not be stored."""


__all__ = [
    "GenerationError",
    "InvalidRequestError",
    "ReferenceImageError",
    "ConfigurationError",
    "ProviderError",
    "ProviderJobFailedError",
    "ProviderTimeoutError",
    "EmptyResultError",
    "StorageError",
]
