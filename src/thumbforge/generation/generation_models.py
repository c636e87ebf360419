"""Data structures shared by provider adapters, the poller and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Literal, Mapping, Union


def utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(tz=timezone.utc)


class ProviderId(StrEnum):
    """Provider families known to the provider factory."""

    OPENROUTER = "openrouter"
    GEMINI = "gemini"
    REPLICATE = "replicate"


class JobState(StrEnum):
    """Lifecycle of a polled provider job."""

    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT, JobState.CANCELLED}
)


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """User request for one generation run."""

    prompt_text: str
    reference_image_ref: str | None = None
    provider_preference: ProviderId | None = None
    enhanced_prompt_text: str | None = None

    @property
    def effective_prompt(self) -> str:
        """Prompt actually sent to the provider (the rewrite wins when present)."""
        rewrite = (self.enhanced_prompt_text or "").strip()
        return rewrite or self.prompt_text.strip()


@dataclass(frozen=True, slots=True)
class ProviderJobHandle:
    """Reference to in-progress work on an asynchronous provider."""

    provider_id: str
    external_job_id: str
    submitted_at: datetime
    links: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class InlineImage:
    """Image embedded in a provider response.

    ``data`` is either raw bytes, a bare base64 string or a ``data:`` URI.
    """

    data: bytes | str
    mime_type: str | None = None


@dataclass(frozen=True, slots=True)
class InlineResult:
    images: tuple[InlineImage, ...]
    provider_id: str = "unknown"
    kind: Literal["inline"] = "inline"


@dataclass(frozen=True, slots=True)
class RemoteResult:
    image_urls: tuple[str, ...]
    provider_id: str = "unknown"
    kind: Literal["remote"] = "remote"


@dataclass(frozen=True, slots=True)
class FailedResult:
    reason: str
    provider_id: str = "unknown"
    kind: Literal["failed"] = "failed"


@dataclass(frozen=True, slots=True)
class TimeoutResult:
    provider_id: str = "unknown"
    timeout_seconds: float | None = None
    kind: Literal["timeout"] = "timeout"


ProviderResult = Union[InlineResult, RemoteResult, FailedResult, TimeoutResult]
SubmitOutcome = Union[InlineResult, RemoteResult, FailedResult, TimeoutResult, ProviderJobHandle]


@dataclass(frozen=True, slots=True)
class JobStatusSnapshot:
    """Single poll tick as reported by an asynchronous provider."""

    status: str
    output: InlineResult | RemoteResult | None = None
    error: str | None = None


@dataclass(slots=True)
class MaterializedImage:
    """Concrete image bytes ready for the storage collaborator."""

    payload: bytes
    mime_type: str


@dataclass(slots=True)
class StoredThumbnailRecord:
    """Metadata row written once per stored image."""

    owner_id: str
    prompt_text: str
    final_image_location: str
    reference_image_location: str | None = None
    enhanced_prompt_text: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    provider_id: str | None = None
    record_id: str | None = None


@dataclass(slots=True)
class PromptRewrite:
    """Outcome of the prompt enhancement call."""

    original_prompt: str
    rewritten_prompt: str
    note: str | None = None


__all__ = [
    "utcnow",
    "ProviderId",
    "JobState",
    "TERMINAL_STATES",
    "GenerationRequest",
    "ProviderJobHandle",
    "InlineImage",
    "InlineResult",
    "RemoteResult",
    "FailedResult",
    "TimeoutResult",
    "ProviderResult",
    "SubmitOutcome",
    "JobStatusSnapshot",
    "MaterializedImage",
    "StoredThumbnailRecord",
    "PromptRewrite",
]
