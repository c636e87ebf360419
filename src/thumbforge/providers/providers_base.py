"""Abstract provider adapter definitions and shared HTTP helpers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from ..generation.generation_errors import InvalidRequestError, ProviderError
from ..generation.generation_models import (
    GenerationRequest,
    JobState,
    JobStatusSnapshot,
    ProviderJobHandle,
    SubmitOutcome,
)

logger = logging.getLogger(__name__)

MALFORMED_RESPONSE_STATUS = 502


class ProviderAdapter(ABC):
    """Translate a request into one provider submission.

    Synchronous providers return a ``ProviderResult`` from :meth:`submit`;
    asynchronous ones return a :class:`ProviderJobHandle`.
    """

    provider_id: ClassVar[str]

    @abstractmethod
    async def submit(self, request: GenerationRequest) -> SubmitOutcome:
        """Send exactly one submission request to the provider."""


class AsyncJobProviderAdapter(ProviderAdapter):
    """Adapter for prediction-job providers that must be polled."""

    in_progress_statuses: ClassVar[frozenset[str]] = frozenset()
    succeeded_statuses: ClassVar[frozenset[str]] = frozenset()
    failed_statuses: ClassVar[frozenset[str]] = frozenset()
    cancelled_statuses: ClassVar[frozenset[str]] = frozenset()

    @abstractmethod
    async def poll_status(self, handle: ProviderJobHandle) -> JobStatusSnapshot:
        """Query the current status of ``handle`` once."""

    @abstractmethod
    async def cancel(self, handle: ProviderJobHandle) -> None:
        """Ask the provider to stop working on ``handle``."""

    def classify(self, status: str) -> JobState | None:
        """Map a raw provider status onto the poller state machine."""
        value = (status or "").strip().lower()
        if value in self.succeeded_statuses:
            return JobState.SUCCEEDED
        if value in self.failed_statuses:
            return JobState.FAILED
        if value in self.cancelled_statuses:
            return JobState.CANCELLED
        if value in self.in_progress_statuses:
            return JobState.POLLING
        return None


def require_prompt(request: GenerationRequest) -> str:
    prompt = request.effective_prompt
    if not prompt:
        raise InvalidRequestError("Prompt is required")
    return prompt


def extract_error(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500]
    if not isinstance(data, dict):
        return str(data)[:500]
    error = data.get("error") or data.get("detail")
    if isinstance(error, dict):
        message = str(error.get("message") or "").strip()
        status = str(error.get("status") or error.get("type") or "").strip()
        return " ".join(part for part in (status, message) if part)
    if error:
        return str(error)
    return str(data)[:500]


def parse_json_body(
    response: httpx.Response, *, provider_id: str, operation: str
) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderError(
            f"{provider_id} {operation} response is not valid JSON",
            provider_id=provider_id,
            status_code=MALFORMED_RESPONSE_STATUS,
        ) from exc
    if not isinstance(data, dict):
        raise ProviderError(
            f"{provider_id} {operation} response is not a JSON object",
            provider_id=provider_id,
            status_code=MALFORMED_RESPONSE_STATUS,
        )
    return data


def ensure_success(
    response: httpx.Response,
    *,
    provider_id: str,
    operation: str,
    log: logging.Logger = logger,
) -> None:
    """Raise :class:`ProviderError` for non-2xx responses."""
    if 200 <= response.status_code < 300:
        return
    detail = extract_error(response)
    log.error(
        "provider.response.error status=%s detail=%s",
        response.status_code,
        detail,
        extra={
            "provider": provider_id,
            "operation": operation,
            "http_status": response.status_code,
        },
    )
    raise ProviderError(
        f"{provider_id} {operation} failed (status={response.status_code}): {detail}",
        provider_id=provider_id,
        status_code=response.status_code,
    )


def network_error(exc: httpx.HTTPError, *, provider_id: str, operation: str) -> ProviderError:
    return ProviderError(
        f"{provider_id} {operation} HTTP error: {exc}",
        provider_id=provider_id,
        status_code=None,
    )
