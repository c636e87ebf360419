"""Replicate prediction-job provider."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

import httpx

from ..generation.generation_errors import ProviderError
from ..generation.generation_models import (
    FailedResult,
    GenerationRequest,
    JobState,
    JobStatusSnapshot,
    ProviderJobHandle,
    RemoteResult,
    SubmitOutcome,
    utcnow,
)
from ..generation.reference_images import ReferenceImageResolver
from .providers_base import (
    MALFORMED_RESPONSE_STATUS,
    AsyncJobProviderAdapter,
    ensure_success,
    network_error,
    parse_json_body,
    require_prompt,
)

logger = logging.getLogger(__name__)

REPLICATE_API_BASE = "https://api.replicate.com/v1"


@dataclass(slots=True)
class ReplicateAdapter(AsyncJobProviderAdapter):
    """Create a prediction and let the poller wait for it."""

    provider_id: ClassVar[str] = "replicate"
    in_progress_statuses: ClassVar[frozenset[str]] = frozenset({"starting", "processing", "queued"})
    succeeded_statuses: ClassVar[frozenset[str]] = frozenset({"succeeded"})
    failed_statuses: ClassVar[frozenset[str]] = frozenset({"failed", "error"})
    cancelled_statuses: ClassVar[frozenset[str]] = frozenset({"canceled", "cancelled", "aborted"})

    api_token: str
    reference_resolver: ReferenceImageResolver
    model: str = "black-forest-labs/flux-schnell"
    api_base: str = REPLICATE_API_BASE
    timeout_seconds: float = 30.0
    num_outputs: int = 1
    aspect_ratio: str = "16:9"
    clock: Callable[[], datetime] = utcnow
    log: logging.Logger = field(default_factory=lambda: logger)

    async def submit(self, request: GenerationRequest) -> SubmitOutcome:
        prompt = require_prompt(request)
        model_input: dict[str, Any] = {
            "prompt": prompt,
            "aspect_ratio": self.aspect_ratio,
            "num_outputs": self.num_outputs,
            "output_format": "png",
        }
        if request.reference_image_ref:
            model_input["image"] = self.reference_resolver.as_url(request.reference_image_ref)

        url, body = self._prediction_target(model_input)
        submitted_at = self.clock()
        try:
            response = await self._post(url, json=body)
        except httpx.HTTPError as exc:
            raise network_error(exc, provider_id=self.provider_id, operation="create prediction") from exc
        ensure_success(response, provider_id=self.provider_id, operation="create prediction", log=self.log)
        data = parse_json_body(response, provider_id=self.provider_id, operation="create prediction")

        prediction_id = data.get("id")
        if not prediction_id:
            raise ProviderError(
                "replicate did not return a prediction id",
                provider_id=self.provider_id,
                status_code=MALFORMED_RESPONSE_STATUS,
            )

        status = str(data.get("status") or "")
        state = self.classify(status)
        if state is JobState.SUCCEEDED:
            return RemoteResult(image_urls=_output_urls(data.get("output")), provider_id=self.provider_id)
        if state in (JobState.FAILED, JobState.CANCELLED):
            return FailedResult(
                reason=str(data.get("error") or f"prediction {status}"),
                provider_id=self.provider_id,
            )

        urls = data.get("urls") or {}
        links = {key: urls[key] for key in ("get", "cancel") if isinstance(urls.get(key), str)}
        self.log.info(
            "replicate.prediction.created",
            extra={"prediction_id": prediction_id, "status": status, "model": self.model},
        )
        return ProviderJobHandle(
            provider_id=self.provider_id,
            external_job_id=str(prediction_id),
            submitted_at=submitted_at,
            links=links,
        )

    async def poll_status(self, handle: ProviderJobHandle) -> JobStatusSnapshot:
        url = handle.links.get("get") or f"{self.api_base}/predictions/{handle.external_job_id}"
        try:
            response = await self._get(url)
        except httpx.HTTPError as exc:
            raise network_error(exc, provider_id=self.provider_id, operation="get prediction") from exc
        ensure_success(response, provider_id=self.provider_id, operation="get prediction", log=self.log)
        data = parse_json_body(response, provider_id=self.provider_id, operation="get prediction")

        status = str(data.get("status") or "")
        output = None
        if self.classify(status) is JobState.SUCCEEDED:
            output = RemoteResult(image_urls=_output_urls(data.get("output")), provider_id=self.provider_id)
        error = data.get("error")
        return JobStatusSnapshot(status=status, output=output, error=str(error) if error else None)

    async def cancel(self, handle: ProviderJobHandle) -> None:
        url = handle.links.get("cancel") or f"{self.api_base}/predictions/{handle.external_job_id}/cancel"
        try:
            response = await self._post(url)
        except httpx.HTTPError as exc:
            raise network_error(exc, provider_id=self.provider_id, operation="cancel prediction") from exc
        ensure_success(response, provider_id=self.provider_id, operation="cancel prediction", log=self.log)
        self.log.info("replicate.prediction.cancelled", extra={"prediction_id": handle.external_job_id})

    def _prediction_target(self, model_input: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        # "owner/name:version" pins a version, "owner/name" uses the model's latest.
        if ":" in self.model:
            version = self.model.split(":", 1)[1]
            return f"{self.api_base}/predictions", {"version": version, "input": model_input}
        return f"{self.api_base}/models/{self.model}/predictions", {"input": model_input}

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    async def _post(self, url: str, *, json: dict[str, Any] | None = None) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(url, headers=self._headers(), json=json)

    async def _get(self, url: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.get(url, headers=self._headers())


def _output_urls(output: Any) -> tuple[str, ...]:
    if isinstance(output, str):
        return (output,) if output else ()
    if isinstance(output, list):
        return tuple(item for item in output if isinstance(item, str) and item)
    return ()
