"""Generation orchestrator.

``GenerationService.generate`` turns one request into stored thumbnails:

1. validate the request;
2. pick a provider from static configuration;
3. submit once (no retries, a resubmission is the caller's decision);
4. poll asynchronous jobs until a terminal state or the deadline;
5. materialise every produced image;
6. store and persist each image independently.

Partial success returns the shorter list; only a run that stores nothing
raises.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from ..config import GenerationSettings
from ..exceptions import RepositoryError
from ..media.media_helpers import is_data_uri
from ..media.media_service import ImageStore
from ..providers.providers_base import AsyncJobProviderAdapter, ProviderAdapter
from ..repositories.thumbnail_repository import ThumbnailRepository
from .generation_errors import (
    ConfigurationError,
    InvalidRequestError,
    ProviderError,
    ProviderJobFailedError,
    ProviderTimeoutError,
    StorageError,
)
from .generation_models import (
    FailedResult,
    GenerationRequest,
    MaterializedImage,
    ProviderJobHandle,
    ProviderResult,
    StoredThumbnailRecord,
    TimeoutResult,
)
from .job_poller import JobPoller
from .result_materializer import ResultMaterializer

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str], ProviderAdapter]
PollerFactory = Callable[[AsyncJobProviderAdapter], JobPoller]
_T = TypeVar("_T")


@dataclass(slots=True)
class GenerationService:
    """Coordinates provider submission, polling, materialisation and storage."""

    provider_factory: ProviderFactory
    image_store: ImageStore
    thumbnail_repo: ThumbnailRepository
    settings: GenerationSettings = field(default_factory=GenerationSettings)
    materializer: ResultMaterializer = field(default_factory=ResultMaterializer)
    poller_factory: PollerFactory = JobPoller
    log: logging.Logger = field(default_factory=lambda: logger)

    async def generate(
        self, request: GenerationRequest, owner_id: str
    ) -> list[StoredThumbnailRecord]:
        """Run one generation; ``owner_id`` is trusted (already authenticated)."""
        self._validate(request, owner_id)
        adapter = self.select_provider(request)
        provider_id = adapter.provider_id
        self.log.info(
            "generation.job.start",
            extra={
                "owner_id": owner_id,
                "provider": provider_id,
                "prompt_len": len(request.effective_prompt),
                "has_reference": bool(request.reference_image_ref),
            },
        )

        outcome = await self._guard_auth(adapter, adapter.submit(request))
        if isinstance(outcome, ProviderJobHandle):
            self.log.info(
                "generation.job.submitted",
                extra={"provider": provider_id, "external_job_id": outcome.external_job_id},
            )
            result = await self._await_job(adapter, outcome)
        else:
            result = outcome

        self._raise_for_terminal_failure(result)
        images = await self.materializer.materialize_all(result)
        records = await self._persist(images, request=request, owner_id=owner_id, provider_id=provider_id)
        self.log.info(
            "generation.job.completed",
            extra={
                "owner_id": owner_id,
                "provider": provider_id,
                "materialized": len(images),
                "stored": len(records),
            },
        )
        return records

    def select_provider(self, request: GenerationRequest) -> ProviderAdapter:
        """Return the preferred provider or the first configured one.

        Only providers that cannot be constructed (missing credentials) are
        skipped; nothing has been submitted at that point.
        """
        if request.provider_preference is not None:
            return self.provider_factory(request.provider_preference.value)

        last_error: ConfigurationError | None = None
        for name in self.settings.provider_order:
            try:
                return self.provider_factory(name)
            except ConfigurationError as exc:
                self.log.warning(
                    "generation.provider.unavailable",
                    extra={"provider": name, "error": str(exc)},
                )
                last_error = exc
        raise ConfigurationError("No generation provider is configured") from last_error

    @staticmethod
    def _validate(request: GenerationRequest, owner_id: str) -> None:
        if not request.prompt_text or not request.prompt_text.strip():
            raise InvalidRequestError("Prompt is required")
        if not owner_id or not owner_id.strip():
            raise InvalidRequestError("Owner id is required")

    async def _guard_auth(self, adapter: ProviderAdapter, call: Awaitable[_T]) -> _T:
        try:
            return await call
        except ProviderError as exc:
            self.log.error(
                "generation.provider.error",
                extra={
                    "provider": adapter.provider_id,
                    "http_status": exc.status_code,
                    "retryable": exc.retryable,
                    "error": str(exc),
                },
            )
            if exc.is_auth_failure:
                raise ConfigurationError(
                    f"{adapter.provider_id} rejected the configured credentials"
                ) from exc
            raise

    async def _await_job(
        self, adapter: ProviderAdapter, handle: ProviderJobHandle
    ) -> ProviderResult:
        if not isinstance(adapter, AsyncJobProviderAdapter):
            raise ProviderError(
                f"{adapter.provider_id} returned a job handle but does not support polling",
                provider_id=adapter.provider_id,
                status_code=502,
            )
        poller = self.poller_factory(adapter)
        return await self._guard_auth(
            adapter,
            poller.poll_until_terminal(
                handle,
                poll_interval_seconds=self.settings.poll_interval_seconds,
                timeout_seconds=self.settings.poll_timeout_seconds,
            ),
        )

    def _raise_for_terminal_failure(self, result: ProviderResult) -> None:
        if isinstance(result, TimeoutResult):
            self.log.warning(
                "generation.job.timeout",
                extra={"provider": result.provider_id, "timeout_seconds": result.timeout_seconds},
            )
            raise ProviderTimeoutError(
                f"{result.provider_id} did not finish within {result.timeout_seconds} seconds",
                provider_id=result.provider_id,
                timeout_seconds=result.timeout_seconds,
            )
        if isinstance(result, FailedResult):
            self.log.warning(
                "generation.job.failed",
                extra={"provider": result.provider_id, "reason": result.reason},
            )
            raise ProviderJobFailedError(
                f"{result.provider_id} job failed: {result.reason}",
                provider_id=result.provider_id,
            )

    async def _persist(
        self,
        images: list[MaterializedImage],
        *,
        request: GenerationRequest,
        owner_id: str,
        provider_id: str,
    ) -> list[StoredThumbnailRecord]:
        reference = request.reference_image_ref
        if reference and is_data_uri(reference):
            reference = None

        records: list[StoredThumbnailRecord] = []
        failures = 0
        for index, image in enumerate(images):
            try:
                record = await self._store_one(
                    image,
                    index=index,
                    request=request,
                    owner_id=owner_id,
                    provider_id=provider_id,
                    reference=reference,
                )
            except Exception:
                if not records:
                    raise
                # already-saved records are not rolled back; stop and return them
                self.log.exception(
                    "generation.image.unexpected_error",
                    extra={"owner_id": owner_id, "index": index, "stored": len(records)},
                )
                failures += len(images) - index
                break
            if record is None:
                failures += 1
                continue
            records.append(record)

        if not records:
            raise StorageError(f"None of the {len(images)} generated image(s) could be stored")
        if failures:
            self.log.warning(
                "generation.job.partial",
                extra={"owner_id": owner_id, "stored": len(records), "failed": failures},
            )
        return records

    async def _store_one(
        self,
        image: MaterializedImage,
        *,
        index: int,
        request: GenerationRequest,
        owner_id: str,
        provider_id: str,
        reference: str | None,
    ) -> StoredThumbnailRecord | None:
        """Upload and save one image; ``None`` when a store or save failure was logged."""
        try:
            location = await self.image_store.store(
                image.payload, image.mime_type, self.settings.thumbnail_folder
            )
        except StorageError as exc:
            self.log.error(
                "generation.image.store_failed",
                extra={"owner_id": owner_id, "index": index, "error": str(exc)},
            )
            return None

        record = StoredThumbnailRecord(
            owner_id=owner_id,
            prompt_text=request.prompt_text,
            final_image_location=location,
            reference_image_location=reference,
            enhanced_prompt_text=request.enhanced_prompt_text,
            provider_id=provider_id,
        )
        try:
            self.thumbnail_repo.save(record)
        except RepositoryError as exc:
            self.log.error(
                "generation.image.save_failed",
                extra={"owner_id": owner_id, "index": index, "location": location, "error": str(exc)},
            )
            return None
        return record
