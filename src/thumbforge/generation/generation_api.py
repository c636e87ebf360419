"""HTTP routes for prompt rewrite and thumbnail generation."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status

from ..auth.auth_dependencies import require_owner_id
from ..exceptions import RepositoryError
from ..media.media_helpers import normalize_mime, resolve_image_mime, sniff_mime
from ..media.media_service import ImageStore
from ..repositories.thumbnail_repository import SqlThumbnailRepository
from .generation_errors import (
    ConfigurationError,
    EmptyResultError,
    GenerationError,
    InvalidRequestError,
    ProviderError,
    ProviderTimeoutError,
    ReferenceImageError,
    StorageError,
)
from .generation_models import GenerationRequest, ProviderId
from .generation_schemas import (
    GenerateResponse,
    RewriteResponse,
    ThumbnailListResponse,
    ThumbnailOut,
)
from .generation_service import GenerationService
from .prompt_enhancer import PromptEnhancer

router = APIRouter(prefix="/api/generate", tags=["generate"])
logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_FOLDER = "reference-images"


def get_generation_service(request: Request) -> GenerationService:
    try:
        return request.app.state.generation_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("GenerationService is not configured") from exc


def get_prompt_enhancer(request: Request) -> PromptEnhancer:
    try:
        return request.app.state.prompt_enhancer  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("PromptEnhancer is not configured") from exc


def get_image_store(request: Request) -> ImageStore:
    try:
        return request.app.state.image_store  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("ImageStore is not configured") from exc


def get_thumbnail_repo(request: Request) -> SqlThumbnailRepository:
    try:
        return request.app.state.thumbnail_repo  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("ThumbnailRepository is not configured") from exc


def get_reference_folder(request: Request) -> str:
    return getattr(request.app.state, "reference_folder", DEFAULT_REFERENCE_FOLDER)


def to_http_error(exc: GenerationError) -> HTTPException:
    """Map a generation error onto a structured HTTP error."""
    if isinstance(exc, ReferenceImageError):
        code, reason = status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_reference_image"
    elif isinstance(exc, InvalidRequestError):
        code, reason = status.HTTP_400_BAD_REQUEST, "invalid_request"
    elif isinstance(exc, ConfigurationError):
        code, reason = status.HTTP_500_INTERNAL_SERVER_ERROR, "configuration_error"
    elif isinstance(exc, ProviderTimeoutError):
        return HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail={
                "status": "timeout",
                "failure_reason": "provider_timeout",
                "provider": exc.provider_id,
                "message": str(exc),
            },
        )
    elif isinstance(exc, ProviderError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "status": "error",
                "failure_reason": "provider_error",
                "provider": exc.provider_id,
                "provider_status": exc.status_code,
                "retryable": exc.retryable,
                "message": str(exc),
            },
        )
    elif isinstance(exc, EmptyResultError):
        code, reason = status.HTTP_502_BAD_GATEWAY, "empty_result"
    elif isinstance(exc, StorageError):
        code, reason = status.HTTP_500_INTERNAL_SERVER_ERROR, "storage_error"
    else:
        code, reason = status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error"
    return HTTPException(
        status_code=code,
        detail={"status": "error", "failure_reason": reason, "message": str(exc)},
    )


async def store_reference_upload(
    upload: UploadFile | None, *, store: ImageStore, folder: str
) -> str | None:
    """Persist an uploaded reference so providers can fetch it by URL."""
    if upload is None:
        return None
    payload = await upload.read()
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"status": "error", "failure_reason": "invalid_request", "message": "Reference image is empty"},
        )
    declared = normalize_mime(upload.content_type)
    if not (declared and declared.startswith("image/")) and sniff_mime(payload) is None:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail={"status": "error", "failure_reason": "unsupported_media_type"},
        )

    try:
        location = await store.store(payload, resolve_image_mime(payload, declared), folder)
    except StorageError as exc:
        logger.error("generate.reference.upload_failed", extra={"error": str(exc)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "status": "error",
                "failure_reason": "storage_error",
                "message": "Failed to upload reference image",
            },
        ) from exc
    logger.info(
        "generate.reference.stored",
        extra={"location": location, "size_bytes": len(payload)},
    )
    return location


@router.post("/rewrite-query", response_model=RewriteResponse)
async def rewrite_query(
    prompt: str = Form(""),
    reference_image: UploadFile | None = File(None, alias="referenceImage"),
    enhancer: PromptEnhancer = Depends(get_prompt_enhancer),
    store: ImageStore = Depends(get_image_store),
    folder: str = Depends(get_reference_folder),
) -> RewriteResponse:
    """Return an enhanced version of ``prompt``."""
    if not prompt.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"status": "error", "failure_reason": "invalid_request", "message": "Prompt required"},
        )
    reference_url = await store_reference_upload(reference_image, store=store, folder=folder)
    try:
        rewrite = await enhancer.rewrite(prompt, reference_image_url=reference_url)
    except GenerationError as exc:
        logger.warning("generate.rewrite.failed", extra={"error": str(exc)})
        raise to_http_error(exc) from exc
    return RewriteResponse.from_rewrite(rewrite)


@router.post("/images", response_model=GenerateResponse)
async def generate_images(
    prompt: str = Form(""),
    query_rewrite: str | None = Form(None),
    provider: ProviderId | None = Form(None),
    reference_image_url: str | None = Form(None),
    reference_image: UploadFile | None = File(None, alias="referenceImage"),
    owner_id: str = Depends(require_owner_id),
    service: GenerationService = Depends(get_generation_service),
    store: ImageStore = Depends(get_image_store),
    folder: str = Depends(get_reference_folder),
) -> GenerateResponse:
    """Generate thumbnails for the authenticated owner."""
    if not prompt.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"status": "error", "failure_reason": "invalid_request", "message": "Prompt is required"},
        )

    reference = await store_reference_upload(reference_image, store=store, folder=folder)
    request = GenerationRequest(
        prompt_text=prompt.strip(),
        reference_image_ref=reference or (reference_image_url or None),
        provider_preference=provider,
        enhanced_prompt_text=(query_rewrite or "").strip() or None,
    )
    try:
        records = await service.generate(request, owner_id)
    except GenerationError as exc:
        logger.warning(
            "generate.images.failed",
            extra={"owner_id": owner_id, "error_type": type(exc).__name__, "error": str(exc)},
        )
        raise to_http_error(exc) from exc
    return GenerateResponse.from_records(records)


@router.get("/thumbnails", response_model=ThumbnailListResponse)
def list_thumbnails(
    owner_id: str = Depends(require_owner_id),
    repo: SqlThumbnailRepository = Depends(get_thumbnail_repo),
) -> ThumbnailListResponse:
    """Return the newest thumbnails of the authenticated owner."""
    try:
        records = repo.list_for_owner(owner_id)
    except RepositoryError as exc:
        logger.exception("generate.thumbnails.list_failed", extra={"owner_id": owner_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"status": "error", "failure_reason": "internal_error"},
        ) from exc
    return ThumbnailListResponse(thumbnails=[ThumbnailOut.from_record(record) for record in records])
