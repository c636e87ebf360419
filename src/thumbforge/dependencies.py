"""Dependency wiring helpers."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .auth.auth_service import TokenVerifier
from .config import AppConfig
from .generation.generation_api import router as generation_router
from .generation.generation_service import GenerationService
from .generation.prompt_enhancer import PromptEnhancer
from .generation.reference_images import ReferenceImageResolver
from .generation.result_materializer import ResultMaterializer
from .media.media_service import LocalImageStore
from .providers.providers_factory import create_provider
from .repositories.thumbnail_repository import SqlThumbnailRepository

logger = logging.getLogger(__name__)


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Mount module routers and attach services."""
    providers = config.providers
    reference_resolver = ReferenceImageResolver(timeout_seconds=providers.http_timeout_seconds)
    image_store = LocalImageStore(
        root=config.media_paths.root,
        public_base_url=config.public_base_url,
    )
    thumbnail_repo = SqlThumbnailRepository(config.session_factory)

    generation_service = GenerationService(
        provider_factory=lambda provider_name: create_provider(
            provider_name,
            settings=providers,
            reference_resolver=reference_resolver,
        ),
        image_store=image_store,
        thumbnail_repo=thumbnail_repo,
        settings=config.generation,
        materializer=ResultMaterializer(timeout_seconds=providers.http_timeout_seconds),
    )
    prompt_enhancer = PromptEnhancer(
        api_key=providers.openrouter_api_key,
        model=providers.openrouter_rewrite_model,
        referer=providers.openrouter_referer,
        title=providers.openrouter_title,
    )

    app.state.config = config
    app.state.generation_service = generation_service
    app.state.prompt_enhancer = prompt_enhancer
    app.state.image_store = image_store
    app.state.thumbnail_repo = thumbnail_repo
    app.state.reference_folder = config.generation.reference_folder
    if config.jwt_secret:
        app.state.token_verifier = TokenVerifier(signing_key=config.jwt_secret)
    else:
        logger.warning("auth.jwt_secret.missing")

    app.include_router(generation_router)
    app.mount(
        "/media",
        StaticFiles(directory=config.media_paths.root, check_dir=False),
        name="media",
    )
