"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db

MAX_POLL_ATTEMPTS = 100


@dataclass(slots=True)
class MediaPaths:
    root: Path
    thumbnails: Path
    references: Path


@dataclass(slots=True)
class ProviderSettings:
    """Credentials and endpoints for the supported provider families."""

    openrouter_api_key: str = ""
    openrouter_model: str = "google/gemini-2.5-flash-image-preview"
    openrouter_rewrite_model: str = "google/gemini-2.5-flash"
    openrouter_referer: str = "https://thumbforge.local"
    openrouter_title: str = "ThumbForge"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash-image"
    replicate_api_token: str = ""
    replicate_model: str = "black-forest-labs/flux-schnell"
    http_timeout_seconds: float = 60.0


@dataclass(slots=True)
class GenerationSettings:
    """Provider order and polling budget for the orchestrator."""

    provider_order: tuple[str, ...] = ("openrouter",)
    poll_interval_seconds: float = 3.0
    poll_timeout_seconds: float = 120.0
    thumbnail_folder: str = "thumbnails"
    reference_folder: str = "reference-images"

    def __post_init__(self) -> None:
        if not self.provider_order:
            raise ValueError("at least one generation provider must be configured")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.poll_timeout_seconds < self.poll_interval_seconds:
            raise ValueError("poll_timeout_seconds must not be shorter than the poll interval")
        if self.poll_timeout_seconds / self.poll_interval_seconds > MAX_POLL_ATTEMPTS:
            raise ValueError(
                f"polling budget exceeds {MAX_POLL_ATTEMPTS} attempts; raise the interval"
            )


@dataclass(slots=True)
class AppConfig:
    media_paths: MediaPaths
    providers: ProviderSettings
    generation: GenerationSettings
    database_url: str
    engine: Engine
    session_factory: sessionmaker[Session]
    public_base_url: str
    jwt_secret: str


def _ensure_media_paths(paths: MediaPaths) -> None:
    paths.root.mkdir(parents=True, exist_ok=True)
    paths.thumbnails.mkdir(parents=True, exist_ok=True)
    paths.references.mkdir(parents=True, exist_ok=True)


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip().lower() for part in value.split(",") if part.strip())


def load_provider_settings() -> ProviderSettings:
    defaults = ProviderSettings()
    return ProviderSettings(
        openrouter_api_key=os.getenv("OPENROUTER_API_KEY", ""),
        openrouter_model=os.getenv("OPENROUTER_MODEL", defaults.openrouter_model),
        openrouter_rewrite_model=os.getenv(
            "OPENROUTER_REWRITE_MODEL", defaults.openrouter_rewrite_model
        ),
        openrouter_referer=os.getenv("OPENROUTER_REFERER", defaults.openrouter_referer),
        openrouter_title=os.getenv("OPENROUTER_TITLE", defaults.openrouter_title),
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", defaults.gemini_model),
        replicate_api_token=os.getenv("REPLICATE_API_TOKEN", ""),
        replicate_model=os.getenv("REPLICATE_MODEL", defaults.replicate_model),
        http_timeout_seconds=float(
            os.getenv("PROVIDER_HTTP_TIMEOUT_SECONDS", defaults.http_timeout_seconds)
        ),
    )


def load_generation_settings() -> GenerationSettings:
    return GenerationSettings(
        provider_order=_split_csv(os.getenv("GENERATION_PROVIDERS", "openrouter")),
        poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", 3)),
        poll_timeout_seconds=float(os.getenv("POLL_TIMEOUT_SECONDS", 120)),
    )


def load_config() -> AppConfig:
    """Load configuration from environment (SQLite by default)."""
    root = Path(os.getenv("MEDIA_ROOT", "media"))
    generation = load_generation_settings()
    media_paths = MediaPaths(
        root=root,
        thumbnails=root / generation.thumbnail_folder,
        references=root / generation.reference_folder,
    )
    _ensure_media_paths(media_paths)

    database_url = os.getenv("DATABASE_URL", "sqlite:///thumbforge.db")
    engine = create_engine(database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)
    init_db(engine)

    return AppConfig(
        media_paths=media_paths,
        providers=load_provider_settings(),
        generation=generation,
        database_url=database_url,
        engine=engine,
        session_factory=session_factory,
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        jwt_secret=os.getenv("JWT_SECRET", ""),
    )
