"""Smoke tests ensuring the application wiring exposes the generation API."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Tuple

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.thumbforge.config import AppConfig, GenerationSettings, MediaPaths, ProviderSettings
from src.thumbforge.db.db_init import init_db
from src.thumbforge.dependencies import include_routers
from src.thumbforge.generation.generation_service import GenerationService
from src.thumbforge.media.media_service import LocalImageStore


def _collect_route_signatures(app: FastAPI) -> set[Tuple[str, str]]:
    signatures: set[Tuple[str, str]] = set()
    for route in app.routes:
        methods: Iterable[str] = getattr(route, "methods", []) or []
        for method in methods:
            signatures.add((route.path, method.upper()))
    return signatures


def build_config(tmp_path: Path, *, jwt_secret: str = "scaffold-signing-key-0123456789abcdef") -> AppConfig:
    root = tmp_path / "media"
    database_url = f"sqlite:///{tmp_path / 'app.db'}"
    engine = create_engine(database_url, future=True)
    init_db(engine)
    return AppConfig(
        media_paths=MediaPaths(root=root, thumbnails=root / "thumbnails", references=root / "reference-images"),
        providers=ProviderSettings(),
        generation=GenerationSettings(),
        database_url=database_url,
        engine=engine,
        session_factory=sessionmaker(bind=engine, expire_on_commit=False),
        public_base_url="http://testserver",
        jwt_secret=jwt_secret,
    )


def test_include_routers_wires_services(tmp_path: Path) -> None:
    app = FastAPI()
    include_routers(app, build_config(tmp_path))

    assert isinstance(app.state.generation_service, GenerationService)
    assert isinstance(app.state.image_store, LocalImageStore)
    assert app.state.reference_folder == "reference-images"

    signatures = _collect_route_signatures(app)
    for signature in {
        ("/api/generate/rewrite-query", "POST"),
        ("/api/generate/images", "POST"),
        ("/api/generate/thumbnails", "GET"),
    }:
        assert signature in signatures


def test_no_route_issues_tokens(tmp_path: Path) -> None:
    app = FastAPI()
    include_routers(app, build_config(tmp_path))

    paths = {path for path, _ in _collect_route_signatures(app)}
    assert not any("token" in path or "login" in path for path in paths)


def test_stored_media_is_served(tmp_path: Path) -> None:
    app = FastAPI()
    config = build_config(tmp_path)
    include_routers(app, config)
    config.media_paths.thumbnails.mkdir(parents=True)
    (config.media_paths.thumbnails / "a.png").write_bytes(b"png-bytes")

    response = TestClient(app).get("/media/thumbnails/a.png")

    assert response.status_code == 200
    assert response.content == b"png-bytes"


def test_missing_jwt_secret_fails_closed(tmp_path: Path) -> None:
    app = FastAPI()
    include_routers(app, build_config(tmp_path, jwt_secret=""))

    response = TestClient(app).get(
        "/api/generate/thumbnails", headers={"Authorization": "Bearer whatever"}
    )

    assert response.status_code == 500
    assert response.json()["detail"]["failure_reason"] == "configuration_error"


def test_generation_without_configured_provider_is_configuration_error(tmp_path: Path) -> None:
    app = FastAPI()
    include_routers(app, build_config(tmp_path))
    token = app.state.token_verifier.issue_token("user-1")

    response = TestClient(app).post(
        "/api/generate/images",
        data={"prompt": "red car, dramatic lighting"},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 500
    assert response.json()["detail"]["failure_reason"] == "configuration_error"
