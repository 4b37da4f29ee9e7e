from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.pacelab.dependencies import reset_cached_dependencies
from backend.pacelab.main import create_app
from backend.pacelab.repositories.database import Database
from backend.pacelab.repositories.token_repository import TokenRepository
from backend.pacelab.services.credential_broker import CredentialBroker, DelegatedSession

STATIC_ACCESS_TOKEN = "ya29.test-access"


class StaticTokenBroker(CredentialBroker):
    """Broker that hands out a fixed access token instead of refreshing with Google."""

    async def fetch_access_token(self, session: DelegatedSession) -> str | None:
        return STATIC_ACCESS_TOKEN if session.authenticated else None


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:  # pyright: ignore[reportUnusedFunction]
    for name in (
        "PACELAB_GOOGLE_CLIENT_ID",
        "PACELAB_GOOGLE_CLIENT_SECRET",
        "PACELAB_GOOGLE_REDIRECT_URI",
        "PACELAB_GOOGLE_REFRESH_TOKEN",
        "PACELAB_YOUTUBE_API_KEY",
        "PACELAB_API_PREFIX",
        "PACELAB_CORS_ALLOWED_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def token_repository(tmp_path: Path) -> TokenRepository:
    db = Database(tmp_path / "state.db")
    db.initialize()
    return TokenRepository(db)


@pytest.fixture
def static_token_broker(token_repository: TokenRepository) -> Callable[..., CredentialBroker]:
    def build(
        *,
        repository: TokenRepository | None = None,
        client_id: str | None = "client-id",
        client_secret: str | None = "client-secret",
        redirect_uri: str | None = "http://localhost:3001/api/youtube/auth/callback",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> CredentialBroker:
        return StaticTokenBroker(
            token_repository=repository if repository is not None else token_repository,
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            transport=transport,
        )

    return build


@pytest.fixture
def app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[FastAPI]:
    data_dir = tmp_path / "runtime-data"
    data_dir.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("PACELAB_DATA_DIR", str(data_dir))
    monkeypatch.setenv("PACELAB_GOOGLE_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("PACELAB_GOOGLE_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("PACELAB_GOOGLE_REDIRECT_URI", "http://localhost:3001/api/youtube/auth/callback")
    monkeypatch.setenv("PACELAB_YOUTUBE_API_KEY", "test-api-key")
    monkeypatch.setenv("PACELAB_TELEMETRY_SINK", "none")
    reset_cached_dependencies()

    yield create_app()

    reset_cached_dependencies()


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
