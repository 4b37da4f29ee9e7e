from __future__ import annotations

from pathlib import Path

import pytest

from backend.pacelab.config import DEFAULT_OWNER_ID, load_settings


def test_load_settings_applies_data_dir_defaults(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    data_dir = tmp_path / "data"
    monkeypatch.setenv("PACELAB_DATA_DIR", str(data_dir))

    settings = load_settings()

    assert settings.data_dir == data_dir.resolve()
    assert settings.db_path == (data_dir / "state.db").resolve()
    assert settings.log_dir == (data_dir / "logs").resolve()
    assert settings.default_owner_id == DEFAULT_OWNER_ID
    assert settings.youtube_default_privacy_status == "unlisted"
    assert settings.api_prefix == "/api"


def test_load_settings_normalizes_text_and_lists(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PACELAB_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("PACELAB_GOOGLE_CLIENT_ID", "  client-id  ")
    monkeypatch.setenv("PACELAB_GOOGLE_REFRESH_TOKEN", "   ")
    monkeypatch.setenv("PACELAB_API_PREFIX", "v1/")
    monkeypatch.setenv(
        "PACELAB_CORS_ALLOWED_ORIGINS",
        "https://lms.example.com, http://localhost:5173 ,",
    )
    monkeypatch.setenv("PACELAB_YOUTUBE_DEFAULT_PRIVACY_STATUS", " PRIVATE ")

    settings = load_settings()

    assert settings.google_client_id == "client-id"
    assert settings.google_refresh_token is None
    assert settings.api_prefix == "/v1"
    assert settings.cors_allowed_origins == ("https://lms.example.com", "http://localhost:5173")
    assert settings.youtube_default_privacy_status == "private"


def test_load_settings_allows_empty_api_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PACELAB_API_PREFIX", "/")

    assert load_settings().api_prefix == ""


def test_load_settings_rejects_invalid_privacy_status(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PACELAB_YOUTUBE_DEFAULT_PRIVACY_STATUS", "friends-only")

    with pytest.raises(ValueError, match="PACELAB_YOUTUBE_DEFAULT_PRIVACY_STATUS"):
        load_settings()


def test_load_settings_rejects_invalid_telemetry_sink(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PACELAB_TELEMETRY_SINK", "otlp")

    with pytest.raises(ValueError, match="PACELAB_TELEMETRY_SINK"):
        load_settings()


def test_load_settings_rejects_blank_owner(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PACELAB_DEFAULT_OWNER_ID", "  ")

    with pytest.raises(ValueError):
        load_settings()
