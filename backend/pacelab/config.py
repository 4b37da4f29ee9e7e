from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DATA_DIR = ".pacelab"
DEFAULT_OWNER_ID = "owner"
PRIVACY_STATUSES: frozenset[str] = frozenset({"public", "unlisted", "private"})
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("db_path", Path("state.db")),
    ("log_dir", Path("logs")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{PACELAB_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Every option is read from a `PACELAB_*` environment variable (or `.env`).
    OAuth values are only checked for presence on the paths that need them,
    so read-only deployments can run with just an API key.
    """

    model_config = SettingsConfigDict(
        env_prefix="PACELAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for local state and logs.",
    )
    db_path: Path = Field(
        default=_default_in_data_dir(Path("state.db")),
        description=f"SQLite database path. {_data_dir_default_note(Path('state.db'))}",
    )
    default_owner_id: str = Field(
        default=DEFAULT_OWNER_ID,
        description="Owner whose delegated YouTube credential is used by the HTTP routes.",
    )

    # Google OAuth (delegated, write paths).
    google_client_id: str | None = Field(
        default=None,
        description="OAuth client id used for consent URLs, code exchange and token refresh.",
    )
    google_client_secret: str | None = Field(
        default=None,
        description="OAuth client secret paired with `google_client_id`.",
    )
    google_redirect_uri: str | None = Field(
        default=None,
        description="Redirect URI registered for the OAuth client (points at /auth/callback).",
    )
    google_refresh_token: str | None = Field(
        default=None,
        description=(
            "Static fallback refresh token used when no token is stored for the owner. "
            "Enables single-tenant deployments without interactive consent."
        ),
    )

    # YouTube Data API.
    youtube_api_key: str | None = Field(
        default=None,
        description="API key for read-only search/detail/playlist queries.",
    )
    youtube_http_timeout_seconds: float = Field(
        default=30.0,
        description="Connect/read timeout for outbound YouTube requests (upload body writes excluded).",
    )
    youtube_default_privacy_status: Literal["public", "unlisted", "private"] = Field(
        default="unlisted",
        description="Privacy status applied when an upload does not specify a valid one.",
    )
    youtube_default_upload_title: str = Field(
        default="Lesson Upload",
        description="Title applied when an upload does not provide one.",
    )
    youtube_upload_chunk_size: int = Field(
        default=256 * 1024,
        ge=1024,
        description="Read size used when streaming a local file into an upload.",
    )

    # HTTP boundary.
    api_prefix: str = Field(
        default="/api",
        description="Global route prefix; YouTube routes live under `{api_prefix}/youtube`.",
    )
    cors_allowed_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=("http://localhost:3000", "http://127.0.0.1:3000"),
        description="Explicit CORS allow-list (comma separated in the environment).",
    )
    cors_allowed_origin_regex: str | None = Field(
        default=(
            r"^https://([a-z0-9-]+\.)*(vercel\.app|onrender\.com|trycloudflare\.com)$"
            r"|^http://(localhost|127\.0\.0\.1)(:\d+)?$"
        ),
        description="Pattern for preview/hosting origins accepted in addition to the allow-list.",
    )

    # Logging.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for backend log files. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("PACELAB_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("PACELAB_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("youtube_default_privacy_status", mode="before")
    @classmethod
    def _normalize_privacy_status(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("PACELAB_YOUTUBE_DEFAULT_PRIVACY_STATUS must be a string.")
        normalized = value.strip().lower()
        if normalized in PRIVACY_STATUSES:
            return normalized
        raise ValueError(
            "PACELAB_YOUTUBE_DEFAULT_PRIVACY_STATUS must be set to: public, unlisted, private."
        )

    @field_validator("default_owner_id", "youtube_default_upload_title", mode="before")
    @classmethod
    def _normalize_required_text(cls, value: Any) -> str:
        normalized = _normalize_optional_text(value)
        if normalized is None:
            raise ValueError("value must be a non-empty string.")
        return normalized

    @field_validator("api_prefix", mode="before")
    @classmethod
    def _normalize_api_prefix(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("PACELAB_API_PREFIX must be a string.")
        normalized = value.strip().strip("/")
        return f"/{normalized}" if normalized else ""

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(origin.strip() for origin in value.split(",") if origin.strip())
        return value

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(
        "google_client_id",
        "google_client_secret",
        "google_redirect_uri",
        "google_refresh_token",
        "youtube_api_key",
        "cors_allowed_origin_regex",
        mode="before",
    )
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings() -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    return _resolve_path_fields(settings)
