from __future__ import annotations

from functools import lru_cache

from backend.pacelab.config import AppSettings, load_settings
from backend.pacelab.repositories.database import Database
from backend.pacelab.repositories.token_repository import TokenRepository
from backend.pacelab.services.credential_broker import CredentialBroker
from backend.pacelab.services.lifecycle_controller import LifecycleController
from backend.pacelab.services.metadata_client import MetadataClient
from backend.pacelab.services.upload_stream import UploadStreamManager
from backend.pacelab.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_database() -> Database:
    database = Database(get_settings().db_path)
    database.initialize()
    return database


@lru_cache(maxsize=1)
def get_token_repository() -> TokenRepository:
    return TokenRepository(get_database())


@lru_cache(maxsize=1)
def get_credential_broker() -> CredentialBroker:
    settings = get_settings()
    return CredentialBroker(
        token_repository=get_token_repository(),
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri,
        static_refresh_token=settings.google_refresh_token,
        http_timeout_seconds=settings.youtube_http_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_metadata_client() -> MetadataClient:
    return MetadataClient(api_key=get_settings().youtube_api_key)


@lru_cache(maxsize=1)
def get_upload_manager() -> UploadStreamManager:
    settings = get_settings()
    return UploadStreamManager(
        broker=get_credential_broker(),
        http_timeout_seconds=settings.youtube_http_timeout_seconds,
        read_chunk_size=settings.youtube_upload_chunk_size,
        default_title=settings.youtube_default_upload_title,
        default_privacy_status=settings.youtube_default_privacy_status,
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_lifecycle_controller() -> LifecycleController:
    return LifecycleController(broker=get_credential_broker())


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def get_owner_id() -> str:
    return get_settings().default_owner_id


def reset_cached_dependencies() -> None:
    get_lifecycle_controller.cache_clear()
    get_upload_manager.cache_clear()
    get_metadata_client.cache_clear()
    get_credential_broker.cache_clear()
    get_token_repository.cache_clear()
    get_database.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
