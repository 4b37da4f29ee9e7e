from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from importlib import import_module
from typing import Any, cast

from backend.pacelab.services.credential_broker import CredentialBroker, DelegatedSession
from backend.pacelab.services.errors import (
    LifecycleOperationFailed,
    is_invalid_grant,
    summarize_error,
)

LOGGER = logging.getLogger("pacelab.youtube.lifecycle")


@dataclass(frozen=True)
class VideoStatus:
    upload_status: str | None
    processing_status: str | None
    failure_reason: str | None
    privacy_status: str | None
    embeddable: bool | None

    @classmethod
    def unknown(cls) -> VideoStatus:
        return cls(
            upload_status=None,
            processing_status=None,
            failure_reason=None,
            privacy_status=None,
            embeddable=None,
        )


DelegatedClientFactory = Callable[[DelegatedSession], Any]


class LifecycleController:
    """Status polling and deletion of uploaded videos.

    Invalid-grant failures are flagged on the raised error but the stored
    token is left alone and no consent URL is attached; only the upload path
    performs that recovery.
    """

    def __init__(
        self,
        *,
        broker: CredentialBroker,
        client_factory: DelegatedClientFactory | None = None,
    ) -> None:
        self._broker = broker
        self._client_factory = client_factory or _build_delegated_client

    async def get_status(self, video_id: str, owner_id: str) -> VideoStatus:
        session = await self._broker.build_credentials(owner_id)
        try:
            return await asyncio.to_thread(self._status_sync, session, video_id)
        except Exception as exc:
            raise self._failure("status", video_id, owner_id, exc) from exc

    async def delete(self, video_id: str, owner_id: str) -> dict[str, bool]:
        session = await self._broker.build_credentials(owner_id)
        try:
            await asyncio.to_thread(self._delete_sync, session, video_id)
        except Exception as exc:
            raise self._failure("delete", video_id, owner_id, exc) from exc
        LOGGER.info("youtube video deleted video_id=%s owner_id=%s", video_id, owner_id)
        return {"ok": True}

    def _status_sync(self, session: DelegatedSession, video_id: str) -> VideoStatus:
        client = self._client_factory(session)
        response = cast(
            dict[str, Any],
            client.videos().list(part="status,processingDetails", id=video_id).execute(),
        )
        items = response.get("items")
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            return VideoStatus.unknown()

        item = cast(dict[str, Any], items[0])
        status = _as_dict(item.get("status"))
        processing = _as_dict(item.get("processingDetails"))
        embeddable = status.get("embeddable")
        return VideoStatus(
            upload_status=_as_optional_text(status.get("uploadStatus")),
            processing_status=_as_optional_text(processing.get("processingStatus")),
            failure_reason=_as_optional_text(processing.get("processingFailureReason")),
            privacy_status=_as_optional_text(status.get("privacyStatus")),
            embeddable=embeddable if isinstance(embeddable, bool) else None,
        )

    def _delete_sync(self, session: DelegatedSession, video_id: str) -> None:
        client = self._client_factory(session)
        client.videos().delete(id=video_id).execute()

    def _failure(
        self,
        operation: str,
        video_id: str,
        owner_id: str,
        exc: Exception,
    ) -> LifecycleOperationFailed:
        invalid_grant = is_invalid_grant(exc)
        LOGGER.warning(
            "youtube %s failed video_id=%s owner_id=%s invalid_grant=%s",
            operation,
            video_id,
            owner_id,
            invalid_grant,
            exc_info=True,
        )
        return LifecycleOperationFailed(
            summarize_error(exc),
            cause=exc,
            invalid_grant=invalid_grant,
        )


def _build_delegated_client(session: DelegatedSession) -> Any:
    discovery_module = import_module("googleapiclient.discovery")
    build_fn: Any = discovery_module.build
    return build_fn(
        "youtube",
        "v3",
        credentials=session.credentials,
        cache_discovery=False,
    )


def _as_optional_text(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return cast(dict[str, Any], value)
    return {}
