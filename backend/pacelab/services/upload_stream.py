from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import httpx

from backend.pacelab.services.credential_broker import CredentialBroker, DelegatedSession
from backend.pacelab.services.errors import (
    UploadHttpError,
    UploadStreamAborted,
    describe_error,
    is_invalid_grant,
    summarize_error,
)
from backend.pacelab.services.multipart_receiver import MultipartUploadReceiver
from backend.pacelab.services.upload_types import (
    ReauthorizationRequired,
    StreamError,
    UploadCompletion,
    UploadFailed,
    UploadOutcome,
    UploadSession,
    UploadSink,
    UploadSucceeded,
    embed_url,
    normalize_privacy_status,
    watch_url,
)
from backend.pacelab.telemetry import TelemetryClient

LOGGER = logging.getLogger("pacelab.youtube.upload")

UPLOAD_ENDPOINT = "https://www.googleapis.com/upload/youtube/v3/videos"
DEFAULT_UPLOAD_TITLE = "Lesson Upload"
DEFAULT_PRIVACY_STATUS = "unlisted"


class UploadStreamManager:
    def __init__(
        self,
        *,
        broker: CredentialBroker,
        http_timeout_seconds: float = 30.0,
        read_chunk_size: int = 256 * 1024,
        default_title: str = DEFAULT_UPLOAD_TITLE,
        default_privacy_status: str = DEFAULT_PRIVACY_STATUS,
        transport: httpx.AsyncBaseTransport | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._broker = broker
        self._http_timeout_seconds = max(1.0, float(http_timeout_seconds))
        self._read_chunk_size = max(1024, int(read_chunk_size))
        self._default_title = default_title
        self._default_privacy_status = normalize_privacy_status(
            default_privacy_status,
            default=DEFAULT_PRIVACY_STATUS,
        )
        self._transport = transport
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    @property
    def default_title(self) -> str:
        return self._default_title

    @property
    def default_privacy_status(self) -> str:
        return self._default_privacy_status

    async def begin_upload(
        self,
        *,
        title: str | None,
        description: str | None,
        privacy_status: str | None,
        owner_id: str,
        completion: UploadCompletion | None = None,
    ) -> UploadSession:
        resolved_title = (title or "").strip() or self._default_title
        resolved_description = description or ""
        resolved_privacy = normalize_privacy_status(
            privacy_status,
            default=self._default_privacy_status,
        )
        delegated = await self._broker.build_credentials(owner_id)

        session = UploadSession(
            owner_id=owner_id,
            sink=UploadSink(),
            completion=completion if completion is not None else UploadCompletion(),
        )
        metadata = {
            "snippet": {"title": resolved_title, "description": resolved_description},
            "status": {"privacyStatus": resolved_privacy},
        }
        session.task = asyncio.create_task(
            self._run_upload(session, delegated, metadata),
            name=f"youtube-upload:{owner_id}",
        )
        self._telemetry.emit(
            "youtube.upload.start",
            owner_id=owner_id,
            credential_source=delegated.source,
            privacy_status=resolved_privacy,
        )
        LOGGER.info(
            "youtube upload started owner_id=%s credential_source=%s privacy_status=%s",
            owner_id,
            delegated.source,
            resolved_privacy,
        )
        return session

    async def receive_multipart(
        self,
        chunks: AsyncIterator[bytes],
        *,
        content_type: str,
        owner_id: str,
    ) -> UploadOutcome:
        receiver = MultipartUploadReceiver(manager=self, owner_id=owner_id)
        return await receiver.receive(chunks, content_type=content_type)

    async def upload_from_path(
        self,
        path: Path,
        *,
        title: str | None = None,
        description: str | None = None,
        privacy_status: str | None = None,
        owner_id: str,
    ) -> UploadOutcome:
        """Stream a local file through the upload pipeline, then delete it."""
        try:
            session = await self.begin_upload(
                title=title,
                description=description,
                privacy_status=privacy_status,
                owner_id=owner_id,
            )
            try:
                with path.open("rb") as handle:
                    while True:
                        chunk = await asyncio.to_thread(handle.read, self._read_chunk_size)
                        if not chunk:
                            break
                        await session.sink.write(chunk)
                await session.sink.close()
            except UploadStreamAborted:
                # Outbound side already settled the outcome.
                pass
            except OSError as exc:
                await session.abort(exc)
            return await session.completion.wait()
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError:
                LOGGER.warning("upload source cleanup failed path=%s", path, exc_info=True)

    async def _run_upload(
        self,
        session: UploadSession,
        delegated: DelegatedSession,
        metadata: dict[str, Any],
    ) -> None:
        try:
            resource = await self._send(session.sink, delegated, metadata)
            outcome = self._success_outcome(resource, metadata)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if session.sink.aborted or isinstance(exc, UploadStreamAborted):
                outcome = StreamError(error=summarize_error(exc))
            else:
                outcome = await self._failure_outcome(exc, session.owner_id)
        finally:
            await session.sink.detach()

        session.completion.settle(outcome)
        settled = session.completion.result()
        self._telemetry.emit(
            "youtube.upload.finish",
            owner_id=session.owner_id,
            outcome=settled.kind if settled is not None else outcome.kind,
            bytes_written=session.sink.bytes_written,
        )

    async def _send(
        self,
        sink: UploadSink,
        delegated: DelegatedSession,
        metadata: dict[str, Any],
    ) -> dict[str, Any]:
        access_token = await self._broker.fetch_access_token(delegated)
        auth_headers: dict[str, str] = {}
        if access_token is not None:
            auth_headers["Authorization"] = f"Bearer {access_token}"

        # Body writes are paced by the inbound stream, so they get no timeout.
        timeout = httpx.Timeout(self._http_timeout_seconds, write=None)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            init_response = await client.post(
                UPLOAD_ENDPOINT,
                params={"uploadType": "resumable", "part": "snippet,status"},
                json=metadata,
                headers={**auth_headers, "X-Upload-Content-Type": "video/*"},
            )
            _raise_for_upload_status(init_response, stage="initiate")
            location = init_response.headers.get("Location")
            if not location:
                raise UploadHttpError(
                    "YouTube did not return an upload location",
                    status_code=init_response.status_code,
                    payload=init_response.text,
                )

            upload_response = await client.put(
                location,
                content=sink.chunks(),
                headers={**auth_headers, "Content-Type": "video/*"},
            )
            _raise_for_upload_status(upload_response, stage="upload")

        try:
            parsed = upload_response.json()
        except ValueError as exc:
            raise UploadHttpError(
                "YouTube upload response was not JSON",
                status_code=upload_response.status_code,
                payload=upload_response.text,
            ) from exc
        if not isinstance(parsed, dict) or not isinstance(parsed.get("id"), str):
            raise UploadHttpError(
                "YouTube upload response did not include a video id",
                status_code=upload_response.status_code,
                payload=upload_response.text,
            )
        return {str(key): value for key, value in parsed.items()}

    def _success_outcome(
        self,
        resource: dict[str, Any],
        metadata: dict[str, Any],
    ) -> UploadSucceeded:
        video_id = str(resource["id"])
        snippet = resource.get("snippet") if isinstance(resource.get("snippet"), dict) else {}
        status = resource.get("status") if isinstance(resource.get("status"), dict) else {}
        title = snippet.get("title")
        description = snippet.get("description")
        privacy_status = status.get("privacyStatus")
        LOGGER.info("youtube upload finished video_id=%s", video_id)
        return UploadSucceeded(
            video_id=video_id,
            title=title if isinstance(title, str) else metadata["snippet"]["title"],
            description=(
                description if isinstance(description, str) else metadata["snippet"]["description"]
            ),
            privacy_status=(
                privacy_status
                if isinstance(privacy_status, str)
                else metadata["status"]["privacyStatus"]
            ),
            watch_url=watch_url(video_id),
            embed_url=embed_url(video_id),
        )

    async def _failure_outcome(self, exc: Exception, owner_id: str) -> UploadOutcome:
        if not is_invalid_grant(exc):
            LOGGER.error(
                "youtube upload failed owner_id=%s cause=%s",
                owner_id,
                describe_error(exc),
            )
            return UploadFailed(error=summarize_error(exc))

        LOGGER.warning("youtube upload rejected credential owner_id=%s; clearing token", owner_id)
        try:
            await asyncio.to_thread(self._broker.token_repository.clear_refresh_token, owner_id)
        except Exception:
            LOGGER.warning("youtube token clear failed owner_id=%s", owner_id, exc_info=True)

        auth_url: str | None
        try:
            auth_url = self._broker.build_authorization_url()
        except Exception:
            LOGGER.warning("youtube consent url unavailable owner_id=%s", owner_id, exc_info=True)
            auth_url = None
        return ReauthorizationRequired(auth_url=auth_url, error=summarize_error(exc))


def _raise_for_upload_status(response: httpx.Response, *, stage: str) -> None:
    if response.status_code < 400:
        return
    raise UploadHttpError(
        f"YouTube {stage} request failed with status {response.status_code}",
        status_code=response.status_code,
        payload=response.text,
    )
