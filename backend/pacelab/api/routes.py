from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.pacelab.dependencies import (
    get_credential_broker,
    get_lifecycle_controller,
    get_metadata_client,
    get_owner_id,
    get_upload_manager,
)
from backend.pacelab.models.video_contracts import (
    AuthUrlResponse,
    DeleteResponse,
    UploadResultResponse,
    VideoStatusResponse,
    VideoSummary,
)
from backend.pacelab.services.credential_broker import CredentialBroker
from backend.pacelab.services.errors import (
    LifecycleOperationFailed,
    PublishingError,
    UploadStartFailed,
    UpstreamQueryFailed,
    ValidationError,
    summarize_error,
)
from backend.pacelab.services.lifecycle_controller import LifecycleController
from backend.pacelab.services.metadata_client import MetadataClient, YouTubeVideo
from backend.pacelab.services.upload_stream import UploadStreamManager
from backend.pacelab.services.upload_types import (
    NoFileSupplied,
    ReauthorizationRequired,
    StreamError,
    UploadFailed,
    UploadOutcome,
    UploadSucceeded,
)

router = APIRouter(prefix="/youtube", tags=["youtube"])

OwnerId = Annotated[str, Depends(get_owner_id)]


def _require_text(value: str | None, detail: str) -> str:
    if value is None or not value.strip():
        raise HTTPException(status_code=400, detail=detail)
    return value.strip()


def _summaries(videos: list[YouTubeVideo]) -> list[VideoSummary]:
    return [VideoSummary.from_video(video) for video in videos]


def _upstream_unavailable(exc: UpstreamQueryFailed) -> HTTPException:
    return HTTPException(status_code=502, detail=str(exc))


def _lifecycle_failure(exc: LifecycleOperationFailed, message: str) -> HTTPException:
    return HTTPException(
        status_code=502,
        detail={"message": message, "error": str(exc), "invalidGrant": exc.invalid_grant},
    )


def outcome_response(outcome: UploadOutcome) -> Response:
    """Render a settled upload outcome as the HTTP response for the upload route."""
    if isinstance(outcome, UploadSucceeded):
        body = UploadResultResponse.from_outcome(outcome).model_dump(by_alias=True)
        return JSONResponse(status_code=200, content=body)
    if isinstance(outcome, ReauthorizationRequired):
        return JSONResponse(
            status_code=401,
            content={
                "message": "REFRESH_TOKEN_INVALID",
                "reason": "reauth_required",
                "authUrl": outcome.auth_url,
                "error": outcome.error,
            },
        )
    if isinstance(outcome, UploadFailed):
        return JSONResponse(
            status_code=500,
            content={"message": "YouTube upload failed", "error": outcome.error},
        )
    if isinstance(outcome, NoFileSupplied):
        return JSONResponse(
            status_code=400,
            content={"message": "No video file found in form-data"},
        )
    if isinstance(outcome, StreamError):
        return JSONResponse(
            status_code=500,
            content={"message": "Upload stream error", "error": outcome.error},
        )
    raise TypeError(f"Unsupported upload outcome: {outcome!r}")


@router.get(
    "/search",
    response_model=list[VideoSummary],
    operation_id="youtube_search",
)
async def search_videos(
    client: Annotated[MetadataClient, Depends(get_metadata_client)],
    q: str | None = None,
    max_results: Annotated[int, Query(alias="maxResults", ge=1)] = 5,
) -> list[VideoSummary]:
    query = _require_text(q, 'Missing query "q"')
    try:
        return _summaries(await client.search(query, max_results))
    except UpstreamQueryFailed as exc:
        raise _upstream_unavailable(exc) from exc


@router.get(
    "/videos",
    response_model=list[VideoSummary],
    operation_id="youtube_video_details",
)
async def video_details(
    client: Annotated[MetadataClient, Depends(get_metadata_client)],
    ids: str | None = None,
) -> list[VideoSummary]:
    video_ids = _require_text(ids, 'Missing "ids"')
    try:
        return _summaries(await client.get_details(video_ids))
    except UpstreamQueryFailed as exc:
        raise _upstream_unavailable(exc) from exc


@router.get(
    "/playlist",
    response_model=list[VideoSummary],
    operation_id="youtube_playlist_videos",
)
async def playlist_videos(
    client: Annotated[MetadataClient, Depends(get_metadata_client)],
    playlist_id: Annotated[str | None, Query(alias="id")] = None,
    max_results: Annotated[int, Query(alias="maxResults", ge=1)] = 5,
) -> list[VideoSummary]:
    resolved_id = _require_text(playlist_id, 'Missing playlist "id"')
    try:
        return _summaries(await client.get_playlist_videos(resolved_id, max_results))
    except UpstreamQueryFailed as exc:
        raise _upstream_unavailable(exc) from exc


@router.get("/auth/url", response_model=AuthUrlResponse, operation_id="youtube_auth_url")
def auth_url(
    broker: Annotated[CredentialBroker, Depends(get_credential_broker)],
) -> Any:
    try:
        return AuthUrlResponse(url=broker.build_authorization_url())
    except PublishingError as exc:
        return JSONResponse(
            status_code=500,
            content={"message": "Failed to generate auth url", "error": summarize_error(exc)},
        )


@router.get("/auth/callback", response_class=PlainTextResponse, operation_id="youtube_auth_callback")
async def auth_callback(
    broker: Annotated[CredentialBroker, Depends(get_credential_broker)],
    owner_id: OwnerId,
    code: str | None = None,
) -> PlainTextResponse:
    if not code:
        return PlainTextResponse("Missing code", status_code=400)
    try:
        await broker.exchange_code(code, owner_id)
    except PublishingError:
        return PlainTextResponse("Failed to exchange code for token", status_code=500)
    return PlainTextResponse("YouTube connected. You can close this window.")


@router.post("/upload/stream", operation_id="youtube_upload_stream")
async def upload_stream(
    request: Request,
    manager: Annotated[UploadStreamManager, Depends(get_upload_manager)],
    owner_id: OwnerId,
) -> Response:
    context_tokens = bind_contextvars(upload_owner_id=owner_id)
    try:
        outcome = await manager.receive_multipart(
            request.stream(),
            content_type=request.headers.get("content-type", ""),
            owner_id=owner_id,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UploadStartFailed as exc:
        return JSONResponse(
            status_code=500,
            content={"message": "Failed to create upload stream", "error": str(exc)},
        )
    finally:
        reset_contextvars(**context_tokens)
    return outcome_response(outcome)


@router.get(
    "/videos/{video_id}/status",
    response_model=VideoStatusResponse,
    operation_id="youtube_video_status",
)
async def video_status(
    video_id: str,
    controller: Annotated[LifecycleController, Depends(get_lifecycle_controller)],
    owner_id: OwnerId,
) -> VideoStatusResponse:
    resolved_id = _require_text(video_id, "Missing video id")
    try:
        status = await controller.get_status(resolved_id, owner_id)
    except LifecycleOperationFailed as exc:
        raise _lifecycle_failure(exc, "Failed to fetch video status") from exc
    return VideoStatusResponse.from_status(status)


@router.delete(
    "/videos/{video_id}",
    response_model=DeleteResponse,
    operation_id="youtube_video_delete",
)
async def delete_video(
    video_id: str,
    controller: Annotated[LifecycleController, Depends(get_lifecycle_controller)],
    owner_id: OwnerId,
) -> DeleteResponse:
    resolved_id = _require_text(video_id, "Missing video id")
    try:
        result = await controller.delete(resolved_id, owner_id)
    except LifecycleOperationFailed as exc:
        raise _lifecycle_failure(exc, "Failed to delete video") from exc
    return DeleteResponse(ok=result["ok"])
