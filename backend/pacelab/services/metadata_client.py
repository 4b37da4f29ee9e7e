from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any, cast

from backend.pacelab.services.errors import (
    UpstreamQueryFailed,
    ValidationError,
    describe_error,
    is_invalid_grant,
)

LOGGER = logging.getLogger("pacelab.youtube.metadata")

YOUTUBE_MAX_PAGE_SIZE = 50
DETAIL_PARTS = "snippet,contentDetails,statistics"


@dataclass(frozen=True)
class YouTubeVideo:
    id: str
    title: str
    description: str
    thumbnail: str
    duration: str
    published_at: str
    channel_title: str
    view_count: int


ClientFactory = Callable[[str | None], Any]


class MetadataClient:
    """Read-only catalog queries authenticated with the service API key."""

    def __init__(
        self,
        *,
        api_key: str | None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._api_key = api_key
        self._client_factory = client_factory or _build_api_key_client
        if not api_key:
            LOGGER.warning("youtube api key missing; read-only queries will fail upstream")

    async def search(self, query: str, max_results: int = 10) -> list[YouTubeVideo]:
        return await self._run(
            self._search_sync,
            query,
            _clamp_page_size(max_results),
            failure_message="Failed to search YouTube videos",
        )

    async def get_details(self, ids: str | Sequence[str]) -> list[YouTubeVideo]:
        video_ids = _normalize_ids(ids)
        if not video_ids:
            return []
        return await self._run(
            self._details_sync,
            video_ids,
            failure_message="Failed to fetch YouTube video details",
        )

    async def get_playlist_videos(
        self,
        playlist_id: str,
        max_results: int = 10,
    ) -> list[YouTubeVideo]:
        return await self._run(
            self._playlist_sync,
            playlist_id,
            _clamp_page_size(max_results),
            failure_message="Failed to fetch playlist videos",
        )

    async def _run(
        self,
        operation: Callable[..., list[YouTubeVideo]],
        *args: Any,
        failure_message: str,
    ) -> list[YouTubeVideo]:
        try:
            return await asyncio.to_thread(operation, *args)
        except Exception as exc:
            LOGGER.error(
                "youtube query failed operation=%s invalid_grant=%s cause=%s",
                operation.__name__.strip("_"),
                is_invalid_grant(exc),
                describe_error(exc),
            )
            raise UpstreamQueryFailed(failure_message) from exc

    def _search_sync(self, query: str, max_results: int) -> list[YouTubeVideo]:
        client = self._client_factory(self._api_key)
        response = cast(
            dict[str, Any],
            client.search()
            .list(
                part="snippet",
                q=query,
                type="video",
                order="relevance",
                maxResults=max_results,
            )
            .execute(),
        )
        video_ids: list[str] = []
        for item in _as_list(response.get("items")):
            video_id = _as_dict(_as_dict(item).get("id")).get("videoId")
            if isinstance(video_id, str) and video_id:
                video_ids.append(video_id)
        if not video_ids:
            return []
        return _fetch_details(client, video_ids[:max_results])

    def _details_sync(self, video_ids: list[str]) -> list[YouTubeVideo]:
        client = self._client_factory(self._api_key)
        return _fetch_details(client, video_ids)

    def _playlist_sync(self, playlist_id: str, max_results: int) -> list[YouTubeVideo]:
        client = self._client_factory(self._api_key)
        response = cast(
            dict[str, Any],
            client.playlistItems()
            .list(part="snippet", playlistId=playlist_id, maxResults=max_results)
            .execute(),
        )
        video_ids: list[str] = []
        for item in _as_list(response.get("items")):
            snippet = _as_dict(_as_dict(item).get("snippet"))
            video_id = _as_dict(snippet.get("resourceId")).get("videoId")
            if isinstance(video_id, str) and video_id:
                video_ids.append(video_id)
        if not video_ids:
            return []
        return _fetch_details(client, video_ids[:max_results])


def _fetch_details(client: Any, video_ids: list[str]) -> list[YouTubeVideo]:
    response = cast(
        dict[str, Any],
        client.videos().list(part=DETAIL_PARTS, id=",".join(video_ids)).execute(),
    )
    videos: list[YouTubeVideo] = []
    for item in _as_list(response.get("items")):
        video = _video_from_item(_as_dict(item))
        if video is not None:
            videos.append(video)
    return videos


def _video_from_item(item: dict[str, Any]) -> YouTubeVideo | None:
    video_id = item.get("id")
    if not isinstance(video_id, str) or not video_id.strip():
        return None
    snippet = _as_dict(item.get("snippet"))
    content_details = _as_dict(item.get("contentDetails"))
    statistics = _as_dict(item.get("statistics"))
    thumbnail = _as_dict(_as_dict(snippet.get("thumbnails")).get("high")).get("url")
    return YouTubeVideo(
        id=video_id,
        title=_as_text(snippet.get("title")),
        description=_as_text(snippet.get("description")),
        thumbnail=_as_text(thumbnail),
        duration=_as_text(content_details.get("duration")),
        published_at=_as_text(snippet.get("publishedAt")),
        channel_title=_as_text(snippet.get("channelTitle")),
        view_count=_as_int(statistics.get("viewCount")),
    )


def _build_api_key_client(api_key: str | None) -> Any:
    try:
        discovery_module = import_module("googleapiclient.discovery")
    except ImportError as exc:  # pragma: no cover - dependency controlled at runtime
        raise UpstreamQueryFailed(
            "YouTube queries require the google-api-python-client dependency"
        ) from exc
    build_fn: Any = discovery_module.build
    return build_fn("youtube", "v3", developerKey=api_key, cache_discovery=False)


def _normalize_ids(ids: str | Sequence[str]) -> list[str]:
    raw_values = ids.split(",") if isinstance(ids, str) else list(ids)
    normalized: list[str] = []
    for raw_value in raw_values:
        if not isinstance(raw_value, str):
            continue
        value = raw_value.strip()
        if value and value not in normalized:
            normalized.append(value)
    return normalized


def _clamp_page_size(max_results: int) -> int:
    if max_results < 1:
        raise ValidationError("maxResults must be at least 1")
    return min(YOUTUBE_MAX_PAGE_SIZE, max_results)


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        return {key: item for key, item in raw_dict.items() if isinstance(key, str)}
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return list(cast(list[Any], value))
    return []
