from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from backend.pacelab.services.lifecycle_controller import VideoStatus
from backend.pacelab.services.metadata_client import YouTubeVideo
from backend.pacelab.services.upload_types import UploadSucceeded


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VideoSummary(_CamelModel):
    id: str
    title: str
    description: str
    thumbnail: str
    duration: str
    published_at: str = Field(alias="publishedAt")
    channel_title: str = Field(alias="channelTitle")
    view_count: int = Field(alias="viewCount")

    @classmethod
    def from_video(cls, video: YouTubeVideo) -> VideoSummary:
        return cls(
            id=video.id,
            title=video.title,
            description=video.description,
            thumbnail=video.thumbnail,
            duration=video.duration,
            published_at=video.published_at,
            channel_title=video.channel_title,
            view_count=video.view_count,
        )


class VideoStatusResponse(_CamelModel):
    upload_status: str | None = Field(default=None, alias="uploadStatus")
    processing_status: str | None = Field(default=None, alias="processingStatus")
    failure_reason: str | None = Field(default=None, alias="failureReason")
    privacy_status: str | None = Field(default=None, alias="privacyStatus")
    embeddable: bool | None = None

    @classmethod
    def from_status(cls, status: VideoStatus) -> VideoStatusResponse:
        return cls(
            upload_status=status.upload_status,
            processing_status=status.processing_status,
            failure_reason=status.failure_reason,
            privacy_status=status.privacy_status,
            embeddable=status.embeddable,
        )


class UploadResultResponse(_CamelModel):
    video_id: str = Field(alias="videoId")
    watch_url: str = Field(alias="watchUrl")
    embed_url: str = Field(alias="embedUrl")
    title: str
    description: str
    privacy_status: str = Field(alias="privacyStatus")

    @classmethod
    def from_outcome(cls, outcome: UploadSucceeded) -> UploadResultResponse:
        return cls(
            video_id=outcome.video_id,
            watch_url=outcome.watch_url,
            embed_url=outcome.embed_url,
            title=outcome.title,
            description=outcome.description,
            privacy_status=outcome.privacy_status,
        )


class AuthUrlResponse(_CamelModel):
    url: str


class DeleteResponse(_CamelModel):
    ok: bool
