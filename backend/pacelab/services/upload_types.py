from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Literal

from backend.pacelab.config import PRIVACY_STATUSES
from backend.pacelab.services.errors import UploadStreamAborted, summarize_error

LOGGER = logging.getLogger("pacelab.youtube.upload")

WATCH_URL_PREFIX = "https://www.youtube.com/watch?v="
EMBED_URL_PREFIX = "https://www.youtube.com/embed/"


def watch_url(video_id: str) -> str:
    return f"{WATCH_URL_PREFIX}{video_id}"


def embed_url(video_id: str) -> str:
    return f"{EMBED_URL_PREFIX}{video_id}"


@dataclass(frozen=True)
class UploadSucceeded:
    video_id: str
    title: str
    description: str
    privacy_status: str
    watch_url: str
    embed_url: str
    kind: Literal["success"] = "success"


@dataclass(frozen=True)
class ReauthorizationRequired:
    auth_url: str | None
    error: str
    kind: Literal["reauth_required"] = "reauth_required"


@dataclass(frozen=True)
class UploadFailed:
    error: str
    kind: Literal["upload_failed"] = "upload_failed"


@dataclass(frozen=True)
class NoFileSupplied:
    kind: Literal["no_file"] = "no_file"


@dataclass(frozen=True)
class StreamError:
    error: str
    kind: Literal["stream_error"] = "stream_error"


UploadOutcome = UploadSucceeded | ReauthorizationRequired | UploadFailed | NoFileSupplied | StreamError


class UploadCompletion:
    """Single-assignment result slot for one upload.

    The first `settle` wins; later calls (a late parser event, an abort racing
    the outbound response) are reported as rejected and change nothing.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[UploadOutcome] = asyncio.get_running_loop().create_future()

    @property
    def settled(self) -> bool:
        return self._future.done()

    def settle(self, outcome: UploadOutcome) -> bool:
        if self._future.done():
            LOGGER.debug(
                "upload outcome ignored; already settled current=%s rejected=%s",
                self._future.result().kind,
                outcome.kind,
            )
            return False
        self._future.set_result(outcome)
        return True

    def result(self) -> UploadOutcome | None:
        if not self._future.done():
            return None
        return self._future.result()

    async def wait(self) -> UploadOutcome:
        return await asyncio.shield(self._future)


class UploadSink:
    """Writable end of an upload body.

    Holds at most one chunk: `write` suspends until the outbound request has
    taken the previous chunk, so inbound reads are paced by the upload.
    """

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._pending: bytes | None = None
        self._eof = False
        self._error: BaseException | None = None
        self._detached = False
        self.bytes_written = 0

    @property
    def closed(self) -> bool:
        return self._eof

    @property
    def aborted(self) -> bool:
        return self._error is not None

    async def write(self, chunk: bytes) -> None:
        if not chunk:
            return
        async with self._condition:
            await self._condition.wait_for(
                lambda: self._pending is None or self._error is not None or self._detached
            )
            self._raise_if_unwritable()
            self._pending = bytes(chunk)
            self.bytes_written += len(chunk)
            self._condition.notify_all()

    async def close(self) -> None:
        async with self._condition:
            self._eof = True
            self._condition.notify_all()

    async def abort(self, error: BaseException) -> None:
        async with self._condition:
            if self._error is None:
                self._error = error
            self._pending = None
            self._condition.notify_all()

    async def detach(self) -> None:
        async with self._condition:
            self._detached = True
            self._pending = None
            self._condition.notify_all()

    async def chunks(self) -> AsyncIterator[bytes]:
        while True:
            async with self._condition:
                await self._condition.wait_for(
                    lambda: self._pending is not None or self._eof or self._error is not None
                )
                if self._error is not None:
                    raise UploadStreamAborted(f"Inbound stream aborted: {self._error}")
                chunk = self._pending
                self._pending = None
                self._condition.notify_all()
            if chunk is None:
                return
            yield chunk

    def _raise_if_unwritable(self) -> None:
        if self._error is not None:
            raise UploadStreamAborted(f"Upload sink aborted: {self._error}")
        if self._detached:
            raise UploadStreamAborted("Upload is no longer accepting data")
        if self._eof:
            raise UploadStreamAborted("Upload sink already closed")


@dataclass
class UploadSession:
    owner_id: str
    sink: UploadSink
    completion: UploadCompletion
    task: asyncio.Task[None] | None = field(default=None, repr=False)

    async def abort(self, error: BaseException) -> None:
        self.completion.settle(StreamError(error=summarize_error(error)))
        await self.sink.abort(error)
        if self.task is not None and not self.task.done():
            self.task.cancel()
            await asyncio.gather(self.task, return_exceptions=True)


def normalize_privacy_status(value: str | None, *, default: str) -> str:
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in PRIVACY_STATUSES:
            return normalized
    return default


