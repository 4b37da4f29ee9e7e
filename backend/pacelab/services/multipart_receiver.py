from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from python_multipart.multipart import MultipartParser, parse_options_header

from backend.pacelab.services.errors import (
    UploadStartFailed,
    UploadStreamAborted,
    ValidationError,
    summarize_error,
)
from backend.pacelab.services.upload_types import (
    NoFileSupplied,
    StreamError,
    UploadCompletion,
    UploadOutcome,
    UploadSession,
)

if TYPE_CHECKING:
    from backend.pacelab.services.upload_stream import UploadStreamManager

LOGGER = logging.getLogger("pacelab.youtube.upload")

MAX_FIELD_BYTES = 1024 * 1024
METADATA_FIELDS = frozenset({"title", "description", "privacyStatus"})

_Event = tuple[str, bytes]


class MultipartUploadReceiver:
    """Feeds one multipart/form-data request body into an upload session.

    Text fields that arrive before the first file part become the video
    metadata. The first file part is streamed to YouTube as it is parsed;
    later file parts and trailing fields are read and discarded.
    """

    def __init__(self, *, manager: UploadStreamManager, owner_id: str) -> None:
        self._manager = manager
        self._owner_id = owner_id
        self._events: deque[_Event] = deque()
        self._fields: dict[str, str] = {}
        self._headers: dict[str, str] = {}
        self._header_name = bytearray()
        self._header_value = bytearray()
        self._part_kind: str | None = None
        self._field_name: str | None = None
        self._field_buffer = bytearray()
        self._part_open = False
        self._ended = False
        self._session: UploadSession | None = None
        self._file_done = False
        self._forwarding = False

    async def receive(
        self,
        chunks: AsyncIterator[bytes],
        *,
        content_type: str,
    ) -> UploadOutcome:
        boundary = parse_boundary(content_type)
        completion = UploadCompletion()
        parser = MultipartParser(boundary, self._callbacks())

        try:
            async for chunk in chunks:
                if not chunk:
                    continue
                parser.write(chunk)
                await self._drain(completion)
            parser.finalize()
            await self._drain(completion)
            if self._part_open or not self._ended:
                raise UploadStreamAborted("Multipart body ended before its closing boundary")
        except UploadStartFailed:
            raise
        except asyncio.CancelledError as exc:
            await self._abort(completion, exc)
            raise
        except Exception as exc:
            LOGGER.warning(
                "upload stream error owner_id=%s error=%s",
                self._owner_id,
                summarize_error(exc),
            )
            await self._abort(completion, exc)
        else:
            if self._session is None:
                LOGGER.info("upload request carried no file owner_id=%s", self._owner_id)
                completion.settle(NoFileSupplied())

        return await completion.wait()

    def _callbacks(self) -> dict[str, object]:
        def on_part_begin() -> None:
            self._events.append(("part_begin", b""))

        def on_header_field(data: bytes, start: int, end: int) -> None:
            self._header_name.extend(data[start:end])

        def on_header_value(data: bytes, start: int, end: int) -> None:
            self._header_value.extend(data[start:end])

        def on_header_end() -> None:
            name = self._header_name.decode("latin-1").strip().lower()
            self._headers[name] = self._header_value.decode("utf-8", errors="replace").strip()
            self._header_name.clear()
            self._header_value.clear()

        def on_headers_finished() -> None:
            disposition = self._headers.get("content-disposition", "")
            self._headers = {}
            self._events.append(("headers_finished", disposition.encode("utf-8")))

        def on_part_data(data: bytes, start: int, end: int) -> None:
            self._events.append(("data", bytes(data[start:end])))

        def on_part_end() -> None:
            self._events.append(("part_end", b""))

        def on_end() -> None:
            self._events.append(("end", b""))

        return {
            "on_part_begin": on_part_begin,
            "on_header_field": on_header_field,
            "on_header_value": on_header_value,
            "on_header_end": on_header_end,
            "on_headers_finished": on_headers_finished,
            "on_part_data": on_part_data,
            "on_part_end": on_part_end,
            "on_end": on_end,
        }

    async def _drain(self, completion: UploadCompletion) -> None:
        while self._events:
            kind, payload = self._events.popleft()
            if kind == "part_begin":
                self._part_open = True
            elif kind == "headers_finished":
                await self._start_part(payload, completion)
            elif kind == "data":
                await self._part_data(payload)
            elif kind == "part_end":
                await self._end_part()
            elif kind == "end":
                self._ended = True

    async def _start_part(self, disposition: bytes, completion: UploadCompletion) -> None:
        _, params = parse_options_header(disposition)
        name = _param(params, b"name")
        filename = _param(params, b"filename")

        if filename is not None:
            if self._session is None and not self._file_done:
                self._part_kind = "file"
                await self._begin_upload(completion)
            else:
                self._part_kind = "ignored"
            return

        if self._session is None and name in METADATA_FIELDS:
            self._part_kind = "field"
            self._field_name = name
            self._field_buffer.clear()
            return
        self._part_kind = "ignored"

    async def _begin_upload(self, completion: UploadCompletion) -> None:
        try:
            self._session = await self._manager.begin_upload(
                title=self._fields.get("title"),
                description=self._fields.get("description"),
                privacy_status=self._fields.get("privacyStatus"),
                owner_id=self._owner_id,
                completion=completion,
            )
        except Exception as exc:
            LOGGER.error(
                "upload stream creation failed owner_id=%s error=%s",
                self._owner_id,
                summarize_error(exc),
            )
            raise UploadStartFailed(summarize_error(exc)) from exc
        self._forwarding = True

    async def _part_data(self, data: bytes) -> None:
        if self._part_kind == "field":
            if len(self._field_buffer) + len(data) > MAX_FIELD_BYTES:
                raise ValidationError(f"Form field {self._field_name!r} is too large")
            self._field_buffer.extend(data)
        elif self._part_kind == "file" and self._forwarding and self._session is not None:
            try:
                await self._session.sink.write(data)
            except UploadStreamAborted:
                # Outbound request already finished; keep reading the body.
                self._forwarding = False

    async def _end_part(self) -> None:
        if self._part_kind == "field" and self._field_name is not None:
            self._fields[self._field_name] = self._field_buffer.decode("utf-8", errors="replace")
        elif self._part_kind == "file" and self._session is not None:
            self._file_done = True
            if self._forwarding:
                await self._session.sink.close()
            self._forwarding = False
        self._part_kind = None
        self._field_name = None
        self._field_buffer.clear()
        self._part_open = False

    async def _abort(self, completion: UploadCompletion, exc: BaseException) -> None:
        if self._session is not None:
            await self._session.abort(exc)
            return
        completion.settle(StreamError(error=summarize_error(exc)))


def parse_boundary(content_type: str | None) -> bytes:
    if not content_type:
        raise ValidationError("Content-Type must be multipart/form-data")
    media_type, params = parse_options_header(content_type)
    if media_type != b"multipart/form-data":
        raise ValidationError("Content-Type must be multipart/form-data")
    boundary = params.get(b"boundary")
    if not boundary:
        raise ValidationError("multipart/form-data request is missing a boundary")
    return boundary


def _param(params: dict[bytes, bytes], key: bytes) -> str | None:
    value = params.get(key)
    if value is None:
        return None
    return value.decode("utf-8", errors="replace")
