"""
Streaming multipart upload: request body → multipart parser → bounded queue
→ storage put, without ever holding the whole file in memory.

The parser callbacks are synchronous, so each chunk written to the parser
collects a batch of part events which are then dispatched asynchronously.
Only the first `file` part that carries a filename is stored; every other
part is read through and dropped.
"""

import asyncio
import logging
import os
import time
from typing import AsyncIterator, Optional

import psutil
from fastapi import Request
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from veracity.config import Settings, settings as default_settings
from veracity.core.file_validator import sanitize_filename, sanitize_log_message
from veracity.integrations.storage import StorageConfigError, StorageError, StorageService

logger = logging.getLogger(__name__)

FILE_FIELD = "file"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def log_memory(stage: str) -> None:
    """Log current process and system memory usage. Only runs when DEBUG logging is active."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    process = psutil.Process(os.getpid())
    mem_info = process.memory_info()
    sys_mem = psutil.virtual_memory()
    logger.debug(
        f"[MEMORY] {stage} | "
        f"PID: {os.getpid()} | "
        f"Process RSS: {mem_info.rss / 1024 / 1024:.2f} MB | "
        f"System Available: {sys_mem.available / 1024 / 1024:.2f} MB / {sys_mem.total / 1024 / 1024:.2f} MB"
    )


class UploadError(Exception):
    """A failed upload, carried to the route as a JSON error body."""

    def __init__(self, status_code: int, error: str, message: Optional[str] = None):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.message = message

    @property
    def payload(self) -> dict:
        body = {"error": self.error}
        if self.message:
            body["message"] = self.message
        return body


_ABORT = object()


class UploadAborted(Exception):
    """The request stream ended before the file part was complete."""


async def _queue_stream(queue: asyncio.Queue) -> AsyncIterator[bytes]:
    while True:
        chunk = await queue.get()
        if chunk is _ABORT:
            raise UploadAborted("Upload stream aborted before the file part ended")
        if chunk is None:
            return
        yield chunk


def _abort_stream(queue: asyncio.Queue) -> None:
    """Replace any queued chunks with the abort marker so the storage side stops reading."""
    while not queue.empty():
        queue.get_nowait()
    queue.put_nowait(_ABORT)


class _PartEvents:
    """Collects MultipartParser callbacks into (event, value) tuples."""

    def __init__(self):
        self.events: list = []
        self._headers: dict = {}
        self._field = b""
        self._value = b""

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[self._field.lower()] = self._value
        self._field = b""
        self._value = b""

    def on_headers_finished(self) -> None:
        self.events.append(("begin", self._headers))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self.events.append(("data", data[start:end]))

    def on_part_end(self) -> None:
        self.events.append(("end", None))

    def drain(self) -> list:
        events, self.events = self.events, []
        return events


class UploadService:
    def __init__(self, storage: StorageService, config: Optional[Settings] = None):
        self.storage = storage
        self.config = config or default_settings

    # ------------------------------------------------------------------ #
    # Helpers                                                             #
    # ------------------------------------------------------------------ #

    @staticmethod
    def build_key(filename: str) -> str:
        return f"uploads/{int(time.time() * 1000)}-{sanitize_filename(filename)}"

    async def file_url(self, key: str) -> str:
        if self.config.s3_public_base:
            return f"{self.config.s3_public_base.rstrip('/')}/{key}"
        return (await self.storage.get(key)).url

    @staticmethod
    async def _feed(queue: asyncio.Queue, item: Optional[bytes], upload_task: asyncio.Task) -> None:
        """Queue one chunk, unless the storage side has already stopped consuming."""
        put = asyncio.ensure_future(queue.put(item))
        done, _ = await asyncio.wait({put, upload_task}, return_when=asyncio.FIRST_COMPLETED)
        if put in done:
            return
        put.cancel()
        upload_task.result()
        raise StorageError("Storage write finished before the upload stream ended")

    # ------------------------------------------------------------------ #
    # Handler                                                             #
    # ------------------------------------------------------------------ #

    async def handle(self, request: Request) -> dict:
        content_type, params = parse_options_header(request.headers.get("content-type", ""))
        boundary = params.get(b"boundary")
        if content_type != b"multipart/form-data" or not boundary:
            raise UploadError(400, "Invalid multipart body")

        if not self.storage.configured:
            raise UploadError(
                500, "Storage not configured",
                "Set STORAGE_PROXY_URL/STORAGE_PROXY_KEY or S3 credentials",
            )

        log_memory("Pre-Upload")

        queue: asyncio.Queue = asyncio.Queue(maxsize=self.config.upload_queue_depth)
        collector = _PartEvents()
        parser = MultipartParser(boundary, collector.callbacks())

        upload_task: Optional[asyncio.Task] = None
        key = None
        in_target = False
        target_done = False

        async def dispatch(events: list) -> None:
            nonlocal upload_task, key, in_target, target_done
            for event, value in events:
                if event == "begin":
                    _, disposition = parse_options_header(value.get(b"content-disposition", b""))
                    name = disposition.get(b"name", b"").decode("utf-8", errors="replace")
                    filename = disposition.get(b"filename")
                    in_target = upload_task is None and name == FILE_FIELD and filename is not None
                    if in_target:
                        mime_type = value.get(b"content-type", b"").decode("latin-1") or DEFAULT_CONTENT_TYPE
                        key = self.build_key(filename.decode("utf-8", errors="replace"))
                        logger.info(f"[UPLOAD] Streaming {key} ({mime_type})")
                        upload_task = asyncio.create_task(
                            self.storage.put(key, _queue_stream(queue), mime_type)
                        )
                elif event == "data":
                    if in_target and value:
                        await self._feed(queue, value, upload_task)
                elif event == "end":
                    if in_target:
                        await self._feed(queue, None, upload_task)
                        in_target = False
                        target_done = True

        try:
            try:
                async for chunk in request.stream():
                    if chunk:
                        parser.write(chunk)
                        await dispatch(collector.drain())
                parser.finalize()
                await dispatch(collector.drain())
            except MultipartParseError as e:
                logger.warning(f"[UPLOAD] Malformed multipart body: {e}")
                raise UploadError(400, "Invalid multipart body")

            if upload_task is None:
                raise UploadError(400, "No file field provided")
            if not target_done:
                raise UploadError(400, "Invalid multipart body")

            await upload_task
            url = await self.file_url(key)

        except UploadError:
            raise
        except StorageConfigError as e:
            logger.error(f"[UPLOAD] {e}")
            raise UploadError(500, "Storage not configured", str(e))
        except Exception as e:
            logger.error(sanitize_log_message(f"[UPLOAD] Upload of {key} failed: {e}"))
            raise UploadError(500, "Upload failed", "Storage write failed")
        finally:
            if upload_task is not None and not upload_task.done():
                # Wakes a storage reader thread blocked on the queue.
                _abort_stream(queue)
                upload_task.cancel()

        log_memory("Post-Upload")
        logger.info(f"[UPLOAD] Stored {key}")
        return {"fileUrl": url}
