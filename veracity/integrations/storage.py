"""
Object storage: one interface over two backends.

  - ProxyStorageBackend → bearer-token storage proxy (aiohttp)
  - S3StorageBackend    → direct S3-compatible bucket (boto3)

`build_storage()` picks the configured backends once, at construction time,
and returns a `StorageService` that tries them in order (proxy first). A
backend signals a hard failure by raising `StorageUnavailable`; the service
then moves on to the next one. Streamed bodies cannot be replayed, so they
only ever go to the first backend.

boto3 is blocking: every call runs in a worker thread. For streamed puts the
worker pulls chunks from the async stream on the event loop, so the upload
never holds more than one part in memory.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Union

import aiohttp
import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from veracity.config import Settings
from veracity.integrations import http_client

logger = logging.getLogger(__name__)

Payload = Union[bytes, AsyncIterator[bytes]]


class StorageConfigError(Exception):
    """No storage backend is configured."""


class StorageError(Exception):
    """A storage backend failed."""


class StorageUnavailable(StorageError):
    """A backend answered with a non-success status; the next backend may be tried."""

    def __init__(self, backend: str, status: int, text: str):
        self.backend = backend
        self.status = status
        self.text = text
        super().__init__(f"{backend} storage error: {status} - {text}")


@dataclass
class StoredObject:
    key: str
    url: str


@dataclass
class PresignedUpload:
    key: str
    url: str
    fields: dict = field(default_factory=dict)
    file_url: str = ""


def normalize_key(key: str) -> str:
    return key.lstrip("/")


def _is_bytes(data: Payload) -> bool:
    return isinstance(data, (bytes, bytearray, memoryview))


class StorageBackend(ABC):
    name = "backend"

    @abstractmethod
    async def put(self, key: str, data: Payload, content_type: str) -> StoredObject:
        ...

    @abstractmethod
    async def get(self, key: str) -> StoredObject:
        ...

    @abstractmethod
    async def upload_url(self, key: str) -> PresignedUpload:
        ...


# --------------------------------------------------------------------------- #
# Proxy backend                                                               #
# --------------------------------------------------------------------------- #


class ProxyStorageBackend(StorageBackend):
    name = "proxy"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_sec: int = 600,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self.session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout_sec)

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    def _url(self, path: str) -> str:
        return f"{self.base_url}/v1/storage/{path}"

    async def _raise_for_status(self, response: aiohttp.ClientResponse) -> None:
        if response.status >= 400:
            text = await response.text()
            raise StorageUnavailable(self.name, response.status, text[:500])

    async def put(self, key: str, data: Payload, content_type: str) -> StoredObject:
        form = aiohttp.FormData()
        form.add_field(
            "file",
            bytes(data) if _is_bytes(data) else data,
            filename=key.split("/")[-1] or key,
            content_type=content_type,
        )
        async with http_client.request_session(self.session) as sess:
            async with sess.post(
                self._url("upload"),
                params={"path": key},
                data=form,
                headers=self._headers(),
                timeout=self._timeout,
            ) as response:
                await self._raise_for_status(response)
                payload = await response.json()
        return StoredObject(key=key, url=payload["url"])

    async def get(self, key: str) -> StoredObject:
        async with http_client.request_session(self.session) as sess:
            async with sess.get(
                self._url("downloadUrl"), params={"path": key}, headers=self._headers()
            ) as response:
                await self._raise_for_status(response)
                payload = await response.json()
        return StoredObject(key=key, url=payload["url"])

    async def upload_url(self, key: str) -> PresignedUpload:
        async with http_client.request_session(self.session) as sess:
            async with sess.get(
                self._url("uploadUrl"), params={"path": key}, headers=self._headers()
            ) as response:
                await self._raise_for_status(response)
                payload = await response.json()

        if not (payload.get("url") and payload.get("fields") and payload.get("fileUrl")):
            raise StorageError("Storage proxy must return {url, fields, fileUrl} for POST upload.")
        return PresignedUpload(
            key=key, url=payload["url"], fields=payload["fields"], file_url=payload["fileUrl"]
        )


# --------------------------------------------------------------------------- #
# Direct bucket backend                                                       #
# --------------------------------------------------------------------------- #


async def _anext_or_none(iterator):
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return None


class _AsyncStreamReader:
    """
    Blocking file-like view over an async byte stream.

    `read()` is called from a boto3 worker thread; each chunk is pulled on the
    event loop via run_coroutine_threadsafe.
    """

    def __init__(self, stream: AsyncIterator[bytes], loop: asyncio.AbstractEventLoop):
        self._iterator = stream.__aiter__()
        self._loop = loop
        self._buffer = bytearray()
        self._eof = False
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        while not self._eof and (size is None or size < 0 or len(self._buffer) < size):
            chunk = asyncio.run_coroutine_threadsafe(
                _anext_or_none(self._iterator), self._loop
            ).result()
            if chunk is None:
                self._eof = True
            else:
                self._buffer.extend(chunk)

        if size is None or size < 0:
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        self.bytes_read += len(data)
        return data


class S3StorageBackend(StorageBackend):
    name = "s3"

    def __init__(self, settings: Settings, client=None):
        self.bucket = settings.s3_bucket
        self.region = (settings.s3_region or "us-east-1").strip()
        self.endpoint = self._normalize_endpoint(settings.s3_endpoint)
        self.signed_url_ttl = settings.signed_url_ttl_sec
        self.max_post_bytes = settings.presigned_post_max_bytes
        self._access_key = (settings.s3_access_key_id or "").strip()
        self._secret_key = (settings.s3_secret_access_key or "").strip()
        self._client = client

    @staticmethod
    def _normalize_endpoint(endpoint: Optional[str]) -> Optional[str]:
        endpoint = (endpoint or "").strip()
        if not endpoint:
            return None
        if not endpoint.startswith("http"):
            endpoint = f"https://{endpoint}"
        return endpoint.rstrip("/")

    @property
    def client(self):
        if self._client is None:
            logger.info(f"[S3] Initializing client with endpoint: {self.endpoint or 'AWS default'}")
            self._client = boto3.client(
                "s3",
                endpoint_url=self.endpoint,
                aws_access_key_id=self._access_key,
                aws_secret_access_key=self._secret_key,
                region_name=self.region,
                config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
            )
        return self._client

    def public_url(self, key: str) -> str:
        if self.endpoint:
            return f"{self.endpoint}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def put(self, key: str, data: Payload, content_type: str) -> StoredObject:
        try:
            if _is_bytes(data):
                await asyncio.to_thread(
                    self.client.put_object,
                    Bucket=self.bucket,
                    Key=key,
                    Body=bytes(data),
                    ContentType=content_type,
                )
            else:
                reader = _AsyncStreamReader(data, asyncio.get_running_loop())
                await asyncio.to_thread(
                    self.client.upload_fileobj,
                    reader,
                    self.bucket,
                    key,
                    ExtraArgs={"ContentType": content_type},
                )
                logger.info(f"[S3] Streamed {reader.bytes_read} bytes to {key}")
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"S3 put failed for {key}: {e}") from e
        return StoredObject(key=key, url=self.public_url(key))

    async def get(self, key: str) -> StoredObject:
        try:
            url = await asyncio.to_thread(
                self.client.generate_presigned_url,
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.signed_url_ttl,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"S3 signed URL failed for {key}: {e}") from e
        return StoredObject(key=key, url=url)

    async def upload_url(self, key: str) -> PresignedUpload:
        try:
            post = await asyncio.to_thread(
                self.client.generate_presigned_post,
                Bucket=self.bucket,
                Key=key,
                Fields={"key": key},
                Conditions=[["content-length-range", 1, self.max_post_bytes]],
                ExpiresIn=self.signed_url_ttl,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"S3 presigned POST failed for {key}: {e}") from e
        return PresignedUpload(
            key=key, url=post["url"], fields=post["fields"], file_url=self.public_url(key)
        )


# --------------------------------------------------------------------------- #
# Service                                                                     #
# --------------------------------------------------------------------------- #


class StorageService:
    """Ordered chain of configured backends."""

    def __init__(self, backends: list[StorageBackend]):
        self.backends = list(backends)

    @property
    def configured(self) -> bool:
        return bool(self.backends)

    def _require_backends(self) -> None:
        if not self.backends:
            raise StorageConfigError(
                "Storage configuration missing: set STORAGE_PROXY_URL/STORAGE_PROXY_KEY or S3 credentials"
            )

    async def _try_in_order(self, op: str, call):
        self._require_backends()
        last_error: Optional[StorageUnavailable] = None
        for backend in self.backends:
            try:
                return await call(backend)
            except StorageUnavailable as e:
                logger.warning(f"[STORAGE] {backend.name} {op} failed with {e.status}; trying next backend")
                last_error = e
        raise last_error

    async def put(
        self, key: str, data: Payload, content_type: str = "application/octet-stream"
    ) -> StoredObject:
        key = normalize_key(key)
        if not _is_bytes(data):
            self._require_backends()
            return await self.backends[0].put(key, data, content_type)
        return await self._try_in_order("put", lambda b: b.put(key, data, content_type))

    async def get(self, key: str) -> StoredObject:
        key = normalize_key(key)
        return await self._try_in_order("get", lambda b: b.get(key))

    async def get_upload_url(self, key: str) -> PresignedUpload:
        key = normalize_key(key)
        return await self._try_in_order("upload_url", lambda b: b.upload_url(key))


def build_storage(settings: Settings, session: Optional[aiohttp.ClientSession] = None) -> StorageService:
    """Select backends from the available configuration: proxy first, then bucket."""
    backends: list[StorageBackend] = []

    if settings.storage_proxy_url and settings.storage_proxy_key:
        backends.append(
            ProxyStorageBackend(
                settings.storage_proxy_url,
                settings.storage_proxy_key,
                session=session,
                timeout_sec=settings.storage_timeout_sec,
            )
        )

    if settings.s3_bucket and settings.s3_access_key_id and settings.s3_secret_access_key:
        backends.append(S3StorageBackend(settings))

    if backends:
        logger.info(f"[STARTUP] Storage backends: {', '.join(b.name for b in backends)}")
    else:
        logger.warning("[STARTUP] No storage backend configured. Uploads will fail.")
    return StorageService(backends)
