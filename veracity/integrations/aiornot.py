"""
AI or Not (v2) detection API client.

Binary media goes to `/<kind>/sync` as multipart/form-data with a bearer token;
text goes to `/text/sync` as JSON with an `x-api-key` header. Every call is a
single synchronous request: no retries, failures surface immediately as
`UpstreamError`.
"""

import logging
import time
from typing import Optional

import aiohttp

from veracity.integrations import http_client

logger = logging.getLogger(__name__)

IMAGE_ROUTE = "image/sync"
AUDIO_VOICE_ROUTE = "audio/sync"
AUDIO_MUSIC_ROUTE = "audio/music/sync"
VIDEO_ROUTE = "video/sync"
TEXT_ROUTE = "text/sync"

PLAN_RESTRICTION_MARKER = "Paid plan"


class UpstreamError(Exception):
    """Non-success response (or transport failure) from the detection API."""

    def __init__(self, route: str, status: int, body: str):
        self.route = route
        self.status = status
        self.body = body
        super().__init__(f"AI or Not API error ({route}): {status} - {body}")

    @property
    def is_plan_restricted(self) -> bool:
        return self.status == 402 or PLAN_RESTRICTION_MARKER in self.body


def _external_id(kind: str) -> str:
    return f"{kind}-{int(time.time() * 1000)}"


class AIOrNotClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_sec: int = 300,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self.session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout_sec)

    async def _send(self, route: str, **request_kwargs) -> dict:
        url = f"{self.base_url}/{route}"
        try:
            async with http_client.request_session(self.session) as sess:
                async with sess.post(url, timeout=self._timeout, **request_kwargs) as response:
                    if response.status >= 400:
                        text = await response.text()
                        logger.error(f"[AIORNOT] {route} failed: {response.status} - {text[:500]}")
                        raise UpstreamError(route, response.status, text)
                    return await response.json()
        except aiohttp.ClientError as e:
            logger.error(f"[AIORNOT] {route} transport error: {e}")
            raise UpstreamError(route, 0, str(e)) from e

    async def _post_file(self, route: str, field: str, kind: str, data: bytes, file_name: str) -> dict:
        form = aiohttp.FormData()
        form.add_field(field, data, filename=file_name, content_type="application/octet-stream")
        form.add_field("external_id", _external_id(kind))
        logger.info(f"[AIORNOT] POST {route} ({len(data)} bytes)")
        return await self._send(
            route,
            data=form,
            headers={"Authorization": f"Bearer {self._api_key}", "Accept": "application/json"},
        )

    async def detect_image(self, data: bytes, file_name: str) -> dict:
        return await self._post_file(IMAGE_ROUTE, "image", "image", data, file_name)

    async def detect_audio_voice(self, data: bytes, file_name: str) -> dict:
        return await self._post_file(AUDIO_VOICE_ROUTE, "audio", "audio", data, file_name)

    async def detect_audio_music(self, data: bytes, file_name: str) -> dict:
        return await self._post_file(AUDIO_MUSIC_ROUTE, "audio", "audio-music", data, file_name)

    async def detect_video(self, data: bytes, file_name: str) -> dict:
        return await self._post_file(VIDEO_ROUTE, "video", "video", data, file_name)

    async def detect_text(self, text: str) -> dict:
        logger.info(f"[AIORNOT] POST {TEXT_ROUTE} ({len(text)} chars)")
        return await self._send(
            TEXT_ROUTE,
            json={"text": text, "external_id": _external_id("text")},
            headers={"x-api-key": self._api_key, "Accept": "application/json"},
        )
