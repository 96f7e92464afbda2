"""
Unit tests for veracity/integrations/aiornot.py.

The aiohttp session is a MagicMock; requests are inspected, never sent.
"""

from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from tests.mocks.aiornot_payloads import image_payload
from veracity.integrations.aiornot import (
    AUDIO_MUSIC_ROUTE,
    AUDIO_VOICE_ROUTE,
    IMAGE_ROUTE,
    TEXT_ROUTE,
    VIDEO_ROUTE,
    AIOrNotClient,
    UpstreamError,
)

BASE = "https://api.aiornot.test/v2"


def _mock_session(status=200, payload=None, text=""):
    mock_resp = MagicMock()
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__ = AsyncMock(return_value=None)
    mock_resp.status = status
    mock_resp.json = AsyncMock(return_value=payload if payload is not None else image_payload())
    mock_resp.text = AsyncMock(return_value=text)

    session = MagicMock()
    session.closed = False
    session.post = MagicMock(return_value=mock_resp)
    return session


@pytest.mark.parametrize("method, route", [
    ("detect_image", IMAGE_ROUTE),
    ("detect_audio_voice", AUDIO_VOICE_ROUTE),
    ("detect_audio_music", AUDIO_MUSIC_ROUTE),
    ("detect_video", VIDEO_ROUTE),
])
async def test_file_routes_post_multipart_with_bearer(method, route):
    session = _mock_session()
    client = AIOrNotClient(BASE + "/", "key-123", session=session)

    payload = await getattr(client, method)(b"bytes", "sample.bin")

    assert payload == image_payload()
    args, kwargs = session.post.call_args
    assert args[0] == f"{BASE}/{route}"
    assert kwargs["headers"]["Authorization"] == "Bearer key-123"
    assert isinstance(kwargs["data"], aiohttp.FormData)


async def test_text_route_posts_json_with_api_key_header():
    session = _mock_session()
    client = AIOrNotClient(BASE, "key-123", session=session)

    await client.detect_text("some prose")

    args, kwargs = session.post.call_args
    assert args[0] == f"{BASE}/{TEXT_ROUTE}"
    assert kwargs["headers"]["x-api-key"] == "key-123"
    assert kwargs["json"]["text"] == "some prose"
    assert kwargs["json"]["external_id"].startswith("text-")


async def test_error_status_raises_upstream_error():
    session = _mock_session(status=500, text="internal error")
    client = AIOrNotClient(BASE, "key-123", session=session)

    with pytest.raises(UpstreamError) as exc:
        await client.detect_image(b"x", "a.png")
    assert exc.value.status == 500
    assert exc.value.is_plan_restricted is False


@pytest.mark.parametrize("status, body", [(402, "Payment Required"), (403, "Paid plan required")])
async def test_plan_restriction_is_recognized(status, body):
    session = _mock_session(status=status, text=body)
    client = AIOrNotClient(BASE, "key-123", session=session)

    with pytest.raises(UpstreamError) as exc:
        await client.detect_video(b"x", "a.mp4")
    assert exc.value.is_plan_restricted is True


async def test_transport_error_is_wrapped():
    session = MagicMock()
    session.closed = False
    session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
    client = AIOrNotClient(BASE, "key-123", session=session)

    with pytest.raises(UpstreamError) as exc:
        await client.detect_image(b"x", "a.png")
    assert exc.value.status == 0
