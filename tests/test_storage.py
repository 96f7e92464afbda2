"""
Unit tests for veracity/integrations/storage.py.

S3 calls are checked with botocore's Stubber (no network); presigning is
purely local. The proxy backend talks to a mocked aiohttp session.
"""

import base64
import json
from unittest.mock import AsyncMock, MagicMock

import boto3
import pytest
from botocore.client import Config
from botocore.stub import Stubber

from tests.mocks.storage_mock import MockStorage
from veracity.config import Settings
from veracity.integrations.storage import (
    ProxyStorageBackend,
    S3StorageBackend,
    StorageConfigError,
    StorageError,
    StorageService,
    StorageUnavailable,
    build_storage,
    normalize_key,
)


def _s3_settings(**overrides) -> Settings:
    values = {
        "s3_bucket": "test-bucket",
        "s3_region": "us-east-1",
        "s3_access_key_id": "AKIATEST",
        "s3_secret_access_key": "secret-test",
        "s3_endpoint": None,
        "storage_proxy_url": None,
        "storage_proxy_key": None,
    }
    values.update(overrides)
    return Settings(**values)


def _s3_backend(**overrides):
    settings = _s3_settings(**overrides)
    client = boto3.client(
        "s3",
        region_name=settings.s3_region,
        aws_access_key_id=settings.s3_access_key_id,
        aws_secret_access_key=settings.s3_secret_access_key,
        config=Config(signature_version="s3v4"),
    )
    return S3StorageBackend(settings, client=client), client


async def _chunks(*parts):
    for part in parts:
        yield part


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_normalize_key_strips_leading_slashes():
    assert normalize_key("//uploads/a.png") == "uploads/a.png"
    assert normalize_key("uploads/a.png") == "uploads/a.png"


def test_build_storage_without_configuration():
    storage = build_storage(_s3_settings(s3_bucket=None))
    assert storage.configured is False


def test_build_storage_orders_proxy_before_bucket():
    storage = build_storage(
        _s3_settings(storage_proxy_url="https://proxy.example.com/", storage_proxy_key="k")
    )
    assert [b.name for b in storage.backends] == ["proxy", "s3"]
    assert storage.backends[0].base_url == "https://proxy.example.com"


def test_endpoint_without_scheme_gets_https():
    backend = S3StorageBackend(_s3_settings(s3_endpoint="s3.us-east-005.backblazeb2.com/"))
    assert backend.endpoint == "https://s3.us-east-005.backblazeb2.com"
    assert backend.public_url("a/b.png") == "https://s3.us-east-005.backblazeb2.com/test-bucket/a/b.png"


def test_public_url_without_endpoint_uses_aws_host():
    backend = S3StorageBackend(_s3_settings(s3_region="eu-west-1"))
    assert backend.public_url("k.png") == "https://test-bucket.s3.eu-west-1.amazonaws.com/k.png"


# ---------------------------------------------------------------------------
# StorageService
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("op", ["put", "get", "get_upload_url"])
async def test_unconfigured_service_raises_config_error(op):
    storage = StorageService([])
    args = ("k", b"data") if op == "put" else ("k",)
    with pytest.raises(StorageConfigError):
        await getattr(storage, op)(*args)


async def test_unconfigured_service_rejects_streams():
    with pytest.raises(StorageConfigError):
        await StorageService([]).put("k", _chunks(b"a"))


async def test_put_then_get_serves_same_bytes():
    backend = MockStorage()
    storage = StorageService([backend])

    stored = await storage.put("/detections/u1/images/a.png", b"\x89PNG-data", "image/png")
    fetched = await storage.get(stored.key)

    assert stored.key == "detections/u1/images/a.png"
    assert backend.fetch(fetched.url) == b"\x89PNG-data"


async def test_falls_back_when_first_backend_unavailable():
    down, up = MockStorage(fail_status=503), MockStorage()
    storage = StorageService([down, up])

    stored = await storage.put("a.txt", b"hello", "text/plain")
    upload = await storage.get_upload_url("b.txt")

    assert up.objects == {"a.txt": b"hello"}
    assert stored.url.endswith("/a.txt")
    assert upload.fields["key"] == "b.txt"


async def test_all_backends_unavailable_raises_last_error():
    storage = StorageService([MockStorage(fail_status=503), MockStorage(fail_status=502)])
    with pytest.raises(StorageUnavailable) as exc:
        await storage.get("a.txt")
    assert exc.value.status == 502


async def test_stream_goes_to_first_backend_only():
    down, up = MockStorage(fail_status=503), MockStorage()
    storage = StorageService([down, up])

    with pytest.raises(StorageUnavailable):
        await storage.put("a.bin", _chunks(b"one", b"two"))
    assert up.objects == {}


# ---------------------------------------------------------------------------
# S3 backend
# ---------------------------------------------------------------------------


async def test_s3_put_bytes():
    backend, client = _s3_backend()
    with Stubber(client) as stubber:
        stubber.add_response(
            "put_object",
            {"ETag": '"abc"'},
            {"Bucket": "test-bucket", "Key": "uploads/a.png", "Body": b"png", "ContentType": "image/png"},
        )
        stored = await backend.put("uploads/a.png", b"png", "image/png")
        stubber.assert_no_pending_responses()

    assert stored.url == "https://test-bucket.s3.us-east-1.amazonaws.com/uploads/a.png"


async def test_s3_client_error_becomes_storage_error():
    backend, client = _s3_backend()
    with Stubber(client) as stubber:
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(StorageError) as exc:
            await backend.put("uploads/a.png", b"png", "image/png")
    assert not isinstance(exc.value, StorageUnavailable)


async def test_s3_streamed_put_reads_every_chunk():
    received = {}

    def _upload_fileobj(fileobj, bucket, key, ExtraArgs=None):
        parts = []
        while True:
            piece = fileobj.read(4)
            if not piece:
                break
            parts.append(piece)
        received.update(bucket=bucket, key=key, body=b"".join(parts), extra=ExtraArgs)

    client = MagicMock()
    client.upload_fileobj.side_effect = _upload_fileobj
    backend = S3StorageBackend(_s3_settings(), client=client)

    stored = await backend.put("uploads/v.mp4", _chunks(b"abc", b"defgh", b"ij"), "video/mp4")

    assert received == {
        "bucket": "test-bucket",
        "key": "uploads/v.mp4",
        "body": b"abcdefghij",
        "extra": {"ContentType": "video/mp4"},
    }
    assert stored.key == "uploads/v.mp4"


async def test_s3_get_returns_signed_url():
    backend, _ = _s3_backend()
    stored = await backend.get("detections/u1/images/a.png")
    assert "test-bucket" in stored.url
    assert "detections/u1/images/a.png" in stored.url
    assert "X-Amz-Expires=3600" in stored.url
    assert "X-Amz-Signature=" in stored.url


async def test_s3_presigned_post_limits_size():
    backend, _ = _s3_backend(s3_endpoint="https://s3.example.com", presigned_post_max_mb=5)

    upload = await backend.upload_url("uploads/u1/1-a.png")

    assert upload.fields["key"] == "uploads/u1/1-a.png"
    assert "policy" in upload.fields
    assert upload.file_url == "https://s3.example.com/test-bucket/uploads/u1/1-a.png"
    # The policy is base64 JSON; the size condition must carry the configured ceiling
    policy = json.loads(base64.b64decode(upload.fields["policy"]))
    assert ["content-length-range", 1, 5 * 1024 * 1024] in policy["conditions"]


# ---------------------------------------------------------------------------
# Proxy backend (aiohttp mocked)
# ---------------------------------------------------------------------------


def _mock_session(status=200, payload=None, text=""):
    mock_resp = MagicMock()
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__ = AsyncMock(return_value=None)
    mock_resp.status = status
    mock_resp.json = AsyncMock(return_value=payload or {})
    mock_resp.text = AsyncMock(return_value=text)

    session = MagicMock()
    session.closed = False
    session.post = MagicMock(return_value=mock_resp)
    session.get = MagicMock(return_value=mock_resp)
    return session


async def test_proxy_put_posts_form_with_bearer_token():
    session = _mock_session(payload={"url": "https://files.example.com/uploads/a.png"})
    backend = ProxyStorageBackend("https://proxy.example.com/", "proxy-key", session=session)

    stored = await backend.put("uploads/a.png", b"png", "image/png")

    assert stored.url == "https://files.example.com/uploads/a.png"
    args, kwargs = session.post.call_args
    assert args[0] == "https://proxy.example.com/v1/storage/upload"
    assert kwargs["params"] == {"path": "uploads/a.png"}
    assert kwargs["headers"] == {"Authorization": "Bearer proxy-key"}


async def test_proxy_get_uses_download_url_route():
    session = _mock_session(payload={"url": "https://files.example.com/a.png?sig=1"})
    backend = ProxyStorageBackend("https://proxy.example.com", "proxy-key", session=session)

    stored = await backend.get("a.png")

    assert stored.url.endswith("?sig=1")
    assert session.get.call_args.args[0] == "https://proxy.example.com/v1/storage/downloadUrl"


async def test_proxy_error_status_is_unavailable():
    session = _mock_session(status=502, text="bad gateway")
    backend = ProxyStorageBackend("https://proxy.example.com", "proxy-key", session=session)

    with pytest.raises(StorageUnavailable) as exc:
        await backend.put("a.png", b"png", "image/png")
    assert exc.value.status == 502


async def test_proxy_upload_url_requires_post_fields():
    session = _mock_session(payload={"url": "https://upload.example.com"})
    backend = ProxyStorageBackend("https://proxy.example.com", "proxy-key", session=session)

    with pytest.raises(StorageError):
        await backend.upload_url("a.png")


async def test_proxy_failure_falls_back_to_bucket():
    session = _mock_session(status=503, text="maintenance")
    proxy = ProxyStorageBackend("https://proxy.example.com", "proxy-key", session=session)
    s3, client = _s3_backend()
    storage = StorageService([proxy, s3])

    with Stubber(client) as stubber:
        stubber.add_response("put_object", {}, None)
        stored = await storage.put("uploads/a.png", b"png", "image/png")

    assert stored.url.startswith("https://test-bucket.s3.us-east-1.amazonaws.com/")
