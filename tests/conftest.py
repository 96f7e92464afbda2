"""
Shared pytest fixtures for all test modules.

IMPORTANT: TESTING must be set before the app is imported so the lifespan
skips Firestore, Redis and the shared HTTP session.
"""

import os

os.environ["TESTING"] = "true"
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
# bcrypt at the production cost factor makes every register/login ~250ms.
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ.setdefault("AIORNOT_API_KEY", "test-aiornot-key")
for _var in ("S3_PUBLIC_BASE", "STORAGE_PROXY_URL", "S3_BUCKET", "UPSTASH_REDIS_HOST"):
    os.environ.pop(_var, None)

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from tests.mocks.firebase_mock import MockFirestore
from tests.mocks.redis_mock import MockRedis
from tests.mocks.storage_mock import MockStorage

from veracity.config import settings
from veracity.core.rate_limiter import RateLimiter
from veracity.integrations.aiornot import AIOrNotClient
from veracity.integrations.storage import StorageService
from veracity.services.results_repository import ResultsRepository

# App import happens AFTER os.environ["TESTING"] is set above.
from veracity.main import app  # noqa: E402


# ---------------------------------------------------------------------------
# Core infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_firebase():
    return MockFirestore()


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def mock_storage():
    return MockStorage()


@pytest.fixture
def storage(mock_storage):
    return StorageService([mock_storage])


@pytest.fixture
def detector():
    """AI or Not client double; every detect_* method is an AsyncMock."""
    return AsyncMock(spec=AIOrNotClient)


@pytest.fixture
def results(mock_firebase):
    return ResultsRepository(mock_firebase)


@pytest.fixture
def client(mock_firebase, storage, detector):
    """
    FastAPI TestClient whose app.state carries the in-memory doubles.

    The lifespan runs first (TESTING skips external init); the doubles are
    swapped in afterwards so nothing real is ever reached.
    """
    with TestClient(app, raise_server_exceptions=False) as c:
        app.state.db = mock_firebase
        app.state.storage = storage
        app.state.detector = detector
        app.state.rate_limiter = RateLimiter(None, settings)
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_client(client):
    """TestClient with a registered, logged-in user (session cookie set)."""
    resp = client.post("/api/auth/register", json={"username": "alice", "password": "secret123"})
    assert resp.status_code == 200, resp.text
    client.user = resp.json()["user"]
    return client
