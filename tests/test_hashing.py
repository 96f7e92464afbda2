"""
Unit tests for veracity/detection/hashing.py and the per-user duplicate cache.
"""

import hashlib
from datetime import datetime, timezone
from unittest.mock import MagicMock

from veracity.detection.cache import DuplicateCache
from veracity.detection.hashing import hash_bytes, hash_content
from veracity.services.results_repository import RESULTS_COLLECTION, ResultsRepository


def test_hash_bytes_is_sha256_hex():
    assert hash_bytes(b"abc") == hashlib.sha256(b"abc").hexdigest()
    assert len(hash_bytes(b"")) == 64


def test_text_hashes_over_utf8_bytes():
    assert hash_content("héllo") == hash_bytes("héllo".encode("utf-8"))


def _seed(mock_firebase, doc_id, user_id, content_hash, created_at=None):
    mock_firebase.seed(RESULTS_COLLECTION, doc_id, {
        "user_id": user_id,
        "content_hash": content_hash,
        "verdict": "ai",
        "confidence": "0.9000",
        "created_at": created_at or datetime.now(timezone.utc),
    })


def test_lookup_hit_is_scoped_to_user(mock_firebase):
    digest = hash_bytes(b"same bytes")
    _seed(mock_firebase, "r1", "u1", digest)
    cache = DuplicateCache(ResultsRepository(mock_firebase))

    hit = cache.lookup("u1", digest)

    assert hit["id"] == "r1"
    assert cache.lookup("u2", digest) is None


def test_lookup_miss(mock_firebase):
    cache = DuplicateCache(ResultsRepository(mock_firebase))
    assert cache.lookup("u1", hash_bytes(b"never seen")) is None


def test_lookup_without_database_fails_open():
    cache = DuplicateCache(ResultsRepository(None))
    assert cache.lookup("u1", hash_bytes(b"x")) is None


def test_lookup_query_error_fails_open():
    db = MagicMock()
    db.collection.return_value.where.side_effect = RuntimeError("index missing")
    cache = DuplicateCache(ResultsRepository(db))
    assert cache.lookup("u1", hash_bytes(b"x")) is None
