"""
Share links: publishing a detection result under an opaque token, counting
views, and listing a user's links.

The token doubles as the Firestore document id and is written with
`create()`, so a duplicate token fails at the storage layer instead of
overwriting an existing link.
"""

import logging
import secrets
from datetime import datetime, timezone, timedelta
from typing import Optional

from fastapi import HTTPException
from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from veracity.config import settings
from veracity.services.results_repository import ResultsRepository

logger = logging.getLogger(__name__)

SHARE_COLLECTION = "share_links"


def generate_share_token(nbytes: int = settings.share_token_bytes) -> str:
    return secrets.token_hex(nbytes)


def _is_expired(link: dict, now: datetime) -> bool:
    expires_at = link.get("expires_at")
    return bool(expires_at and expires_at <= now)


class ShareService:
    def __init__(self, db, results: ResultsRepository):
        self.db = db
        self.results = results

    def _collection(self):
        if not self.db:
            raise HTTPException(status_code=503, detail="Database service unavailable.")
        return self.db.collection(SHARE_COLLECTION)

    def _get_link(self, token: str) -> Optional[dict]:
        snapshot = self._collection().document(token).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    def create_share_link(
        self, user_id: str, detection_result_id: str, expires_in_days: Optional[int] = None
    ) -> dict:
        if not self.results.get(detection_result_id, user_id=user_id):
            raise HTTPException(status_code=404, detail="Detection result not found")

        now = datetime.now(timezone.utc)
        token = generate_share_token()
        link = {
            "user_id": user_id,
            "detection_result_id": detection_result_id,
            "share_token": token,
            "view_count": 0,
            "last_viewed_at": None,
            "created_at": now,
            "expires_at": now + timedelta(days=expires_in_days) if expires_in_days else None,
        }
        self._collection().document(token).create(link)
        logger.info(f"[SHARE] User {user_id} shared result {detection_result_id}")
        return {"success": True, "share_token": token, "share_url": f"/share/{token}"}

    def get_share_stats(self, user_id: str, token: str) -> dict:
        link = self._get_link(token)
        if not link or link.get("user_id") != user_id or _is_expired(link, datetime.now(timezone.utc)):
            raise HTTPException(status_code=404, detail="Share link not found or expired")
        return {
            "view_count": link.get("view_count", 0),
            "last_viewed_at": link.get("last_viewed_at"),
            "created_at": link.get("created_at"),
        }

    def get_user_share_links(self, user_id: str) -> list[dict]:
        query = (
            self._collection()
            .where(filter=FieldFilter("user_id", "==", user_id))
            .order_by("created_at", direction=firestore.Query.DESCENDING)
        )
        return [s.to_dict() for s in query.stream()]

    def view_shared_result(self, token: str) -> dict:
        """Public read: bumps the view counter, returns the result without the raw payload."""
        link = self._get_link(token)
        now = datetime.now(timezone.utc)
        if not link or _is_expired(link, now):
            raise HTTPException(status_code=404, detail="Share link not found or expired")

        result = self.results.get(link["detection_result_id"])
        if not result:
            raise HTTPException(status_code=404, detail="Shared result no longer exists")

        self._collection().document(token).update({
            "view_count": firestore.Increment(1),
            "last_viewed_at": now,
        })

        result.pop("raw_response", None)
        result.pop("content_hash", None)
        result.pop("user_id", None)
        return result
