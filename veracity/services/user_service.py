"""
User accounts stored in the Firestore `users` collection.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException
from google.cloud.firestore_v1.base_query import FieldFilter

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


def public_user(user: Optional[dict]) -> Optional[dict]:
    """Strip credentials before a user leaves the service layer."""
    if user is None:
        return None
    return {k: v for k, v in user.items() if k != "password_hash"}


class UserService:
    def __init__(self, db):
        self.db = db

    def _collection(self):
        if not self.db:
            raise HTTPException(status_code=503, detail="Database service unavailable.")
        return self.db.collection(USERS_COLLECTION)

    def get_by_id(self, user_id: str) -> Optional[dict]:
        snapshot = self._collection().document(user_id).get()
        if not snapshot.exists:
            return None
        return {**snapshot.to_dict(), "id": snapshot.id}

    def get_by_username(self, username: str) -> Optional[dict]:
        query = self._collection().where(filter=FieldFilter("username", "==", username)).limit(1)
        for snapshot in query.stream():
            return {**snapshot.to_dict(), "id": snapshot.id}
        return None

    def create(self, username: str, password_hash: str) -> dict:
        now = datetime.now(timezone.utc)
        data = {
            "username": username,
            "password_hash": password_hash,
            "name": username,
            "email": None,
            "role": "user",
            "created_at": now,
            "updated_at": now,
            "last_signed_in": now,
        }
        doc_ref = self._collection().document()
        doc_ref.set(data)
        logger.info(f"[AUTH] Registered user {doc_ref.id} ({username})")
        return {**data, "id": doc_ref.id}

    def touch_sign_in(self, user_id: str) -> None:
        now = datetime.now(timezone.utc)
        self._collection().document(user_id).update({"last_signed_in": now, "updated_at": now})
