"""
Firestore persistence for detection results.

Documents live in `detection_results`, keyed by Firestore auto-ids. Rows are
written once and never updated.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from fastapi import HTTPException
from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

logger = logging.getLogger(__name__)

RESULTS_COLLECTION = "detection_results"


def _snapshot_to_dict(snapshot) -> dict:
    data = snapshot.to_dict() or {}
    data["id"] = snapshot.id
    return data


class ResultsRepository:
    def __init__(self, db):
        self.db = db

    def _collection(self):
        if not self.db:
            raise HTTPException(status_code=503, detail="Database service unavailable.")
        return self.db.collection(RESULTS_COLLECTION)

    def _user_query(self, user_id: str):
        return self._collection().where(filter=FieldFilter("user_id", "==", user_id))

    def create(self, record: dict) -> dict:
        data = dict(record)
        data.setdefault("is_duplicate", False)
        data.setdefault("created_at", datetime.now(timezone.utc))
        doc_ref = self._collection().document()
        doc_ref.set(data)
        logger.info(f"[RESULTS] Stored {data.get('file_type')} result {doc_ref.id} for user {data.get('user_id')}")
        return {**data, "id": doc_ref.id}

    def get(self, result_id: str, user_id: Optional[str] = None) -> Optional[dict]:
        snapshot = self._collection().document(result_id).get()
        if not snapshot.exists:
            return None
        data = _snapshot_to_dict(snapshot)
        if user_id is not None and data.get("user_id") != user_id:
            return None
        return data

    def find_duplicate(self, user_id: str, content_hash: str) -> Optional[dict]:
        query = self._user_query(user_id).where(
            filter=FieldFilter("content_hash", "==", content_hash)
        ).limit(1)
        for snapshot in query.stream():
            return _snapshot_to_dict(snapshot)
        return None

    def history(
        self,
        user_id: str,
        limit: int = 50,
        verdict: Optional[str] = None,
        file_type: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[dict]:
        query = self._user_query(user_id)
        if verdict:
            query = query.where(filter=FieldFilter("verdict", "==", verdict))
        if file_type:
            query = query.where(filter=FieldFilter("file_type", "==", file_type))
        if start_date:
            query = query.where(filter=FieldFilter("created_at", ">=", start_date))
        if end_date:
            query = query.where(filter=FieldFilter("created_at", "<=", end_date))

        query = query.order_by("created_at", direction=firestore.Query.DESCENDING)
        if limit:
            query = query.limit(limit)
        return [_snapshot_to_dict(s) for s in query.stream()]

    def for_export(self, user_id: str, ids: Optional[Iterable[str]] = None) -> list[dict]:
        ids = list(ids or [])
        if not ids:
            return self.history(user_id, limit=0)

        results = []
        for result_id in dict.fromkeys(ids):
            record = self.get(result_id, user_id=user_id)
            if record:
                results.append(record)
        results.sort(key=lambda r: r.get("created_at") or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return results
