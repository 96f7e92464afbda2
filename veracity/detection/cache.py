"""
Per-user duplicate lookup over persisted detection results.

The cache key is (user_id, content_hash): identical bytes from two different
users never share a result. Lookups fail open: any error is logged and
reported as a miss so detection can proceed uncached.
"""

import logging
from typing import Optional

from veracity.services.results_repository import ResultsRepository

logger = logging.getLogger(__name__)


class DuplicateCache:
    def __init__(self, results: ResultsRepository):
        self.results = results

    def lookup(self, user_id: str, content_hash: str) -> Optional[dict]:
        try:
            duplicate = self.results.find_duplicate(user_id, content_hash)
        except Exception as e:
            logger.warning(f"[CACHE] Duplicate lookup failed for {content_hash[:12]}...: {e}")
            return None

        if duplicate:
            logger.info(f"[CACHE] HIT for user {user_id}, hash {content_hash[:12]}...")
        else:
            logger.info(f"[CACHE] MISS for user {user_id}, hash {content_hash[:12]}...")
        return duplicate
