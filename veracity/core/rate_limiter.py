"""
Per-user rate limiting: Redis-backed (preferred) with in-memory fallback.

One `RateLimiter` is built in the FastAPI lifespan around the (optional)
Upstash client and injected into the analyze routes.
"""

import time
import logging
from typing import Dict, Optional

from fastapi import HTTPException

from veracity.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = "Too many requests. Please try again in a minute."


class RateLimiter:
    def __init__(self, redis=None, config: Optional[Settings] = None):
        config = config or default_settings
        self.redis = redis
        self.window = config.rate_limit_request_window_sec
        self.max_requests = config.rate_limit_max_requests
        self.memory_limit = config.rate_limit_memory_limit
        # {identifier: [timestamp, ...]}
        self._hits: Dict[str, list] = {}

    def check(self, identifier: str) -> None:
        if self.redis:
            self._check_redis(identifier)
        else:
            self._check_memory(identifier)

    def _check_redis(self, identifier: str) -> None:
        key = f"rate_limit:{identifier}"
        try:
            current_count = self.redis.incr(key)
            if current_count == 1:
                self.redis.expire(key, self.window)

            if current_count > self.max_requests:
                logger.warning(f"Redis Rate limit exceeded for {identifier}")
                raise HTTPException(status_code=429, detail=TOO_MANY_REQUESTS)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Redis rate limit error: {e}. Falling back to memory.")
            self._check_memory(identifier)

    def _check_memory(self, identifier: str) -> None:
        """Simple sliding-window in-memory rate limiting."""
        now = time.time()

        if len(self._hits) > self.memory_limit:
            self.cleanup(now)

        recent = [t for t in self._hits.get(identifier, []) if now - t < self.window]
        if len(recent) >= self.max_requests:
            self._hits[identifier] = recent
            logger.warning(f"Memory Rate limit exceeded for {identifier}")
            raise HTTPException(status_code=429, detail=TOO_MANY_REQUESTS)

        recent.append(now)
        self._hits[identifier] = recent

    def cleanup(self, now: float) -> None:
        """Remove all identifiers that have been idle for the full window."""
        expired_keys = [
            k for k, v in self._hits.items()
            if not v or now - v[-1] > self.window
        ]
        for k in expired_keys:
            del self._hits[k]
        logger.info(f"Rate limit cleanup: removed {len(expired_keys)} inactive sessions.")
