"""
Upstash Redis integration.

`initialize()` returns a client, or None when credentials are absent or
init fails. Consumers treat None as "use the in-memory fallback".
"""

import logging
from typing import Optional

from upstash_redis import Redis

from veracity.config import Settings

logger = logging.getLogger(__name__)


def initialize(settings: Settings) -> Optional[Redis]:
    """Create the Upstash Redis client."""
    if not (settings.upstash_redis_host and settings.upstash_redis_password):
        logger.warning(
            "[STARTUP] Redis credentials not found. Rate limiting will fallback to memory."
        )
        return None

    try:
        client = Redis(url=settings.upstash_redis_host, token=settings.upstash_redis_password)
        logger.info("[STARTUP] Upstash Redis client initialized successfully")
        return client
    except Exception as e:
        logger.error(f"[STARTUP] Failed to initialize Upstash Redis client: {e}")
        return None
