"""
aiohttp ClientSession helpers.

One session is created during the FastAPI lifespan and handed to the clients
that need it (storage proxy, AI or Not, URL fetches).

Usage:
    async with http_client.request_session(shared) as sess:
        async with sess.post(url, data=payload) as response:
            ...

`request_session` yields the given session when it is open, otherwise it
creates and closes a temporary one (covers tests and pre-init calls).
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 30


def create_session(timeout_sec: int = DEFAULT_TIMEOUT_SEC) -> aiohttp.ClientSession:
    session = aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=timeout_sec)
    )
    logger.info("[STARTUP] Shared HTTP session initialized")
    return session


async def close(session: Optional[aiohttp.ClientSession]) -> None:
    if session and not session.closed:
        await session.close()
        logger.info("[SHUTDOWN] Shared HTTP session closed")


@asynccontextmanager
async def request_session(session: Optional[aiohttp.ClientSession] = None):
    """
    Yields `session` if it is open, otherwise a temporary session that is
    closed on exit. Never closes the shared session.
    """
    if session is not None and not session.closed:
        yield session
    else:
        tmp = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=DEFAULT_TIMEOUT_SEC)
        )
        try:
            yield tmp
        finally:
            await tmp.close()
