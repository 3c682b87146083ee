"""
Shared aiohttp ClientSession, opened in the FastAPI lifespan.

One /detect batch fans out to every detector (probe + inference) plus one
upload and one search per uncertain image, for up to ten images at once.
All of that goes through a single pooled session whose connector caps the
number of sockets open at any moment.

Usage:
    async with http_client.request_session() as sess:
        async with sess.post(url, data=payload, timeout=timeout) as response:
            ...

Callers always pass their own per-call ClientTimeout; the session default
only bounds calls that forget to.
"""

import logging
from contextlib import asynccontextmanager

import aiohttp

from app.config import settings

logger = logging.getLogger(__name__)

session: aiohttp.ClientSession | None = None


def _new_session() -> aiohttp.ClientSession:
    return aiohttp.ClientSession(
        connector=aiohttp.TCPConnector(limit=settings.http_max_connections),
        timeout=aiohttp.ClientTimeout(total=settings.http_session_timeout_sec),
    )


async def initialize() -> None:
    global session
    session = _new_session()
    logger.info(f"[STARTUP] HTTP session ready (max {settings.http_max_connections} connections)")


async def close() -> None:
    global session
    if session is not None and not session.closed:
        await session.close()
        logger.info("[SHUTDOWN] HTTP session closed")
    session = None


@asynccontextmanager
async def request_session():
    """
    Yield the lifespan session, or a throwaway one when it is missing
    (scripts, or calls made before startup finished).
    """
    if session is not None and not session.closed:
        yield session
        return

    tmp = _new_session()
    try:
        yield tmp
    finally:
        await tmp.close()
