"""
Upstash Redis integration (optional).

`client` starts as None and stays None unless both Upstash credentials are
configured. Consumers (rate limiter, corroboration cache) read
`redis_client.client` at call time so they see whatever the lifespan bound,
and tests can swap in a mock with monkeypatch.
"""

import logging

from upstash_redis import Redis

from app.config import settings

logger = logging.getLogger(__name__)

client = None  # Redis | None


def initialize() -> None:
    global client

    if not (settings.upstash_redis_host and settings.upstash_redis_password):
        logger.warning(
            "[STARTUP] Redis credentials not found. Rate limiting and the "
            "corroboration cache stay process-local."
        )
        return

    try:
        client = Redis(url=settings.upstash_redis_host, token=settings.upstash_redis_password)
        logger.info("[STARTUP] Upstash Redis client initialized")
    except Exception as e:
        logger.error(f"[STARTUP] Failed to initialize Upstash Redis client: {e}")
        client = None


def close() -> None:
    global client
    client = None
