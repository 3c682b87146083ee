"""
Per-caller request budget for /detect: Redis-backed (preferred) with in-memory fallback.

The Redis client is accessed at call time via the integration module
so it picks up the instance initialized during the FastAPI lifespan.
"""

import time
import logging
from typing import Dict

from app.config import settings
from app.core.errors import RateLimited
from app.integrations import redis_client as redis_module

logger = logging.getLogger(__name__)

# In-memory store: {identifier: [timestamp, ...]}
_rate_limits: Dict[str, list] = {}

RATE_LIMIT_WINDOW = settings.rate_limit_request_window_sec
MAX_REQUESTS_PER_WINDOW = settings.rate_limit_max_requests

_LIMIT_MESSAGE = f"Rate limit exceeded: {MAX_REQUESTS_PER_WINDOW} per {RATE_LIMIT_WINDOW} seconds"


def check_rate_limit(identifier: str) -> None:
    """Raise RateLimited when `identifier` is over budget; otherwise record the call."""
    rc = redis_module.client
    if rc:
        _check_rate_limit_redis(rc, identifier)
    else:
        _check_rate_limit_memory(identifier)


def _check_rate_limit_redis(rc, identifier: str) -> None:
    key = f"rate_limit:detect:{identifier}"
    try:
        current_count = rc.incr(key)
        if current_count == 1:
            rc.expire(key, RATE_LIMIT_WINDOW)
    except Exception as e:
        logger.error(f"Redis rate limit error: {e}. Falling back to memory.")
        _check_rate_limit_memory(identifier)
        return

    if current_count > MAX_REQUESTS_PER_WINDOW:
        logger.warning(f"Redis rate limit exceeded for {identifier}")
        raise RateLimited(_LIMIT_MESSAGE)


def _check_rate_limit_memory(identifier: str) -> None:
    """Sliding-window in-memory rate limiting."""
    now = time.time()

    if len(_rate_limits) > settings.rate_limit_memory_limit:
        _cleanup_all_limits(now)

    window = [t for t in _rate_limits.get(identifier, []) if now - t < RATE_LIMIT_WINDOW]

    if len(window) >= MAX_REQUESTS_PER_WINDOW:
        _rate_limits[identifier] = window
        logger.warning(f"Memory rate limit exceeded for {identifier}")
        raise RateLimited(_LIMIT_MESSAGE)

    window.append(now)
    _rate_limits[identifier] = window


def _cleanup_all_limits(now: float) -> None:
    """Remove all identifiers that have been idle for the full window."""
    expired_keys = [
        k for k, v in _rate_limits.items()
        if not v or now - v[-1] > RATE_LIMIT_WINDOW
    ]
    for k in expired_keys:
        del _rate_limits[k]
    logger.info(f"Rate limit cleanup: removed {len(expired_keys)} inactive callers.")
