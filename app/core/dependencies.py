"""
FastAPI dependencies shared by the route modules.

The coordinator is built once in the lifespan and parked on `app.state`;
routes resolve it through `get_coordinator` so tests can install a double
with `app.dependency_overrides`.
"""

import logging

from fastapi import Depends, Request

from app.core.rate_limiter import check_rate_limit
from app.services.detection_service import RequestCoordinator

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Extracts the real client IP from proxy headers, falling back to the socket peer."""
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip

    x_forwarded = request.headers.get("x-forwarded-for")
    if x_forwarded:
        return x_forwarded.split(",")[0].strip()

    return request.client.host if request.client else "127.0.0.1"


def get_coordinator(request: Request) -> RequestCoordinator:
    return request.app.state.coordinator


def enforce_rate_limit(client_ip: str = Depends(get_client_ip)) -> str:
    """Charge one call against the caller's budget before the body is parsed."""
    check_rate_limit(client_ip)
    return client_ip
