"""
Shared pytest fixtures for all test modules.

IMPORTANT: TESTING must be set before the app is imported so the lifespan
skips the background cache sweep task.
"""

import asyncio
import io
import os

os.environ["TESTING"] = "true"

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from tests.mocks.redis_mock import MockRedis

# App import happens AFTER os.environ["TESTING"] is set above.
from app.main import app  # noqa: E402
from app.core import rate_limiter  # noqa: E402
from app.core.dependencies import get_coordinator  # noqa: E402


# ---------------------------------------------------------------------------
# Core infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_redis(monkeypatch):
    """Replace redis_client.client with an in-memory MockRedis."""
    from app.integrations import redis_client as rc

    mock_rc = MockRedis()
    monkeypatch.setattr(rc, "client", mock_rc)
    return mock_rc


@pytest.fixture
def no_redis(monkeypatch):
    """Force every Redis-aware module onto its in-process path."""
    from app.integrations import redis_client as rc

    monkeypatch.setattr(rc, "client", None)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    rate_limiter._rate_limits.clear()
    yield
    rate_limiter._rate_limits.clear()


@pytest.fixture
def client(no_redis):
    """
    FastAPI TestClient with Redis disabled.

    redis_client.initialize() is patched to a no-op so the lifespan can't
    attempt a real connection.
    """
    with patch("app.integrations.redis_client.initialize"):
        with TestClient(app, raise_server_exceptions=False) as c:
            yield c
    app.dependency_overrides.clear()


@pytest.fixture
def use_coordinator(client):
    """Install a test coordinator for the /detect route: use_coordinator(coord)."""

    def _install(coordinator):
        app.dependency_overrides[get_coordinator] = lambda: coordinator
        return coordinator

    return _install


# ---------------------------------------------------------------------------
# Shared test-data helpers
# ---------------------------------------------------------------------------


def make_jpeg(color=(128, 128, 128), size=(32, 32)) -> bytes:
    """Create a small JPEG in memory, fast and valid."""
    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format="JPEG")
    return buf.getvalue()


def make_png(color=(10, 200, 30, 128), size=(40, 20)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color=color).save(buf, format="PNG")
    return buf.getvalue()


class StubModelClient:
    """Duck-typed ModelClient: fixed probability, optional delay or exception."""

    def __init__(self, name: str, weight: float, probability: float = 0.5, delay: float = 0.0, exc=None):
        self.name = name
        self.weight = weight
        self.probability = probability
        self.delay = delay
        self.exc = exc
        self.calls = 0

    async def predict(self, image_bytes: bytes) -> float:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.probability


DEFAULT_WEIGHTS = [0.25, 0.25, 0.2, 0.1, 0.1, 0.1]


def make_stub_clients(probabilities, weights=DEFAULT_WEIGHTS):
    return [
        StubModelClient(f"detector-{i}", w, p)
        for i, (p, w) in enumerate(zip(probabilities, weights))
    ]
