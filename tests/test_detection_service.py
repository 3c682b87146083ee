"""
Unit tests for app/services/detection_service.py: RequestCoordinator.

Detectors are StubModelClients; the corroboration pipeline runs for real
against AsyncMock host/search clients and an in-memory cache, so the
"skip when confident" and "cache identical bytes" paths are observable.
"""

import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.config import Settings
from app.core.errors import BatchTimeout, InvalidInput, TooManyItems
from app.detection.cache import ResultCache
from app.detection.corroboration import CorroborationPipeline
from app.detection.ensemble import EnsembleOrchestrator
from app.detection.models import (
    INDICATION_AI,
    INDICATION_NONE,
    LABEL_AI,
    LABEL_NEEDS_REVIEW,
    LABEL_REAL,
)
from app.services.detection_service import (
    ImageUpload,
    RequestCoordinator,
    build_coordinator,
)
from tests.conftest import StubModelClient, make_jpeg, make_png, make_stub_clients

CONFIDENT_AI = [0.95] * 6
CONFIDENT_REAL = [0.05] * 6
UNSURE = [0.9, 0.85, 0.8, 0.7, 0.6, 0.55]


def _upload(name="photo.jpg", data=None, content_type="image/jpeg"):
    return ImageUpload(filename=name, content_type=content_type, data=data if data is not None else make_jpeg())


def _coordinator(clients, titles=None, batch_timeout=60, orchestrator_cls=EnsembleOrchestrator):
    host = MagicMock()
    host.upload = AsyncMock(return_value="https://i.host/img.jpg")
    search = MagicMock()
    search.search = AsyncMock(return_value=[{"title": t} for t in (titles or [])])
    cache = ResultCache(max_size=100, ttl_sec=3600, use_redis=False)

    coordinator = RequestCoordinator(
        orchestrator_cls(clients),
        CorroborationPipeline(cache, host, search),
        max_images=10,
        batch_timeout=batch_timeout,
    )
    return coordinator, host, search


# ---------------------------------------------------------------------------
# Batch validation
# ---------------------------------------------------------------------------


async def test_eleven_images_rejected_before_any_detector_runs():
    clients = make_stub_clients(CONFIDENT_AI)
    coordinator, host, _ = _coordinator(clients)

    with pytest.raises(TooManyItems) as exc:
        await coordinator.detect_batch([_upload(f"{i}.jpg") for i in range(11)])

    assert exc.value.message == "Maximum 10 images allowed"
    assert exc.value.status_code == 400
    assert all(c.calls == 0 for c in clients)
    host.upload.assert_not_awaited()


async def test_ten_images_are_accepted():
    coordinator, _, _ = _coordinator(make_stub_clients(CONFIDENT_AI))
    batch = await coordinator.detect_batch([_upload(f"{i}.jpg") for i in range(10)])
    assert len(batch.outcomes) == 10


async def test_empty_batch_rejected():
    coordinator, _, _ = _coordinator(make_stub_clients(CONFIDENT_AI))
    with pytest.raises(InvalidInput):
        await coordinator.detect_batch([])


async def test_non_image_part_fails_whole_request():
    clients = make_stub_clients(CONFIDENT_AI)
    coordinator, _, _ = _coordinator(clients)

    with pytest.raises(InvalidInput):
        await coordinator.detect_batch([_upload(), _upload("notes.txt", b"hello", "text/plain")])
    assert all(c.calls == 0 for c in clients)


async def test_undecodable_bytes_fail_whole_request():
    clients = make_stub_clients(CONFIDENT_AI)
    coordinator, _, _ = _coordinator(clients)

    with pytest.raises(InvalidInput):
        await coordinator.detect_batch([_upload(), _upload("broken.jpg", b"\xff\xd8 not really a jpeg")])
    assert all(c.calls == 0 for c in clients)


# ---------------------------------------------------------------------------
# Verdicts and corroboration
# ---------------------------------------------------------------------------


async def test_confident_verdict_skips_corroboration():
    coordinator, host, search = _coordinator(make_stub_clients(CONFIDENT_AI))

    batch = await coordinator.detect_batch([_upload()])
    verdict = batch.outcomes[0].verdict

    assert verdict.label == LABEL_AI
    assert verdict.search_indication is None
    host.upload.assert_not_awaited()
    search.search.assert_not_awaited()


async def test_confident_real_verdict():
    coordinator, _, _ = _coordinator(make_stub_clients(CONFIDENT_REAL))
    batch = await coordinator.detect_batch([_upload(data=make_png(), content_type="image/png")])
    assert batch.outcomes[0].verdict.label == LABEL_REAL


async def test_needs_review_gets_search_indication():
    coordinator, host, _ = _coordinator(make_stub_clients(UNSURE), titles=["Synthetic face generator output"])

    batch = await coordinator.detect_batch([_upload()])
    verdict = batch.outcomes[0].verdict

    assert verdict.label == LABEL_NEEDS_REVIEW
    assert verdict.search_indication == INDICATION_AI
    host.upload.assert_awaited_once()


async def test_identical_bytes_corroborated_once():
    coordinator, host, search = _coordinator(make_stub_clients(UNSURE), titles=["Mountain lake"])
    data = make_jpeg(color=(1, 2, 3))

    first = await coordinator.detect_batch([_upload("a.jpg", data)])
    second = await coordinator.detect_batch([_upload("b.jpg", data)])

    assert first.outcomes[0].verdict.search_indication == INDICATION_NONE
    assert second.outcomes[0].verdict.search_indication == INDICATION_NONE
    assert host.upload.await_count == 1
    assert search.search.await_count == 1


async def test_corroboration_crash_still_reports_verdict():
    coordinator, host, _ = _coordinator(make_stub_clients(UNSURE))
    host.upload.side_effect = RuntimeError("unexpected")

    batch = await coordinator.detect_batch([_upload()])
    verdict = batch.outcomes[0].verdict

    assert verdict.label == LABEL_NEEDS_REVIEW
    assert verdict.search_indication is None


async def test_outcomes_keep_upload_order_and_filenames():
    coordinator, _, _ = _coordinator(make_stub_clients(CONFIDENT_AI))
    names = ["c.jpg", "a.jpg", "b.jpg"]

    batch = await coordinator.detect_batch([_upload(n) for n in names])

    assert [o.filename for o in batch.outcomes] == names
    assert batch.total_processing_time >= 0
    assert all(o.verdict.processing_time >= 0 for o in batch.outcomes)


async def test_processing_time_includes_normalization(monkeypatch):
    from app.services import detection_service

    real_normalize = detection_service.normalize_image

    def slow_normalize(*args, **kwargs):
        time.sleep(0.05)
        return real_normalize(*args, **kwargs)

    monkeypatch.setattr(detection_service, "normalize_image", slow_normalize)
    coordinator, _, _ = _coordinator(make_stub_clients(CONFIDENT_AI))

    batch = await coordinator.detect_batch([_upload()])

    assert batch.outcomes[0].verdict.processing_time >= 0.05


# ---------------------------------------------------------------------------
# Failure isolation and the batch budget
# ---------------------------------------------------------------------------


class _FlakyOrchestrator(EnsembleOrchestrator):
    async def classify(self, image):
        if image.filename == "bad.jpg":
            raise RuntimeError("classifier blew up")
        return await super().classify(image)


async def test_one_failing_image_does_not_affect_siblings():
    coordinator, _, _ = _coordinator(make_stub_clients(CONFIDENT_AI), orchestrator_cls=_FlakyOrchestrator)

    batch = await coordinator.detect_batch([_upload("good.jpg"), _upload("bad.jpg"), _upload("also-good.jpg")])
    good, bad, also_good = batch.outcomes

    assert bad.failed
    assert bad.error == "Error processing image: classifier blew up"
    assert not good.failed and good.verdict.label == LABEL_AI
    assert not also_good.failed


async def test_batch_exceeding_budget_times_out():
    slow = [StubModelClient(f"slow-{i}", 1.0, probability=0.9, delay=1.0) for i in range(2)]
    coordinator, _, _ = _coordinator(slow, batch_timeout=0.05)

    with pytest.raises(BatchTimeout) as exc:
        await coordinator.detect_batch([_upload()])
    assert exc.value.status_code == 504


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def test_build_coordinator_uses_configured_detectors_and_limits(no_redis):
    config = Settings(
        _env_file=None,
        max_images_per_request=4,
        batch_timeout_sec=12,
        imgbb_api_keys="k1,k2",
        serpapi_api_keys="s1",
    )
    coordinator = build_coordinator(ResultCache(use_redis=False), config)

    assert coordinator.max_images == 4
    assert coordinator.batch_timeout == 12
    assert [c.name for c in coordinator.orchestrator.clients] == [d.name for d in config.detectors]
    assert len(coordinator.corroboration.image_host.keys) == 2
    assert len(coordinator.corroboration.search.keys) == 1
