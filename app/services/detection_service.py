"""
Batch detection coordinator behind POST /detect.

Per request: validate the batch (count, content types, size), normalize every
image, then run ensemble → (corroboration when "Needs review") for all images
concurrently under one wall-clock budget. A crash inside one image's pipeline
becomes that image's failed entry; its siblings still report normally.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import psutil

from app.config import Settings, settings as default_settings
from app.core.errors import BatchTimeout, InvalidInput, TooManyItems
from app.core.file_validator import validate_upload
from app.detection.cache import ResultCache
from app.detection.corroboration import CorroborationPipeline
from app.detection.ensemble import EnsembleOrchestrator
from app.detection.models import NormalizedImage, Verdict
from app.detection.normalizer import normalize_image
from app.integrations.image_host import ImageHostClient
from app.integrations.key_pool import ApiKeyPool
from app.integrations.model_client import ModelClient
from app.integrations.reverse_search import ReverseSearchClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    content_type: Optional[str]
    data: bytes


@dataclass(frozen=True)
class ImageOutcome:
    filename: str
    verdict: Optional[Verdict] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.verdict is None


@dataclass(frozen=True)
class BatchResult:
    outcomes: List[ImageOutcome]
    total_processing_time: float


def log_memory(stage: str) -> None:
    """Log current process and system memory usage. Only runs when DEBUG logging is active."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    process = psutil.Process(os.getpid())
    mem_info = process.memory_info()
    sys_mem = psutil.virtual_memory()
    logger.debug(
        f"[MEMORY] {stage} | "
        f"PID: {os.getpid()} | "
        f"Process RSS: {mem_info.rss / 1024 / 1024:.2f} MB | "
        f"System Available: {sys_mem.available / 1024 / 1024:.2f} MB / {sys_mem.total / 1024 / 1024:.2f} MB"
    )


class RequestCoordinator:
    def __init__(
        self,
        orchestrator: EnsembleOrchestrator,
        corroboration: CorroborationPipeline,
        max_images: int = default_settings.max_images_per_request,
        batch_timeout: float = default_settings.batch_timeout_sec,
    ):
        self.orchestrator = orchestrator
        self.corroboration = corroboration
        self.max_images = max_images
        self.batch_timeout = batch_timeout

    def validate_batch(self, uploads: Sequence[ImageUpload]) -> None:
        if not uploads:
            raise InvalidInput("No files provided")
        if len(uploads) > self.max_images:
            raise TooManyItems(f"Maximum {self.max_images} images allowed")
        for upload in uploads:
            validate_upload(upload.filename, upload.content_type, len(upload.data))

    async def detect_batch(self, uploads: Sequence[ImageUpload]) -> BatchResult:
        self.validate_batch(uploads)

        log_memory(f"Pre-Detect: {len(uploads)} image(s)")
        start = time.perf_counter()
        try:
            outcomes = await asyncio.wait_for(self._run(uploads), timeout=self.batch_timeout)
        except asyncio.TimeoutError:
            logger.error(f"[DETECT] Batch of {len(uploads)} timed out after {self.batch_timeout}s")
            raise BatchTimeout(f"Detection timed out after {self.batch_timeout:.0f} seconds")
        total = time.perf_counter() - start
        log_memory(f"Post-Detect: {len(uploads)} image(s)")

        failed = sum(1 for o in outcomes if o.failed)
        logger.info(f"[DETECT] Batch of {len(uploads)} done in {total:.2f}s ({failed} failed)")
        return BatchResult(outcomes=outcomes, total_processing_time=total)

    async def _run(self, uploads: Sequence[ImageUpload]) -> List[ImageOutcome]:
        # Undecodable input fails the whole request before any network call.
        normalized = await asyncio.gather(*(self._normalize(u) for u in uploads))
        return list(
            await asyncio.gather(*(self._process_image(image, start) for image, start in normalized))
        )

    async def _normalize(self, upload: ImageUpload) -> Tuple[NormalizedImage, float]:
        """Return the normalized image and the moment its processing started."""
        start = time.perf_counter()
        image = await asyncio.to_thread(normalize_image, upload.data, upload.content_type, upload.filename)
        return image, start

    async def _process_image(self, image: NormalizedImage, start: float) -> ImageOutcome:
        try:
            verdict = await self.orchestrator.classify(image)
            if verdict.needs_review:
                verdict = verdict.with_indication(await self._safe_corroborate(image))
        except Exception as e:
            logger.error(f"[DETECT] Error processing {image.filename}: {e}", exc_info=True)
            return ImageOutcome(filename=image.filename, error=f"Error processing image: {e}")

        return ImageOutcome(
            filename=image.filename,
            verdict=verdict.with_processing_time(time.perf_counter() - start),
        )

    async def _safe_corroborate(self, image: NormalizedImage) -> Optional[str]:
        try:
            return await self.corroboration.corroborate(image)
        except Exception as e:
            logger.error(f"[CORROBORATE] Unexpected failure for {image.filename}: {e}", exc_info=True)
            return None


def build_coordinator(cache: ResultCache, config: Settings = default_settings) -> RequestCoordinator:
    """Wire clients, key pools and the orchestrator from configuration."""
    clients = [
        ModelClient(
            spec,
            config.detector_endpoint(spec),
            api_token=config.hf_api_token,
            probe_timeout=config.probe_timeout_sec,
            inference_timeout=config.inference_timeout_sec,
            neutral_score=config.neutral_score,
        )
        for spec in config.detectors
    ]
    orchestrator = EnsembleOrchestrator(
        clients,
        neutral_score=config.neutral_score,
        review_threshold=config.needs_review_threshold,
    )

    host_keys = ApiKeyPool("image host", config.imgbb_key_list)
    search_keys = ApiKeyPool("reverse search", config.serpapi_key_list)
    if not host_keys.keys or not search_keys.keys:
        logger.warning("[STARTUP] Image host or search keys missing; corroboration will be skipped")

    corroboration = CorroborationPipeline(
        cache,
        ImageHostClient(host_keys, config.imgbb_upload_url, config.image_host_timeout_sec),
        ReverseSearchClient(
            search_keys, config.serpapi_search_url, config.serpapi_engine, config.search_timeout_sec
        ),
        titles_scanned=config.search_titles_scanned,
    )
    logger.info(f"[STARTUP] Ensemble ready with {len(clients)} detectors")
    return RequestCoordinator(
        orchestrator,
        corroboration,
        max_images=config.max_images_per_request,
        batch_timeout=config.batch_timeout_sec,
    )
