"""
Weighted ensemble over the remote detectors.

`compute_verdict` is the pure fusion step; `EnsembleOrchestrator.classify`
gathers one score per detector (all in parallel, failures → neutral) and
feeds them through it. The breakdown always has one entry per detector, in
configured order, and the weight basis never shrinks when detectors fail.
"""

import asyncio
import logging
import time
from typing import Sequence

from app.config import settings
from app.detection.models import (
    LABEL_AI,
    LABEL_NEEDS_REVIEW,
    LABEL_REAL,
    ModelScore,
    NormalizedImage,
    Verdict,
)
from app.integrations.model_client import ModelClient

logger = logging.getLogger(__name__)


def compute_verdict(
    scores: Sequence[ModelScore],
    processing_time: float = 0.0,
    review_threshold: float = settings.needs_review_threshold,
) -> Verdict:
    total_weight = sum(s.weight for s in scores)
    if total_weight <= 0:
        raise ValueError("Ensemble needs at least one positively weighted score")

    weighted = sum(s.probability * s.weight for s in scores) / total_weight
    is_ai = weighted > 0.5
    confidence = weighted if is_ai else 1.0 - weighted
    label = LABEL_AI if is_ai else LABEL_REAL
    if confidence < review_threshold:
        label = LABEL_NEEDS_REVIEW

    return Verdict(
        label=label,
        confidence=confidence,
        scores=tuple(scores),
        processing_time=processing_time,
    )


class EnsembleOrchestrator:
    def __init__(
        self,
        clients: Sequence[ModelClient],
        neutral_score: float = settings.neutral_score,
        review_threshold: float = settings.needs_review_threshold,
    ):
        if not clients:
            raise ValueError("EnsembleOrchestrator requires at least one ModelClient")
        self.clients = list(clients)
        self.neutral_score = neutral_score
        self.review_threshold = review_threshold

    async def score_all(self, image: NormalizedImage) -> list[ModelScore]:
        results = await asyncio.gather(
            *(client.predict(image.data) for client in self.clients),
            return_exceptions=True,
        )

        scores = []
        for client, result in zip(self.clients, results):
            if isinstance(result, BaseException):
                logger.warning(f"[ENSEMBLE] {client.name} raised {result!r}; using neutral score")
                probability = self.neutral_score
            else:
                probability = result
            scores.append(ModelScore(model=client.name, probability=probability, weight=client.weight))
        return scores

    async def classify(self, image: NormalizedImage) -> Verdict:
        start = time.perf_counter()
        scores = await self.score_all(image)
        verdict = compute_verdict(scores, time.perf_counter() - start, self.review_threshold)
        logger.info(
            f"[ENSEMBLE] {image.filename}: {verdict.label} "
            f"(confidence={verdict.confidence:.3f}, models={len(scores)})"
        )
        return verdict
