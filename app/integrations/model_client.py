"""
Remote detector client: one instance per configured DetectorSpec.

`ModelClient.predict` returns P(synthetic) in [0, 1] and never raises: an
unreachable, slow, erroring or confused detector degrades to the neutral
score so one bad endpoint cannot sink the ensemble.

Detectors answer in one of two shapes:
  * pairs:    [{"label": "artificial", "score": 0.91}, ...]
              (possibly wrapped once more per input: [[{...}, ...]])
  * parallel: {"labels": ["artificial", "human"], "scores": [0.91, 0.09]}
`normalize_label_scores` folds both into a list of (label, score) tuples
before the label lookup.
"""

import asyncio
import logging
import math
from typing import Any, List, Tuple

import aiohttp

from app.config import DetectorSpec, settings
from app.core.errors import UpstreamUnavailable
from app.integrations import http_client as http_module

logger = logging.getLogger(__name__)

LabelScores = List[Tuple[str, float]]


def _pair_from_item(item: Any) -> Tuple[str, float]:
    if isinstance(item, dict):
        if "label" not in item or "score" not in item:
            raise ValueError(f"Result item missing label/score: {item}")
        return str(item["label"]), float(item["score"])
    if isinstance(item, (list, tuple)) and len(item) == 2:
        return str(item[0]), float(item[1])
    raise ValueError(f"Unrecognized result item: {item!r}")


def normalize_label_scores(payload: Any) -> LabelScores:
    """Canonicalize a detector response. Raises ValueError on any other shape."""
    if isinstance(payload, dict):
        if "labels" in payload and "scores" in payload:
            labels, scores = payload["labels"], payload["scores"]
            if not isinstance(labels, list) or not isinstance(scores, list):
                raise ValueError("labels/scores must be lists")
            if len(labels) != len(scores):
                raise ValueError(f"labels/scores length mismatch ({len(labels)} vs {len(scores)})")
            return [(str(label), float(score)) for label, score in zip(labels, scores)]
        if "error" in payload:
            raise ValueError(f"Detector error: {payload['error']}")
        raise ValueError(f"Unrecognized response keys: {sorted(payload)}")

    if isinstance(payload, list):
        # Batched pipelines wrap the per-image result list once more.
        if payload and isinstance(payload[0], list) and payload[0] and not isinstance(payload[0][0], (str, int, float)):
            payload = payload[0]
        return [_pair_from_item(item) for item in payload]

    raise ValueError(f"Unrecognized response type: {type(payload).__name__}")


def find_label_score(pairs: LabelScores, label: str) -> float:
    wanted = label.lower()
    for candidate, score in pairs:
        if candidate.lower() == wanted:
            if not math.isfinite(score) or not 0.0 <= score <= 1.0:
                raise ValueError(f"Score for '{candidate}' out of range: {score}")
            return score
    raise ValueError(f"Label '{label}' not in response labels {[c for c, _ in pairs]}")


class ModelClient:
    def __init__(
        self,
        spec: DetectorSpec,
        endpoint: str,
        api_token: str = "",
        probe_timeout: float = settings.probe_timeout_sec,
        inference_timeout: float = settings.inference_timeout_sec,
        neutral_score: float = settings.neutral_score,
    ):
        self.spec = spec
        self.endpoint = endpoint
        self.api_token = api_token
        self.probe_timeout = probe_timeout
        self.inference_timeout = inference_timeout
        self.neutral_score = neutral_score

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def weight(self) -> float:
        return self.spec.weight

    def _headers(self) -> dict:
        headers = {}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def _probe(self, session: aiohttp.ClientSession) -> None:
        try:
            async with session.head(
                self.endpoint,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.probe_timeout),
            ) as response:
                if not 200 <= response.status < 300:
                    raise UpstreamUnavailable(f"probe returned {response.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamUnavailable(f"probe failed: {e!r}")

    async def _infer(self, session: aiohttp.ClientSession, image_bytes: bytes) -> Any:
        headers = {**self._headers(), "Content-Type": "image/jpeg"}
        try:
            async with session.post(
                self.endpoint,
                data=image_bytes,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.inference_timeout),
            ) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    raise UpstreamUnavailable(f"inference returned {response.status}: {body[:200]}")
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamUnavailable(f"inference failed: {e!r}")

    async def predict(self, image_bytes: bytes) -> float:
        try:
            async with http_module.request_session() as session:
                await self._probe(session)
                payload = await self._infer(session, image_bytes)
            pairs = normalize_label_scores(payload)
            probability = find_label_score(pairs, self.spec.synthetic_label)
        except UpstreamUnavailable as e:
            logger.warning(f"[MODEL] {self.name} unavailable, using neutral score: {e.message}")
            return self.neutral_score
        except ValueError as e:
            logger.warning(f"[MODEL] {self.name} malformed response, using neutral score: {e}")
            return self.neutral_score
        except Exception as e:
            logger.warning(f"[MODEL] {self.name} unexpected error, using neutral score: {e!r}")
            return self.neutral_score

        logger.info(f"[MODEL] {self.name}: p(synthetic)={probability:.3f}")
        return probability
