"""
Web corroboration for low-confidence verdicts.

cache → image host upload → reverse search → title keyword scan.
Advisory only: the result is attached as `search_indication` and never
touches the ensemble label or confidence. Every step fails soft; the
caller just gets None.
"""

import logging
from typing import Iterable, Optional

from app.config import settings
from app.core.errors import KeyPoolExhausted, UpstreamUnavailable
from app.detection.cache import ResultCache
from app.detection.models import INDICATION_AI, INDICATION_NONE, NormalizedImage
from app.integrations.image_host import ImageHostClient
from app.integrations.reverse_search import ReverseSearchClient

logger = logging.getLogger(__name__)

AI_KEYWORDS = frozenset({"deepfake", "ai-generated", "fake", "synthetic", "generated", "artificial"})


def scan_titles(results: Iterable[dict], limit: int = settings.search_titles_scanned) -> str:
    """Keyword scan over the first `limit` result titles (substring, case-insensitive)."""
    for position, result in enumerate(results):
        if position >= limit:
            break
        title = str(result.get("title") or "").lower()
        if any(keyword in title for keyword in AI_KEYWORDS):
            logger.info(f"[CORROBORATE] Keyword hit in result #{position + 1}: '{title[:80]}'")
            return INDICATION_AI
    return INDICATION_NONE


class CorroborationPipeline:
    def __init__(
        self,
        cache: ResultCache,
        image_host: ImageHostClient,
        search: ReverseSearchClient,
        titles_scanned: int = settings.search_titles_scanned,
    ):
        self.cache = cache
        self.image_host = image_host
        self.search = search
        self.titles_scanned = titles_scanned

    async def corroborate(self, image: NormalizedImage) -> Optional[str]:
        cached = self.cache.get(image.fingerprint)
        if cached is not None:
            return cached

        try:
            host_url = await self.image_host.upload(image.data)
        except KeyPoolExhausted as e:
            logger.error(f"[CORROBORATE] No host URL available for {image.filename}: {e.message}")
            return None

        try:
            results = await self.search.search(host_url)
        except UpstreamUnavailable as e:
            logger.error(f"[CORROBORATE] Reverse search unavailable for {image.filename}: {e.message}")
            return None

        indication = scan_titles(results, self.titles_scanned)
        self.cache.put(image.fingerprint, indication)
        logger.info(f"[CORROBORATE] {image.filename}: {indication}")
        return indication
