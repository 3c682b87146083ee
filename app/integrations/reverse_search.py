"""
Reverse image search (SerpAPI `google_reverse_image` engine).

Returns the raw `inline_images` result list. A body carrying an `error`
field is a failed attempt for that key (quota, bad key) and rotates to the
next one; a body without `inline_images` just means nothing was found.
"""

import asyncio
import logging
from typing import List

import aiohttp

from app.config import settings
from app.core.errors import UpstreamUnavailable
from app.integrations import http_client as http_module
from app.integrations.key_pool import ApiKeyPool

logger = logging.getLogger(__name__)


class ReverseSearchClient:
    def __init__(
        self,
        keys: ApiKeyPool,
        search_url: str = settings.serpapi_search_url,
        engine: str = settings.serpapi_engine,
        timeout: float = settings.search_timeout_sec,
    ):
        self.keys = keys
        self.search_url = search_url
        self.engine = engine
        self.timeout = timeout

    async def _search_once(self, key: str, image_url: str) -> List[dict]:
        params = {"engine": self.engine, "image_url": image_url, "api_key": key}
        try:
            async with http_module.request_session() as session:
                async with session.get(
                    self.search_url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if not 200 <= response.status < 300:
                        raise UpstreamUnavailable(f"search returned {response.status}")
                    payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpstreamUnavailable(f"search failed: {e!r}")

        if not isinstance(payload, dict):
            raise UpstreamUnavailable("search response is not an object")
        if payload.get("error"):
            raise UpstreamUnavailable(f"search error: {payload['error']}")

        results = payload.get("inline_images")
        if results is None:
            return []
        if not isinstance(results, list):
            raise UpstreamUnavailable(f"inline_images is {type(results).__name__}, not a list")
        return [r for r in results if isinstance(r, dict)]

    async def search(self, image_url: str) -> List[dict]:
        """Return inline image results for `image_url`. Raises KeyPoolExhausted."""
        results = await self.keys.run(lambda key: self._search_once(key, image_url))
        logger.info(f"[SEARCH] {len(results)} inline results for {image_url}")
        return results
