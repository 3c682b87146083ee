"""
Public image host upload (imgbb API).

The reverse search provider needs a public URL, so the normalized image is
uploaded first. Each key attempt is a form POST with `key` and a base64
`image`; the public URL comes back in `data.url`.
"""

import asyncio
import base64
import logging

import aiohttp

from app.config import settings
from app.core.errors import UpstreamUnavailable
from app.integrations import http_client as http_module
from app.integrations.key_pool import ApiKeyPool

logger = logging.getLogger(__name__)


class ImageHostClient:
    def __init__(
        self,
        keys: ApiKeyPool,
        upload_url: str = settings.imgbb_upload_url,
        timeout: float = settings.image_host_timeout_sec,
    ):
        self.keys = keys
        self.upload_url = upload_url
        self.timeout = timeout

    async def _upload_once(self, key: str, encoded: str) -> str:
        try:
            async with http_module.request_session() as session:
                async with session.post(
                    self.upload_url,
                    data={"key": key, "image": encoded},
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if not 200 <= response.status < 300:
                        raise UpstreamUnavailable(f"upload returned {response.status}")
                    payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpstreamUnavailable(f"upload failed: {e!r}")

        data = payload.get("data") if isinstance(payload, dict) else None
        url = data.get("url") if isinstance(data, dict) else None
        if not isinstance(url, str) or not url:
            raise UpstreamUnavailable("upload response has no data.url")
        return url

    async def upload(self, image_bytes: bytes) -> str:
        """Return a public URL for the image. Raises KeyPoolExhausted."""
        encoded = base64.b64encode(image_bytes).decode("utf-8")
        url = await self.keys.run(lambda key: self._upload_once(key, encoded))
        logger.info(f"[HOST] Uploaded image ({len(image_bytes)} bytes) → {url}")
        return url
