"""
Upload pre-flight checks, run on every part before any image is decoded.

Content integrity (magic bytes, decodability) is enforced later by the
normalizer, which has to open the image anyway.
"""

import logging
from typing import Optional

from app.config import settings
from app.core.errors import InvalidInput
from app.detection.normalizer import is_image_content_type

logger = logging.getLogger(__name__)


def validate_upload(filename: str, content_type: Optional[str], filesize: int) -> None:
    """Raise InvalidInput unless the part declares an image type and fits the size cap."""
    if not is_image_content_type(content_type):
        logger.warning(f"[VALIDATE] Rejected {filename}: content type {content_type!r}")
        raise InvalidInput(f"File {filename} is not an image")

    if filesize == 0:
        raise InvalidInput(f"File {filename} is empty")

    if filesize > settings.max_image_upload_bytes:
        raise InvalidInput(
            f"Image too large. Max {settings.max_image_upload_bytes // 1024 // 1024}MB allowed."
        )
