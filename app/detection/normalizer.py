"""
Canonical re-encode shared by every downstream call.

sharpen → contrast ×1.5 → 224×224 → JPEG q95. Pure CPU, no randomness, so the
same upload always yields the same bytes. Callers on the event loop should go
through `asyncio.to_thread`.
"""

import io
import logging

from PIL import Image, ImageEnhance, ImageFilter, UnidentifiedImageError

from app.config import settings
from app.core.errors import InvalidInput
from app.detection.hashing import fingerprint_upload
from app.detection.models import NormalizedImage

# Decompression-bomb guard for untrusted uploads
Image.MAX_IMAGE_PIXELS = settings.pil_max_image_pixels

logger = logging.getLogger(__name__)


def is_image_content_type(content_type: str | None) -> bool:
    return bool(content_type) and content_type.lower().startswith("image/")


def normalize_image(data: bytes, content_type: str | None, filename: str = "image") -> NormalizedImage:
    if not is_image_content_type(content_type):
        raise InvalidInput(f"File {filename} is not an image")
    if not data:
        raise InvalidInput(f"File {filename} is empty")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            rgb = img.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        logger.warning(f"[NORMALIZE] Could not decode {filename}: {e}")
        raise InvalidInput(f"Invalid image file: {filename}")

    size = settings.normalized_image_size
    enhanced = rgb.filter(ImageFilter.SHARPEN)
    enhanced = ImageEnhance.Contrast(enhanced).enhance(settings.contrast_factor)
    enhanced = enhanced.resize((size, size), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    enhanced.save(buffer, format="JPEG", quality=settings.normalized_jpeg_quality)

    rgb.close()
    enhanced.close()

    return NormalizedImage(
        data=buffer.getvalue(),
        fingerprint=fingerprint_upload(data),
        filename=filename,
    )
