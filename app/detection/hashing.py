"""
Upload fingerprinting for the corroboration cache.

The fingerprint is taken over the original upload bytes, not the normalized
re-encode, so two byte-identical uploads always share a cache key.
"""

import hashlib
import logging

logger = logging.getLogger(__name__)


def get_safe_hash(data: bytes) -> str:
    """Securely hash raw bytes using SHA-256."""
    return hashlib.sha256(data).hexdigest()


def fingerprint_upload(data: bytes) -> str:
    h = get_safe_hash(data)
    logger.debug(f"[HASH] Upload fingerprint ({len(data)} bytes): {h[:12]}...")
    return h
