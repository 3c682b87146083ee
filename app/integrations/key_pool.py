"""
Credential rotation for the corroboration providers.

Rotation is stateless: every call walks the keys from the first one, so a key
that failed on the previous request is tried again first on the next.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, Tuple, TypeVar

from app.core.errors import KeyPoolExhausted, UpstreamUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def try_in_order(
    keys: Sequence[str],
    attempt: Callable[[str], Awaitable[T]],
    name: str = "keys",
) -> T:
    """
    Return the result of the first `attempt(key)` that does not raise
    UpstreamUnavailable. Raises KeyPoolExhausted when none succeeds
    (including when `keys` is empty).
    """
    for index, key in enumerate(keys):
        try:
            return await attempt(key)
        except UpstreamUnavailable as e:
            logger.warning(f"[KEYS] {name} key #{index + 1} failed: {e.message}")
    raise KeyPoolExhausted(f"All {len(keys)} {name} keys failed")


@dataclass(frozen=True)
class ApiKeyPool:
    name: str
    keys: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.keys)

    async def run(self, attempt: Callable[[str], Awaitable[T]]) -> T:
        return await try_in_order(self.keys, attempt, name=self.name)
