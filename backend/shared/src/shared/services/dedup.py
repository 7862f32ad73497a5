"""Duplicate webhook suppression.

Providers retry deliveries and occasionally send the same notification twice.
A suppressor remembers which keys have been claimed so each notification is
processed at most once within the TTL window.
"""

import logging
import time
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0


class DuplicateSuppressor(Protocol):
    """Claims processing keys; a key can be held by one caller at a time."""

    def claim(self, key: str) -> bool: ...

    def release(self, key: str) -> None: ...


class InMemoryDuplicateSuppressor:
    """TTL cache of claimed keys.

    Expired entries are swept lazily on every claim; there is no background
    timer. claim() and release() never suspend, so under asyncio a claim
    cannot interleave with another coroutine's claim of the same key.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = ttl_seconds
        self._clock = clock
        self._claimed: dict[str, float] = {}

    def claim(self, key: str) -> bool:
        """Claim a key.

        Args:
            key: Dedup key, e.g. "kassa:<payment id>:<order id>"

        Returns:
            True if the caller should proceed, False if the key is already held.
        """
        now = self._clock()
        self._sweep(now)
        if key in self._claimed:
            logger.debug("Dedup key already claimed: %s", key)
            return False
        self._claimed[key] = now
        return True

    def release(self, key: str) -> None:
        """Forget a key so a later delivery can claim it again. Idempotent."""
        self._claimed.pop(key, None)

    def _sweep(self, now: float) -> None:
        expired = [k for k, seen in self._claimed.items() if now - seen >= self._ttl]
        for key in expired:
            del self._claimed[key]
        if expired:
            logger.debug("Swept %d expired dedup keys", len(expired))

    def __len__(self) -> int:
        return len(self._claimed)
