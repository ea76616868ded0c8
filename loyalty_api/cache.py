"""
Tier mirror cache.

A best-effort projection of each user's tier under `user:{id}:tier`. The
ledger stays authoritative; a failed write is logged and dropped.
"""

import threading
from typing import Optional, Protocol

import structlog

logger = structlog.get_logger()


def tier_key(user_id: str) -> str:
    return f"user:{user_id}:tier"


class TierCache(Protocol):
    async def set_tier_mirror(self, user_id: str, tier: str) -> None: ...


class InMemoryTierCache:
    """Process-local key-value mirror."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    async def set_tier_mirror(self, user_id: str, tier: str) -> None:
        try:
            self.set(tier_key(user_id), tier)
        except Exception as e:
            logger.error("cache_write_failed", user_id=user_id, error=str(e))
