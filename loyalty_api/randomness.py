"""
Random sources for the proof bonus draw.
"""

import secrets
from typing import Protocol


class RandomSource(Protocol):
    def next(self, low: int, high: int) -> int:
        """Return an integer in [low, high] (inclusive)."""
        ...


class SecureRandomSource:
    """Cryptographically secure draw backed by `secrets`."""

    def next(self, low: int, high: int) -> int:
        if high < low:
            raise ValueError(f"Empty range [{low}, {high}]")
        return low + secrets.randbelow(high - low + 1)
