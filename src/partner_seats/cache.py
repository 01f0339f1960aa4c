"""Shared query cache for the partner console.

Screens that list stored cards, batches or seat balances read through this
cache; mutations invalidate keys or key prefixes after they succeed.
Values are stored as JSON strings so cached objects are never shared
mutable state between screens.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

CREDENTIALS_KEY = "payment-methods"
BATCHES_PREFIX = "batches"
SEATS_PREFIX = "seats"


def pricing_key(seat_count: int, sessions_per_day: int, months: int) -> str:
    return f"pricing:{seat_count}:{sessions_per_day}:{months}"


class CacheBackend(ABC):
    """Abstract cache backend interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a value from cache."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set a value in cache with optional TTL in seconds."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key from cache."""
        pass

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix. Returns the count removed."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Drop every cached entry."""
        pass


class InMemoryCache(CacheBackend):
    """In-memory cache with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._store: Dict[str, tuple[str, Optional[float]]] = {}  # key -> (value, expires_at)
        self._clock = clock

    async def get(self, key: str) -> Optional[str]:
        if key not in self._store:
            return None
        value, expires_at = self._store[key]
        if expires_at is not None and self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        expires_at = self._clock() + ttl if ttl else None
        self._store[key] = (value, expires_at)
        return True

    async def delete(self, key: str) -> bool:
        if key in self._store:
            del self._store[key]
            logger.debug(f"Invalidated cache key {key}")
            return True
        return False

    async def delete_prefix(self, prefix: str) -> int:
        keys = [key for key in self._store if key == prefix or key.startswith(f"{prefix}:")]
        for key in keys:
            del self._store[key]
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache keys under {prefix}")
        return len(keys)

    async def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
