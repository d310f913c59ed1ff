"""Concrete implementation of the two-level Caching Service.

Manages L1 (in-memory) and L2 (diskcache) caches with configurable TTLs.
L1 uses a sliding expiry on access; L2 entries expire at a fixed time.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import diskcache as dc

from graphguard.domain.interfaces.cache import CacheService
from graphguard.domain.models.common import CacheKey, CACHE_LEVELS

logger = logging.getLogger(__name__)

DEFAULT_L1_MAX_ITEMS = 256
DEFAULT_L1_TTL_SECONDS = 5 * 60
DEFAULT_L2_TTL_SECONDS = 24 * 60 * 60
DEFAULT_L2_CACHE_DIR = Path.home() / ".graphguard" / "cache"


@dataclass
class CacheEntry:
    """Internal representation of an L1 cache entry with expiry."""
    value: Any
    expiry_time: float  # monotonic time when the entry expires


class CachingServiceImpl(CacheService):
    """Two-level cache implementation (L1 Memory, L2 diskcache)."""

    def __init__(
        self,
        l1_max_items: int = DEFAULT_L1_MAX_ITEMS,
        l1_ttl: int = DEFAULT_L1_TTL_SECONDS,
        l2_ttl: int = DEFAULT_L2_TTL_SECONDS,
        l2_dir: Path = DEFAULT_L2_CACHE_DIR,
    ):
        self.l1_cache: Dict[CacheKey, CacheEntry] = {}
        self.l1_max_items = l1_max_items
        self.l1_ttl = l1_ttl

        self.l2_dir = Path(l2_dir)
        self.l2_ttl = l2_ttl
        self.l2_dir.mkdir(parents=True, exist_ok=True)
        self.disk_cache = dc.Cache(str(self.l2_dir), timeout=1)

        logger.info(f"CachingService initialized. L1(ttl={l1_ttl}s, max={l1_max_items}), L2(dir={self.l2_dir}, ttl={l2_ttl}s)")

    @staticmethod
    def _check_level(level: str) -> None:
        if level not in CACHE_LEVELS:
            raise ValueError(f"Invalid cache level '{level}'. Choose one of {', '.join(CACHE_LEVELS)}.")

    def _prune_l1(self) -> None:
        """Removes expired items from L1 and evicts the oldest when over the limit."""
        now = time.monotonic()
        expired_keys = [k for k, v in self.l1_cache.items() if now > v.expiry_time]
        for k in expired_keys:
            del self.l1_cache[k]

        # dicts keep insertion order; hits re-insert, so the first key is least recently used
        while len(self.l1_cache) > self.l1_max_items:
            oldest_key = next(iter(self.l1_cache))
            del self.l1_cache[oldest_key]

    # --- CacheService Interface Implementation ---

    async def get(self, key: CacheKey, level: str = 'all') -> Optional[Any]:
        """Retrieves an item from the specified cache level(s)."""
        self._check_level(level)

        if level in ('l1', 'all'):
            self._prune_l1()
            l1_entry = self.l1_cache.pop(key, None)
            if l1_entry is not None:
                # Sliding window: re-insert with a fresh expiry
                l1_entry.expiry_time = time.monotonic() + self.l1_ttl
                self.l1_cache[key] = l1_entry
                logger.debug(f"L1 cache hit for key: {key}")
                return l1_entry.value

        if level in ('l2', 'all'):
            value = self.disk_cache.get(key, default=None)
            if value is not None:
                logger.debug(f"L2 cache hit for key: {key}")
                if level == 'all':
                    await self.set(key, value, level='l1')
                return value

        logger.debug(f"Cache miss for key: {key} across checked levels: {level}")
        return None

    async def set(
        self, key: CacheKey, value: Any, ttl: Optional[int] = None, level: str = 'all'
    ) -> None:
        """Stores an item in the specified cache level(s)."""
        self._check_level(level)

        if level in ('l1', 'all'):
            l1_ttl = ttl if ttl is not None else self.l1_ttl
            self.l1_cache.pop(key, None)
            self.l1_cache[key] = CacheEntry(value=value, expiry_time=time.monotonic() + l1_ttl)
            self._prune_l1()
            logger.debug(f"Stored item in L1 cache: key={key}")

        if level in ('l2', 'all'):
            l2_ttl = ttl if ttl is not None else self.l2_ttl
            self.disk_cache.set(key, value, expire=l2_ttl)
            logger.debug(f"Stored item in L2 cache: key={key}")

    async def delete(self, key: CacheKey, level: str = 'all') -> None:
        """Deletes an item from the specified cache level(s)."""
        self._check_level(level)
        if level in ('l1', 'all'):
            if self.l1_cache.pop(key, None) is not None:
                logger.debug(f"Deleted item from L1 cache: key={key}")
        if level in ('l2', 'all'):
            if self.disk_cache.delete(key):
                logger.debug(f"Deleted item from L2 cache: key={key}")

    async def clear(self, level: str = 'all') -> None:
        """Clears all items from the specified cache level(s)."""
        self._check_level(level)
        if level in ('l1', 'all'):
            self.l1_cache.clear()
            logger.info("Cleared L1 (in-memory) cache.")
        if level in ('l2', 'all'):
            removed = self.disk_cache.clear()
            logger.info(f"Cleared L2 (disk) cache at {self.l2_dir}: {removed} entries removed.")

    def close(self) -> None:
        self.disk_cache.close()
