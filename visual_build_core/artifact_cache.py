"""
Generic key -> value artifact cache with optional size bound.

Values are deep-copied on the way in and on the way out, so neither the
caller that stored a value nor the caller that read it can change what the
cache holds.
"""

import copy
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Optional, Union

from .exceptions import MalformedInputError


class EvictionPolicy(Enum):
    """Which entry a full bounded cache drops."""
    FIFO = "fifo"   # oldest inserted
    LRU = "lru"     # least recently read or written


def resolve_eviction_policy(value: Union[str, EvictionPolicy, None]) -> EvictionPolicy:
    """Resolve a policy string to enum, defaulting to FIFO."""
    if isinstance(value, EvictionPolicy):
        return value
    try:
        return EvictionPolicy((value or 'fifo').lower().strip())
    except ValueError:
        raise MalformedInputError(f"Unknown eviction policy: {value}")


@dataclass
class CacheStats:
    """Hit/miss counters and size of one cache."""
    name: str
    hits: int = 0
    misses: int = 0
    size: int = 0
    max_size: Optional[int] = None
    evictions: int = 0

    @property
    def total(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> Optional[float]:
        """Fraction of lookups that hit, None before the first lookup."""
        if self.total == 0:
            return None
        return self.hits / self.total

    def to_dict(self) -> Dict[str, Any]:
        rate = self.hit_rate
        return {
            'name': self.name,
            'hits': self.hits,
            'misses': self.misses,
            'total': self.total,
            'hit_rate': rate,
            'hit_rate_display': f"{rate * 100:.1f}%" if rate is not None else 'N/A',
            'cache_size': self.size,
            'max_size': self.max_size,
            'evictions': self.evictions,
        }


class ArtifactCache:
    """A named, optionally bounded artifact store."""

    def __init__(self, name: str, max_size: Optional[int] = None,
                 policy: Union[str, EvictionPolicy] = EvictionPolicy.FIFO):
        if max_size is not None and (not isinstance(max_size, int) or max_size < 1):
            raise MalformedInputError(f"Cache '{name}' max_size must be a positive integer or None")
        self.name = name
        self.max_size = max_size
        self.policy = resolve_eviction_policy(policy)
        self.logger = logging.getLogger(__name__)
        self._entries: 'OrderedDict[Hashable, Any]' = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def contains(self, key: Hashable) -> bool:
        """Membership test that does not touch the hit/miss counters."""
        return key in self._entries

    def keys(self) -> List[Hashable]:
        return list(self._entries.keys())

    def get(self, key: Hashable) -> Optional[Any]:
        if key in self._entries:
            self._hits += 1
            if self.policy == EvictionPolicy.LRU:
                self._entries.move_to_end(key)
            self.logger.debug(f"[{self.name}] cache HIT: {key}")
            return copy.deepcopy(self._entries[key])

        self._misses += 1
        self.logger.debug(f"[{self.name}] cache MISS: {key}")
        return None

    def put(self, key: Hashable, value: Any):
        if key in self._entries:
            self._entries[key] = copy.deepcopy(value)
            if self.policy == EvictionPolicy.LRU:
                self._entries.move_to_end(key)
            return

        if self.max_size is not None and len(self._entries) >= self.max_size:
            evicted_key, _ = self._entries.popitem(last=False)
            self._evictions += 1
            self.logger.debug(f"[{self.name}] evicted entry: {evicted_key}")

        self._entries[key] = copy.deepcopy(value)
        self.logger.debug(f"[{self.name}] cached entry: {key}")

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Read-through lookup: on a miss, load, store and return the value."""
        if key in self._entries:
            return self.get(key)
        self._misses += 1
        self.logger.debug(f"[{self.name}] cache MISS, loading: {key}")
        loaded = loader()
        self.put(key, loaded)
        return copy.deepcopy(loaded)

    def invalidate(self, key: Hashable) -> bool:
        if key not in self._entries:
            return False
        del self._entries[key]
        self.logger.info(f"[{self.name}] invalidated entry: {key}")
        return True

    def invalidate_all(self) -> int:
        size = len(self._entries)
        self._entries.clear()
        self.logger.info(f"[{self.name}] invalidated cache ({size} entries)")
        return size

    def stats(self) -> CacheStats:
        return CacheStats(
            name=self.name,
            hits=self._hits,
            misses=self._misses,
            size=len(self._entries),
            max_size=self.max_size,
            evictions=self._evictions,
        )

    def reset_stats(self):
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:
        bound = self.max_size if self.max_size is not None else 'unbounded'
        return (f"ArtifactCache(name={self.name!r}, size={len(self._entries)}, "
                f"max_size={bound}, policy={self.policy.value})")
