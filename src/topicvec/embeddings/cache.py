"""Bounded LRU cache for embedding vectors."""

import hashlib
import logging
import re
import threading
from collections import OrderedDict

from ..models import EmbeddingVector

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Collapse whitespace runs and strip the ends."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def cache_key(text: str) -> str:
    """SHA256 of the normalized text."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


class EmbeddingCache:
    """Capacity-bounded key -> vector mapping with least-recently-used eviction.

    Entries are kept in an ``OrderedDict`` whose order is the access order,
    oldest first. A single lock guards every operation because a hit reorders
    the mapping.
    """

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError(f"cache capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._entries: OrderedDict[str, tuple[float, ...]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> EmbeddingVector | None:
        """Return a copy of the cached vector, or None.

        A miss leaves the entries and their order untouched. ``hits`` and
        ``misses`` are diagnostic counters only; nothing reads them to make
        a decision.
        """
        with self._lock:
            vector = self._entries.get(key)
            if vector is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return list(vector)

    def put(self, key: str, vector: EmbeddingVector) -> None:
        frozen = tuple(vector)
        with self._lock:
            if key in self._entries:
                self._entries[key] = frozen
                self._entries.move_to_end(key)
                return
            if len(self._entries) >= self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted[:12])
            self._entries[key] = frozen

    def stats(self) -> tuple[int, int]:
        """Return (size, capacity)."""
        with self._lock:
            return len(self._entries), self.capacity

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
