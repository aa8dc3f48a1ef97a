"""Per-collection index cache with build-once memoization.

One EndpointIndex per collection title, at most MAX_CACHED_INDEXES at a time
(the oldest build is evicted first). A per-title creation lock guarantees at
most one build when a warm-up thread and a query (or two queries) race on a
freshly loaded collection. A finished index is published with a single dict
assignment, so readers see either the previous index or the complete new one.

Every invalidation bumps ``epoch``. A caller that passes the epoch it saw
when scheduling a build gets the index back, but the cache does not keep it
if an invalidation happened in the meantime.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from src.apicontext.models import Collection
from src.utils.logger import get_logger

from .keyword import EndpointIndex, build_index, collection_fingerprint

MAX_CACHED_INDEXES = 5


class IndexCache:
    """Keyed cache of EndpointIndex objects, owned by the context service."""

    def __init__(
        self,
        builder: Callable[[Collection], EndpointIndex] = build_index,
        max_entries: int = MAX_CACHED_INDEXES,
    ) -> None:
        self._builder = builder
        self.max_entries = max_entries
        self._indexes: dict[str, EndpointIndex] = {}
        # Collection object each index was built from (identity fast path)
        self._sources: dict[str, Collection] = {}
        self._creation_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._epoch = 0
        self.logger = get_logger("IndexCache")

    @property
    def epoch(self) -> int:
        return self._epoch

    def _get_creation_lock(self, title: str) -> threading.Lock:
        """Get or create a per-title creation lock."""
        with self._locks_guard:
            lock = self._creation_locks.get(title)
            if lock is None:
                lock = threading.Lock()
                self._creation_locks[title] = lock
            return lock

    def _release_creation_lock(self, title: str) -> None:
        """Forget the lock of a title that no longer has a cached index."""
        with self._locks_guard:
            if title not in self._indexes:
                self._creation_locks.pop(title, None)

    def _lookup(self, collection: Collection) -> Optional[EndpointIndex]:
        title = collection.title
        index = self._indexes.get(title)
        if index is None:
            return None
        if self._sources.get(title) is collection:
            return index
        if index.fingerprint == collection_fingerprint(collection):
            return index
        return None

    def _evict_oldest(self) -> None:
        oldest = min(self._indexes, key=lambda t: self._indexes[t].built_at)
        self._indexes.pop(oldest, None)
        self._sources.pop(oldest, None)
        self._release_creation_lock(oldest)
        self.logger.debug(f"♻️ Evicted index for '{oldest}' (cache full)")

    def get_or_build(self, collection: Collection, epoch: Optional[int] = None) -> EndpointIndex:
        """Return the cached index for this collection, building it on first use.

        A collection whose content no longer matches the cached index (same
        title, replaced content) triggers a rebuild. With ``epoch`` set, a
        build is only cached if no invalidation happened since that epoch.
        """
        # Fast path: already built (no lock needed)
        index = self._lookup(collection)
        if index is not None:
            return index

        title = collection.title
        # Slow path: acquire per-title lock before building
        with self._get_creation_lock(title):
            # Re-check after acquiring lock (another thread may have built it)
            index = self._lookup(collection)
            if index is not None:
                return index

            stale = title in self._indexes
            index = self._builder(collection)
            if epoch is not None and epoch != self._epoch:
                self.logger.debug(f"🗑️ Dropped index for '{title}' built across an invalidation")
                return index

            if not stale and len(self._indexes) >= self.max_entries:
                self._evict_oldest()
            self._sources[title] = collection
            self._indexes[title] = index
            if stale:
                self.logger.info(f"🔄 Rebuilt stale index for '{title}'")
            return index

    def get(self, title: str) -> Optional[EndpointIndex]:
        return self._indexes.get(title)

    def invalidate(self, title: str) -> bool:
        """Drop the cached index for one collection title. Returns True if one existed."""
        with self._get_creation_lock(title):
            with self._locks_guard:
                self._epoch += 1
            self._sources.pop(title, None)
            removed = self._indexes.pop(title, None) is not None
        self._release_creation_lock(title)
        if removed:
            self.logger.debug(f"🗑️ Invalidated index for '{title}'")
        return removed

    def __contains__(self, title: object) -> bool:
        return title in self._indexes

    def __len__(self) -> int:
        return len(self._indexes)
