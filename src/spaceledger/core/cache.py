# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Write-through cached repository over the durable store.

Every in-memory index in spaceledger goes through :class:`CachedRepository`
so the same discipline applies everywhere:

- Writes call the durable store first and only touch memory once it
  succeeded; a failed write leaves memory untouched.
- Reads hit memory first. A miss loads from the store and repopulates the
  index before returning.
- Memory is bounded with LRU eviction; an evicted entry is just a cold read.

Mutations and miss-loads for one repository are serialized on a single
re-entrant lock. Contention is expected to be low (one admin or user acting
on their own records), and loading under the lock prevents a concurrent
revoke from being undone by a stale repopulation.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar

from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

# Default max size when neither caller nor config sets one
DEFAULT_CACHE_MAX_SIZE = 10000

K = TypeVar("K")
V = TypeVar("V")
R = TypeVar("R")


def get_cache_max_size() -> int:
    """Get the configured cache max size from config."""
    from .config import get_config

    try:
        return get_config().cache_max_size
    except Exception:
        return DEFAULT_CACHE_MAX_SIZE


class CachedRepository(Generic[K, V]):
    """Bounded LRU index kept coherent with a durable store.

    The repository does not know how to talk to the store; callers pass the
    persistence step as a callable so each entity keeps its own SQL.

    Example:
        sessions = CachedRepository[str, Session]("sessions")
        sessions.write(session.session_id, session, lambda: backend.insert_session(session))
        sessions.read(session_id, backend.get_session)
    """

    def __init__(self, name: str, max_size: int | None = None) -> None:
        self.name = name
        self._max_size = max_size if max_size is not None else get_cache_max_size()
        self._index: OrderedDict[K, V] = OrderedDict()
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """Lock serializing mutations on this repository."""
        return self._lock

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._index)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._index

    # ------------------------------------------------------------------
    # Memory-only operations
    # ------------------------------------------------------------------

    def peek(self, key: K) -> V | None:
        """Return the cached value without touching the store or LRU order."""
        with self._lock:
            return self._index.get(key)

    def put(self, key: K, value: V) -> None:
        """Place a value in memory. Callers must already have persisted it."""
        with self._lock:
            self._index[key] = value
            self._index.move_to_end(key)
            while len(self._index) > self._max_size:
                self._index.popitem(last=False)
                logger.debug("Evicted least recently used entry from %s index", self.name)

    def evict(self, key: K) -> V | None:
        """Drop a key from memory only."""
        with self._lock:
            return self._index.pop(key, None)

    def evict_where(self, predicate: Callable[[K, V], bool]) -> int:
        """Drop every entry matching ``predicate``; returns how many."""
        with self._lock:
            doomed = [k for k, v in self._index.items() if predicate(k, v)]
            for k in doomed:
                del self._index[k]
            return len(doomed)

    def replace_where(self, transform: Callable[[K, V], V | None]) -> int:
        """Rewrite cached values in place; a ``None`` result evicts the key.

        Returns the number of keys whose value changed or was evicted.
        """
        changed = 0
        with self._lock:
            for k in list(self._index.keys()):
                old = self._index[k]
                new = transform(k, old)
                if new is None:
                    del self._index[k]
                    changed += 1
                elif new is not old:
                    self._index[k] = new
                    changed += 1
        return changed

    def warm(self, items: Iterable[tuple[K, V]]) -> int:
        """Bulk-load entries read from the store at startup."""
        count = 0
        with self._lock:
            for key, value in items:
                self.put(key, value)
                count += 1
        return count

    def clear(self) -> None:
        with self._lock:
            self._index.clear()

    def snapshot(self) -> list[tuple[K, V]]:
        """Copy of the current entries, oldest first."""
        with self._lock:
            return list(self._index.items())

    # ------------------------------------------------------------------
    # Store-coherent operations
    # ------------------------------------------------------------------

    def read(
        self,
        key: K,
        load: Callable[[K], V | None],
        *,
        degrade: bool = True,
    ) -> V | None:
        """Memory-first read with read-repair on miss.

        Args:
            key: Key to read.
            load: Store lookup for a miss; returns None when absent.
            degrade: Log and return None on a store failure instead of raising.

        Returns:
            The cached or loaded value, or None.
        """
        with self._lock:
            if key in self._index:
                self._index.move_to_end(key)
                return self._index[key]
            try:
                value = load(key)
            except PersistenceError:
                if not degrade:
                    raise
                logger.exception("Store read failed for %s index; serving from memory", self.name)
                return None
            if value is not None:
                self.put(key, value)
            return value

    def write(self, key: K, value: V, persist: Callable[[], R]) -> R:
        """Persist, then cache ``value`` under ``key``."""
        with self._lock:
            result = persist()
            self.put(key, value)
            return result

    def update(self, key: K, persist: Callable[[], R], apply: Callable[[V], V | None]) -> R:
        """Persist a change, then apply it to the cached value if one exists.

        A key that is not cached stays cold: the next read loads the full
        durable state rather than a partial in-memory guess.
        """
        with self._lock:
            result = persist()
            if key in self._index:
                new = apply(self._index[key])
                if new is None:
                    del self._index[key]
                else:
                    self._index[key] = new
            return result

    def remove(self, key: K, persist: Callable[[], R]) -> R:
        """Persist a deletion, then drop the key from memory."""
        with self._lock:
            result = persist()
            self._index.pop(key, None)
            return result

    def stats(self) -> dict[str, Any]:
        """Return cache statistics."""
        with self._lock:
            return {
                "name": self.name,
                "size": len(self._index),
                "max_size": self._max_size,
                "utilization": len(self._index) / self._max_size if self._max_size > 0 else 0,
            }
