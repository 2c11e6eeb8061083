"""
Bounded keyed state for control-flow steps.

Throttle, circuit breaker and cache each keep one record per
``subject.operation`` key for the lifetime of the process. Left alone these
maps grow with every distinct key, so ``KeyedStore`` caps them with LRU
eviction: a key that is exercised within its window/TTL is always among the
most recently used and keeps its record, while long-idle keys fall out.

Manifesto:
    - **Bounded:** ``max_keys`` caps memory, least-recently-used goes first
    - **Atomic bookkeeping:** one ``threading.RLock`` per store
    - **Never across awaits:** callers hold ``store.locked()`` only for
      synchronous read-modify-write sections

Architecture:
    ::

        KeyedStore[V]
        ├── get(key) → V | None        (touches LRU order)
        ├── set(key, value)            (evicts LRU at capacity)
        ├── get_or_create(key, factory)
        ├── pop(key) / clear()
        └── locked()                   (compound updates)

Examples:
    >>> store = KeyedStore("throttle", max_keys=2)
    >>> store.set("post.create", 1.0)
    >>> store.set("post.update", 2.0)
    >>> store.get("post.create")
    1.0
    >>> store.set("post.delete", 3.0)   # evicts post.update (LRU)
    >>> "post.update" in store
    False

Tags:
    cache, lru, keyed-state, thread-safe, modelchain

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Generic, TypeVar

from modelchain.core.logging import get_logger

V = TypeVar("V")

logger = get_logger(__name__)


class KeyedStore(Generic[V]):
    """Bounded in-memory keyed map with LRU eviction.

    Attributes:
        name: Store name, used in log events
        max_keys: Maximum number of keys before LRU eviction
    """

    def __init__(self, name: str, *, max_keys: int = 10_000):
        self.name = name
        self.max_keys = max_keys
        self._entries: OrderedDict[str, V] = OrderedDict()
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator[KeyedStore[V]]:
        """Hold the store lock for a compound read-modify-write."""
        with self._lock:
            yield self

    def get(self, key: str) -> V | None:
        """Retrieve a record and mark it most recently used."""
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def set(self, key: str, value: V) -> None:
        """Store a record, evicting the least recently used key at capacity."""
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self.max_keys:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("keyed_state_evicted", store=self.name, key=evicted)
            self._entries[key] = value

    def get_or_create(self, key: str, factory: Callable[[], V]) -> V:
        """Return the record for ``key``, creating it on first use."""
        with self._lock:
            existing = self.get(key)
            if existing is not None:
                return existing
            created = factory()
            self.set(key, created)
            return created

    def pop(self, key: str) -> V | None:
        """Remove and return a record (None if absent)."""
        with self._lock:
            return self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove all records."""
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["KeyedStore"]
