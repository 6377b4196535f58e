"""Process-lifetime keyed caches.

Each component that memoizes results owns one ``KeyedCache`` injected at
construction, instead of reaching for a module-level singleton.

Usage:
    from chainpilot.core.cache import KeyedCache, address_key

    contracts: KeyedCache[ContractInfo] = KeyedCache(name="contracts", key_fn=address_key)

    contracts.put("0xABC...", info)
    contracts.get("0xabc...")          # same entry, keys are normalised
    contracts.invalidate("0xabc...")
    contracts.invalidate_pattern("0x00*")
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Any, Callable, Generic, Iterator, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


def address_key(key: str) -> str:
    """Normalise an address-like key (lowercase, stripped)."""
    return key.strip().lower()


class KeyedCache(Generic[V]):
    """In-memory key → value store with last-writer-wins semantics.

    Not thread-safe: callers run on a single asyncio loop.
    """

    def __init__(
        self,
        name: str = "cache",
        key_fn: Callable[[str], str] | None = None,
    ) -> None:
        self._name = name
        self._key_fn = key_fn or (lambda k: k)
        self._store: dict[str, V] = {}
        self._hits = 0
        self._misses = 0

    def _key(self, key: str) -> str:
        return self._key_fn(key)

    # ── Core operations ──────────────────────────────────────────────────────

    def get(self, key: str) -> V | None:
        """Retrieve cached value, returning None on miss."""
        value = self._store.get(self._key(key))
        if value is None:
            self._misses += 1
        else:
            self._hits += 1
        return value

    def put(self, key: str, value: V) -> None:
        """Store a value, replacing any previous entry."""
        self._store[self._key(key)] = value

    def invalidate(self, key: str) -> bool:
        """Delete a specific key. Returns True if something was removed."""
        return self._store.pop(self._key(key), None) is not None

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern. Returns count deleted."""
        matched = [k for k in self._store if fnmatch.fnmatch(k, self._key(pattern))]
        for k in matched:
            del self._store[k]
        return len(matched)

    def clear(self) -> None:
        """Drop every entry."""
        if self._store:
            logger.debug("Clearing %s cache (%d entries)", self._name, len(self._store))
        self._store.clear()

    # ── Views ────────────────────────────────────────────────────────────────

    def keys(self) -> list[str]:
        return list(self._store.keys())

    def values(self) -> list[V]:
        return list(self._store.values())

    def items(self) -> list[tuple[str, V]]:
        return list(self._store.items())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._key(key) in self._store

    def __len__(self) -> int:
        return len(self._store)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._store))

    # ── Stats ────────────────────────────────────────────────────────────────

    def stats(self) -> dict[str, Any]:
        """Return cache statistics."""
        return {
            "name": self._name,
            "size": len(self._store),
            "hits": self._hits,
            "misses": self._misses,
        }
