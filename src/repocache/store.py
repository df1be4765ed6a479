#!/usr/bin/env python3
"""
Repository Cache Store
In-memory collection caches partitioned by scope key

Implements:
- lookup(scope) -> Collection | None
- replace(scope, entry) -> prior Collection | None
- insert(scope, item) -> bool
- remove(scope, key) -> removed Item | None
- find(scope, key) / find_across_all_scopes(key) -> Item | None
- flush()
- get_stats() -> {hits, misses, entries, items, scans}

Every entry is kept sorted by the compare key and unique by item key.
"""

import functools
import logging
import time
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from .key_generator import keys_match
from .pending import Collection, Item

logger = logging.getLogger(__name__)


class CacheStore:
    """
    Scope key -> Collection mapping owned by a single repository.

    Design principles:
    - At most one entry per scope; replace() swaps atomically
    - Mutations re-sort the affected entry
    - Disabled stores keep nothing and answer every lookup with a miss
    """

    def __init__(self, item_key_name: str = None, compare_key_name: str = None,
                 enabled: bool = True, name: str = "repository"):
        self.item_key_name = item_key_name
        self.compare_key_name = compare_key_name
        self.enabled = enabled
        self.name = name
        self._entries: Dict[str, Collection] = {}

        self.stats = {
            "hits": 0,
            "misses": 0,
            "scans": 0,
            "start_time": time.time(),
        }

    def lookup(self, scope: Optional[str]) -> Optional[Collection]:
        if not self.enabled or scope is None:
            return None
        return self._entries.get(scope)

    def replace(self, scope: Optional[str], entry: Collection) -> Optional[Collection]:
        """Install ``entry`` for ``scope`` and return whatever it displaced."""
        if not self.enabled or scope is None:
            return None
        prior = self._entries.get(scope)
        self._entries[scope] = entry
        return prior

    def restore(self, scope: str, entry: Collection, prior: Optional[Collection]) -> None:
        """Undo a replace() if ``entry`` is still the one installed."""
        if self._entries.get(scope) is not entry:
            return
        if prior is None:
            del self._entries[scope]
        else:
            self._entries[scope] = prior

    def insert(self, scope: Optional[str], item: Mapping[str, Any]) -> bool:
        """
        Add ``item`` to its scope's entry unless a record with the same key is
        already there. A scope without an entry gets a non-authoritative one,
        which never satisfies a full-collection request.
        """
        if not self.enabled or scope is None:
            return False

        entry = self._entries.get(scope)
        if entry is None:
            entry = Collection()
            entry.resolved = True
            self._entries[scope] = entry
        elif self.item_key_name and self.find_in(entry, item.get(self.item_key_name)) is not None:
            return False

        entry.append(item)
        self.sort(entry)
        return True

    def remove(self, scope: Optional[str], key: Any) -> Optional[Item]:
        """Remove the first record matching ``key``; all scopes are searched when scope is undefined."""
        if not self.enabled:
            return None

        if scope is None:
            candidates = list(self._entries.values())
        else:
            entry = self._entries.get(scope)
            candidates = [entry] if entry is not None else []

        for entry in candidates:
            found = self.find_in(entry, key)
            if found is not None:
                del entry[entry.index_of(found)]
                return found
        return None

    def find(self, scope: Optional[str], key: Any) -> Optional[Item]:
        entry = self.lookup(scope)
        found = self.find_in(entry, key) if entry is not None else None
        self._count(found)
        return found

    def find_across_all_scopes(self, key: Any) -> Optional[Item]:
        """
        Linear scan over every cached entry.

        Used when the caller's params do not name the scope the item lives
        in. Cost is proportional to the total number of cached records.
        """
        if not self.enabled:
            return None
        self.stats["scans"] += 1
        found = None
        for _, entry in self.items():
            found = self.find_in(entry, key)
            if found is not None:
                break
        self._count(found)
        return found

    def flush(self) -> None:
        cleared = len(self._entries)
        self._entries = {}
        logger.info(f"{self.name}: flushed {cleared} cached collections")

    def items(self) -> Iterator[Tuple[str, Collection]]:
        return iter(list(self._entries.items()))

    def as_dict(self) -> Dict[str, Collection]:
        return dict(self._entries)

    def sort(self, entry: Collection) -> None:
        """Sort in place by the compare key; text ignores case, other values sort descending."""
        name = self.compare_key_name
        invalid = []

        def compare(a: Item, b: Item) -> int:
            a_val = a.get(name)
            b_val = b.get(name)
            if a_val is None or b_val is None:
                invalid.append(True)
                return 0
            if isinstance(a_val, str) or isinstance(b_val, str):
                a_val = str(a_val).lower()
                b_val = str(b_val).lower()
                return (a_val > b_val) - (a_val < b_val)
            try:
                if a_val < b_val:
                    return 1
                if a_val > b_val:
                    return -1
            except TypeError:
                invalid.append(True)
            return 0

        entry.sort(key=functools.cmp_to_key(compare))
        if invalid:
            logger.error(f'compareKeyName of "{name}" is invalid for repo {self.name}')

    def get_stats(self) -> Dict[str, Any]:
        total = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / total * 100) if total > 0 else 0
        return {
            "hits": self.stats["hits"],
            "misses": self.stats["misses"],
            "hit_rate_percent": round(hit_rate, 1),
            "scans": self.stats["scans"],
            "entries": len(self._entries),
            "items": sum(len(e) for e in self._entries.values()),
            "uptime_seconds": int(time.time() - self.stats["start_time"]),
        }

    def find_in(self, entry: Collection, key: Any) -> Optional[Item]:
        """First record of ``entry`` whose item key matches ``key``; no stats."""
        if not self.item_key_name:
            return None
        for item in entry:
            if keys_match(item.get(self.item_key_name), key):
                return item
        return None

    def _count(self, found: Optional[Item]) -> None:
        if found is not None:
            self.stats["hits"] += 1
        else:
            self.stats["misses"] += 1
