"""
Cache Store

TTL-aware cache over the durable key-value store. Entries live under
``cache:<logical-key>`` as JSON text ``{"saved_at": <epoch ms>, "payload": ...}``.
Staleness is decided per read by the caller's ``max_age_ms``; the store itself
only evicts when a bound is configured or a sweep is run.
"""

import heapq
import itertools
import json
import logging
import math
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from farmdata.core.exceptions import StorageError
from farmdata.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"


class _NotFound:
    """Sentinel for a cache miss, distinct from a cached ``None``"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()


def now_ms() -> int:
    return int(time.time() * 1000)


class CacheStore:
    """Read/write/clear over namespaced cache entries"""

    def __init__(
        self,
        kv: KeyValueStore,
        max_entries: Optional[int] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.kv = kv
        self.max_entries = max_entries
        self.clock = clock
        # storage_key -> (saved_at, write sequence); loaded on the first bounded write
        self._index: Optional[Dict[str, Tuple[float, int]]] = None
        self._sequence = itertools.count(1)

    @staticmethod
    def storage_key(key: str) -> str:
        return f"{CACHE_PREFIX}{key}"

    def _load(self, storage_key: str) -> Optional[Dict[str, Any]]:
        """Parse a stored envelope; None when missing or malformed"""
        try:
            raw = self.kv.get(storage_key)
        except StorageError as e:
            logger.warning(f"Cache read failed for {storage_key}: {e}")
            return None
        if raw is None:
            return None
        try:
            entry = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring corrupt cache entry {storage_key}")
            return None
        if not isinstance(entry, dict) or "payload" not in entry:
            logger.warning(f"Ignoring malformed cache entry {storage_key}")
            return None
        saved_at = entry.get("saved_at")
        if isinstance(saved_at, bool) or not isinstance(saved_at, (int, float)):
            logger.warning(f"Ignoring cache entry without saved_at {storage_key}")
            return None
        return entry

    def read(self, key: str, max_age_ms: float = math.inf) -> Any:
        """
        Return the cached payload, or NOT_FOUND when the entry is absent,
        unparseable, or older than ``max_age_ms``.
        """
        entry = self._load(self.storage_key(key))
        if entry is None:
            return NOT_FOUND
        if self.clock() - entry["saved_at"] > max_age_ms:
            return NOT_FOUND
        return entry["payload"]

    def saved_at(self, key: str) -> Optional[int]:
        entry = self._load(self.storage_key(key))
        return entry["saved_at"] if entry else None

    def write(self, key: str, payload: Any) -> None:
        """Overwrite the entry stamped with the current time. Never raises."""
        saved_at = self.clock()
        try:
            raw = json.dumps({"saved_at": saved_at, "payload": payload}, default=str)
        except (TypeError, ValueError) as e:
            logger.warning(f"Payload for {key} is not serialisable, skipping cache write: {e}")
            return

        storage_key = self.storage_key(key)
        try:
            self.kv.set(storage_key, raw)
        except StorageError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return

        if self.max_entries is not None:
            self._enforce_bound(keep=storage_key, saved_at=saved_at)

    def clear(self, prefix_or_key: Optional[str] = None) -> int:
        """
        Remove one entry, every entry under ``<prefix>:``, or (with no argument)
        the whole cache namespace. Returns the number of removed entries.
        """
        try:
            if prefix_or_key is None:
                targets = self.kv.keys(CACHE_PREFIX)
            else:
                exact = self.storage_key(prefix_or_key)
                namespace = exact if exact.endswith(":") else f"{exact}:"
                targets = [k for k in self.kv.keys(exact) if k == exact or k.startswith(namespace)]
            for storage_key in targets:
                self.kv.remove(storage_key)
                if self._index is not None:
                    self._index.pop(storage_key, None)
        except StorageError as e:
            logger.warning(f"Cache clear failed for {prefix_or_key!r}: {e}")
            return 0

        logger.info(f"Cleared {len(targets)} cache entries ({prefix_or_key or 'all'})")
        return len(targets)

    def _entries(self) -> Tuple[List[Tuple[str, int]], List[str]]:
        """(storage_key, saved_at) for valid entries, plus corrupt keys"""
        valid, corrupt = [], []
        for storage_key in self.kv.keys(CACHE_PREFIX):
            entry = self._load(storage_key)
            if entry is None:
                corrupt.append(storage_key)
            else:
                valid.append((storage_key, entry["saved_at"]))
        return valid, corrupt

    def _load_index(self) -> Dict[str, Tuple[float, int]]:
        """Scan storage once; later writes, clears and sweeps keep the index current"""
        if self._index is None:
            valid, _ = self._entries()
            self._index = {storage_key: (saved_at, 0) for storage_key, saved_at in valid}
            logger.debug(f"Loaded cache index with {len(self._index)} entries")
        return self._index

    def _enforce_bound(self, keep: Optional[str] = None, saved_at: Optional[float] = None) -> int:
        """
        Evict the oldest entries beyond ``max_entries``. Ties on ``saved_at`` go
        to the earliest write; ``keep`` (the entry just written) is never evicted.
        """
        try:
            index = self._load_index()
            if keep is not None:
                index[keep] = (saved_at if saved_at is not None else self.clock(), next(self._sequence))
            overflow = len(index) - self.max_entries
            if overflow <= 0:
                return 0
            victims = heapq.nsmallest(
                overflow,
                (storage_key for storage_key in index if storage_key != keep),
                key=lambda storage_key: (index[storage_key], storage_key),
            )
            for storage_key in victims:
                self.kv.remove(storage_key)
                index.pop(storage_key, None)
        except StorageError as e:
            logger.warning(f"Cache eviction failed: {e}")
            return 0
        logger.info(f"Evicted {len(victims)} oldest cache entries (bound {self.max_entries})")
        return len(victims)

    def sweep(self, max_age_ms: float) -> int:
        """Drop expired and corrupt entries, then apply the entry bound"""
        removed = 0
        kept: Dict[str, float] = {}
        try:
            valid, corrupt = self._entries()
            now = self.clock()
            for storage_key in corrupt:
                self.kv.remove(storage_key)
                removed += 1
            for storage_key, saved_at in valid:
                if now - saved_at > max_age_ms:
                    self.kv.remove(storage_key)
                    removed += 1
                else:
                    kept[storage_key] = saved_at
        except StorageError as e:
            logger.warning(f"Cache sweep failed: {e}")
            self._index = None
            return removed

        # Resync with storage; other processes may share it
        previous = self._index or {}
        self._index = {
            storage_key: (saved_at, previous.get(storage_key, (saved_at, 0))[1])
            for storage_key, saved_at in kept.items()
        }

        if self.max_entries is not None:
            removed += self._enforce_bound()

        logger.info(f"Cache sweep removed {removed} entries")
        return removed

    def stats(self) -> Dict[str, Any]:
        valid, corrupt = self._entries()
        saved = [saved_at for _, saved_at in valid]
        return {
            "entries": len(valid),
            "corrupt": len(corrupt),
            "oldest_saved_at": min(saved) if saved else None,
            "newest_saved_at": max(saved) if saved else None,
            "max_entries": self.max_entries,
        }
