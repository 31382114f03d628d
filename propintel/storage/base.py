"""
Keyed record store contract.

Every learning component keeps its knowledge in one collection of JSON
records addressed by a string key. Implementations share one re-entrant
lock per instance, so a sequence of get/set calls inside ``transaction()``
cannot interleave with another writer and is flushed once on exit.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, Optional

Record = dict[str, Any]


class KeyValueStore(ABC):
    """Abstract get/set/delete store over JSON-compatible records."""

    def __init__(self, name: str, key_field: str = "id"):
        self.name = name
        self.key_field = key_field
        self._lock = threading.RLock()
        self._depth = 0
        self._dirty = False

    # ── Backend hooks ───────────────────────────────────────────────────

    @abstractmethod
    def _records(self) -> dict[str, Record]:
        """Return the live key -> record map, loading it if needed."""

    @abstractmethod
    def _flush(self) -> None:
        """Persist the full record map."""

    # ── Public contract ─────────────────────────────────────────────────

    def get(self, key: str) -> Optional[Record]:
        with self._lock:
            record = self._records().get(key)
            return dict(record) if record is not None else None

    def set(self, key: str, record: Record) -> None:
        with self._lock:
            stored = dict(record)
            stored.setdefault(self.key_field, key)
            self._records()[key] = stored
            self._mark_dirty()

    def delete(self, key: str) -> bool:
        with self._lock:
            removed = self._records().pop(key, None) is not None
            if removed:
                self._mark_dirty()
            return removed

    def values(self) -> list[Record]:
        with self._lock:
            return [dict(r) for r in self._records().values()]

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._records().keys())

    def replace_all(self, records: list[Record]) -> None:
        """Swap the whole collection, keyed by ``key_field``."""
        with self._lock:
            live = self._records()
            live.clear()
            for record in records:
                live[str(record[self.key_field])] = dict(record)
            self._mark_dirty()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._records()

    @contextmanager
    def transaction(self) -> Iterator["KeyValueStore"]:
        """
        Group mutations under the store lock.

        Nested transactions join the outer one; the flush happens once,
        when the outermost block exits.
        """
        with self._lock:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
                if self._depth == 0 and self._dirty:
                    self._dirty = False
                    self._flush()

    def _mark_dirty(self) -> None:
        if self._depth > 0:
            self._dirty = True
        else:
            self._flush()
