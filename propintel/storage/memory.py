"""
In-memory store.

Same contract as the JSON file store with nothing persisted; used by
tests and by the ``memory`` storage backend.
"""

from __future__ import annotations

from typing import Optional

from propintel.storage.base import KeyValueStore, Record


class InMemoryStore(KeyValueStore):

    def __init__(self, name: str = "memory", key_field: str = "id", records: Optional[list[Record]] = None):
        super().__init__(name, key_field)
        self._data: dict[str, Record] = {}
        for record in records or []:
            self._data[str(record[key_field])] = dict(record)
        self.flush_count = 0

    def _records(self) -> dict[str, Record]:
        return self._data

    def _flush(self) -> None:
        self.flush_count += 1
