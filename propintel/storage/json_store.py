"""
JSON file store.

One collection per file: a pretty-printed JSON array of records. The file
is read lazily on first access and rewritten in full after every mutation
(or once per transaction). Writes go to a temporary file in the same
directory followed by ``os.replace``, so readers never see a partial file.

Failures never reach callers:
- unreadable or corrupt file -> warning, start from an empty collection
- unwritable file -> error, in-memory state kept for the process lifetime
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

import structlog

from propintel.exceptions import ErrorContext, StorageReadError, StorageWriteError
from propintel.storage.base import KeyValueStore, Record

logger = structlog.get_logger(__name__)


class JsonFileStore(KeyValueStore):

    def __init__(self, path: Path | str, key_field: str = "id", name: Optional[str] = None):
        self.path = Path(path)
        super().__init__(name or self.path.stem, key_field)
        self._data: Optional[dict[str, Record]] = None

    # ── Loading ─────────────────────────────────────────────────────────

    def _records(self) -> dict[str, Record]:
        if self._data is None:
            try:
                self._data = self._read()
            except StorageReadError as e:
                logger.warning(
                    "store_load_failed",
                    store=self.name,
                    path=str(self.path),
                    error=str(e),
                )
                self._data = {}
        return self._data

    def _read(self) -> dict[str, Record]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                payload = json.load(fh)
        except (OSError, ValueError) as e:
            raise StorageReadError(
                f"Cannot read collection {self.name}",
                path=str(self.path),
                context=ErrorContext(collection=self.name),
                cause=e,
            ) from e

        if not isinstance(payload, list):
            raise StorageReadError(
                f"Collection {self.name} is not a JSON array",
                path=str(self.path),
                context=ErrorContext(collection=self.name),
            )

        records: dict[str, Record] = {}
        for item in payload:
            if not isinstance(item, dict) or self.key_field not in item:
                logger.warning("store_record_skipped", store=self.name, reason="missing_key")
                continue
            records[str(item[self.key_field])] = item

        logger.debug("store_loaded", store=self.name, records=len(records))
        return records

    # ── Saving ──────────────────────────────────────────────────────────

    def _flush(self) -> None:
        try:
            self._write(list(self._records().values()))
        except StorageWriteError as e:
            logger.error(
                "store_save_failed",
                store=self.name,
                path=str(self.path),
                error=str(e),
            )

    def _write(self, records: list[Record]) -> None:
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(records, fh, indent=2, ensure_ascii=False)
                fh.write("\n")
            os.replace(tmp_name, self.path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as e:
            raise StorageWriteError(
                f"Cannot write collection {self.name}",
                path=str(self.path),
                context=ErrorContext(collection=self.name),
                cause=e,
            ) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def reload(self) -> None:
        """Drop the in-memory map; the next access re-reads the file."""
        with self._lock:
            self._data = None
