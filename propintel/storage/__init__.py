"""
Persistence for learned knowledge.

Usage:
    from propintel.storage import open_store
    store = open_store("regional-knowledge", settings)
    with store.transaction():
        store.set("city_malaga", record)
"""

from typing import Optional

import structlog

from propintel.config import Settings, get_settings
from propintel.exceptions import ConfigurationError
from propintel.storage.base import KeyValueStore, Record
from propintel.storage.json_store import JsonFileStore
from propintel.storage.memory import InMemoryStore

logger = structlog.get_logger(__name__)

COLLECTIONS: tuple[str, ...] = (
    "user-feedback",
    "market-predictions",
    "prediction-validations",
    "regional-knowledge",
    "comparable-intelligence",
    "location-relationships",
    "location-urbanisations",
    "location-clusters",
    "location-learning",
    "prompt-performance",
    "prompt-optimizations",
    "ab-tests",
    "analysis-history",
)


def open_store(name: str, settings: Optional[Settings] = None, key_field: str = "id") -> KeyValueStore:
    """Open the named collection on the configured backend."""
    settings = settings or get_settings()
    backend = settings.storage_backend.lower()

    if backend == "memory":
        return InMemoryStore(name=name, key_field=key_field)
    if backend == "json":
        path = settings.data_dir / f"{name}.json"
        logger.debug("store_opened", store=name, path=str(path))
        return JsonFileStore(path, key_field=key_field, name=name)

    raise ConfigurationError(
        f"Unknown storage backend: {settings.storage_backend}",
        config_key="LEARNING_STORAGE_BACKEND",
    )


__all__ = [
    "COLLECTIONS",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "Record",
    "open_store",
]
