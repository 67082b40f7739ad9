"""Store registry for formcoach.

Lets the service swap persistence implementations (in-memory, JSON file)
without touching the pipeline or the HTTP layer.
"""

from pathlib import Path
from typing import Dict, Optional, Type

from .base import Rating, Sample, Store, WorkoutRecord, WorkoutStats
from .json_store import JsonFileStore
from .memory import MemoryStore


STORE_REGISTRY: Dict[str, Type[Store]] = {
    MemoryStore.name: MemoryStore,
    JsonFileStore.name: JsonFileStore,
}


def get_available_stores():
    """Return the list of registered store names."""
    return list(STORE_REGISTRY.keys())


def build_store(name: str, data_dir: Optional[Path] = None) -> Store:
    """Instantiate a store by registry name."""
    store_cls = STORE_REGISTRY.get(name)
    if not store_cls:
        raise ValueError(
            f"Unknown store '{name}'. "
            f"Available options: {', '.join(get_available_stores())}"
        )
    if store_cls is JsonFileStore and data_dir is not None:
        return JsonFileStore(Path(data_dir) / "formcoach.json")
    return store_cls()


__all__ = [
    "Rating",
    "Sample",
    "Store",
    "WorkoutRecord",
    "WorkoutStats",
    "JsonFileStore",
    "MemoryStore",
    "build_store",
    "get_available_stores",
]
