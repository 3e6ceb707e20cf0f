"""Store accessors for configs and runs."""

from ..settings import Settings
from ..utils import get_data_dir
from .base import Store
from .file import FileStore
from .memory import MemoryStore


def create_store(settings: Settings) -> Store:
    """Build the store selected by `DATASTORE_TYPE`."""
    if settings.datastore_type == "file":
        return FileStore(settings.data_dir or get_data_dir())
    if settings.datastore_type == "memory":
        return MemoryStore()
    raise ValueError(f"Unknown datastore type: {settings.datastore_type}")


__all__ = [
    "Store",
    "MemoryStore",
    "FileStore",
    "create_store",
]
