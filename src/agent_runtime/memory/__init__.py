"""Thread persistence: storage adapters, thread store and checkpointer."""

from .storage import StorageAdapter, LocalStorageAdapter
from .thread_store import BaseThreadStore, create_snapshot, now_ms
from .serialization import to_plain_data, from_plain_data
from .checkpoint_store import (
    FileCheckpointStore,
    normalize_pending_write,
    sanitize_file_name,
)

__all__ = [
    "StorageAdapter",
    "LocalStorageAdapter",
    "BaseThreadStore",
    "create_snapshot",
    "now_ms",
    "to_plain_data",
    "from_plain_data",
    "FileCheckpointStore",
    "normalize_pending_write",
    "sanitize_file_name",
]
