"""Persistence of rotation frames."""
from poolrota.store.backends import MemoryBackend, SQLiteBackend, StorageBackend
from poolrota.store.frame_store import FrameStore, next_frame_timestamp, reconstruct_latest
from poolrota.store.keys import is_sandbox_key, resolve_instance_id, rotation_key

__all__ = [
    "FrameStore",
    "MemoryBackend",
    "SQLiteBackend",
    "StorageBackend",
    "is_sandbox_key",
    "next_frame_timestamp",
    "reconstruct_latest",
    "resolve_instance_id",
    "rotation_key",
]
