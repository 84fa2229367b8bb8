"""ehtag_db_cache: EhTag タグDBスナップショットのローカル実体化・キャッシュ層."""

from ehtag_db_cache.core import (
    DatabaseMeta,
    MalformedSnapshotError,
    NormalizedSnapshot,
    PersistenceFailureError,
    ResourceUnavailableError,
    normalize_snapshot,
)
from ehtag_db_cache.loader import load_fallback
from ehtag_db_cache.messages import MessageRouter
from ehtag_db_cache.storage import MemoryKeyValueStore, SqliteKeyValueStore
from ehtag_db_cache.tag_database import DATA_STRUCTURE_VERSION, TagDatabase

__version__ = "0.1.0"

__all__ = [
    "TagDatabase",
    "DATA_STRUCTURE_VERSION",
    "normalize_snapshot",
    "load_fallback",
    "NormalizedSnapshot",
    "DatabaseMeta",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "MessageRouter",
    "MalformedSnapshotError",
    "ResourceUnavailableError",
    "PersistenceFailureError",
]
