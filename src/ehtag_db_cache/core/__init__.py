"""タグDBのコア処理群.

- 展開・パース・正規化（RawSnapshot → NormalizedSnapshot）
- データモデル（TagRecord / TagReplace / DatabaseMeta）
- 観測可能スロット
"""

from .exceptions import (
    MalformedSnapshotError,
    PersistenceFailureError,
    ResourceUnavailableError,
    TagDatabaseError,
)
from .models import DatabaseMeta, NormalizedSnapshot
from .normalize import clean_name, decorate_name, get_full_key, get_search_term, normalize_snapshot
from .observable import ObservableSlot

__all__ = [
    "normalize_snapshot",
    "clean_name",
    "decorate_name",
    "get_full_key",
    "get_search_term",
    "NormalizedSnapshot",
    "DatabaseMeta",
    "ObservableSlot",
    "TagDatabaseError",
    "MalformedSnapshotError",
    "ResourceUnavailableError",
    "PersistenceFailureError",
]
