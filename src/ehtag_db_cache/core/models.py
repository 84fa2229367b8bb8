"""タグDBのデータモデル.

- TagRecord: 正規化済みタグ1件（生レコードの全フィールド + name/key/fullKey/namespace/search）
- TagReplace: fullKey → 装飾済み表示名
- NormalizedSnapshot: 1回の正規化パスの結果（タグ一覧と置換マップは常に同じパス由来）
- DatabaseMeta: sha / releaseLink / updateTime

TagRecord は永続化レイアウト（camelCase キー）をそのまま保つため dict で扱います。
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

TagRecord = dict[str, Any]
TagList = list[TagRecord]
TagReplace = dict[str, str]

# 予約済みのメタ名前空間（タグではない）
RESERVED_NAMESPACE = "rows"


def datetime_to_millis(value: datetime | None) -> int | None:
    """datetime をエポックミリ秒に変換する（未設定/エポック0 は None）."""
    if value is None:
        return None
    millis = int(value.timestamp() * 1000)
    return millis or None


def millis_to_datetime(value: int | float | None) -> datetime | None:
    """エポックミリ秒を UTC datetime に変換する.

    0 や None は「未更新」を意味するので None を返す。
    """
    if not value:
        return None
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def normalize_update_time(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value if datetime_to_millis(value) else None


@dataclass(frozen=True)
class DatabaseMeta:
    sha: str
    release_link: str
    update_time: datetime | None = None


@dataclass(frozen=True)
class NormalizedSnapshot:
    """1スナップショット分の正規化結果."""

    tag_list: TagList
    tag_replace: TagReplace
    sha: str
    release_link: str
    update_time: datetime | None = None

    @property
    def meta(self) -> DatabaseMeta:
        return DatabaseMeta(sha=self.sha, release_link=self.release_link, update_time=self.update_time)

    def namespace_counts(self) -> dict[str, int]:
        """名前空間ごとのタグ件数."""
        return dict(Counter(t["namespace"] for t in self.tag_list))
