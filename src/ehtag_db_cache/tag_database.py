"""タグDBの状態ストア.

正規化済みスナップショットを5つの観測可能スロット（tagList / tagReplace /
updateTime / releaseLink / sha）として保持し、永続ストアとの同期を担います。

ライフサイクル:
    construct → hydrate → クエリ応答 / ingest

    - hydrate: 永続キャッシュの dataStructureVersion が一致すればそのまま公開、
      そうでなければ同梱フォールバックから再構築する（失敗しても空の状態で継続）
    - apply_snapshot: 5スロットを一括更新し、永続化はバックグラウンドで行う
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from ehtag_db_cache.core.exceptions import TagDatabaseError
from ehtag_db_cache.core.models import (
    DatabaseMeta,
    NormalizedSnapshot,
    TagList,
    TagRecord,
    TagReplace,
    datetime_to_millis,
    millis_to_datetime,
)
from ehtag_db_cache.core.normalize import normalize_snapshot
from ehtag_db_cache.core.observable import ObservableSlot
from ehtag_db_cache.loader import DEFAULT_RELEASE_LINK, RawSnapshotSource, load_fallback
from ehtag_db_cache.messages import MessageRouter
from ehtag_db_cache.persistence import PersistenceWriter
from ehtag_db_cache.storage import BaseKeyValueStore

# ローカルキャッシュの構造バージョン。正規化処理を変えたら上げること（配布データの版とは無関係）
DATA_STRUCTURE_VERSION = 6

STORAGE_KEYS = [
    "tagList",
    "tagReplace",
    "releaseLink",
    "sha",
    "updateTime",
    "dataStructureVersion",
]

FallbackLoader = Callable[[], RawSnapshotSource]

# 「未更新」を表す更新時刻（正規化で None になる）
EPOCH = datetime.fromtimestamp(0, tz=UTC)


class TagDatabase:
    """タグDBの状態ストア.

    Args:
        store: 永続キーバリューストア
        fallback_loader: 同梱フォールバックを読み込む関数
        writer: 永続化ライター（省略時は store 向けに作成）
        hydrate: 生成時に hydrate() を実行するか
    """

    def __init__(
        self,
        store: BaseKeyValueStore,
        *,
        fallback_loader: FallbackLoader = load_fallback,
        writer: PersistenceWriter | None = None,
        hydrate: bool = True,
    ) -> None:
        self.store = store
        self.fallback_loader = fallback_loader
        self.writer = writer or PersistenceWriter(store)

        # スロットはストアのロックを共有する（購読開始と一括更新が交錯しない）
        self._lock = threading.RLock()
        self.tag_list: ObservableSlot[TagList] = ObservableSlot("tagList", [], self._lock)
        self.tag_replace: ObservableSlot[TagReplace] = ObservableSlot("tagReplace", {}, self._lock)
        self.update_time: ObservableSlot[datetime | None] = ObservableSlot("updateTime", None, self._lock)
        self.release_link: ObservableSlot[str] = ObservableSlot("releaseLink", DEFAULT_RELEASE_LINK, self._lock)
        self.sha: ObservableSlot[str] = ObservableSlot("sha", "", self._lock)

        self._index: dict[str, TagRecord] = {}

        if hydrate:
            self.hydrate()

    @property
    def _slots(self) -> tuple[ObservableSlot, ...]:
        return (self.update_time, self.tag_list, self.tag_replace, self.sha, self.release_link)

    @property
    def meta(self) -> DatabaseMeta:
        with self._lock:
            return DatabaseMeta(
                sha=self.sha.value,
                release_link=self.release_link.value,
                update_time=self.update_time.value,
            )

    def hydrate(self) -> bool:
        """永続キャッシュ、またはフォールバックから状態を復元する.

        失敗はログに残すだけで、スロットは初期値のまま継続する。

        Returns:
            いずれかの経路で状態を公開できた場合 True
        """
        try:
            cached = self.store.get(STORAGE_KEYS)
            if self._is_cache_valid(cached):
                self._publish(
                    tag_list=cached["tagList"],
                    tag_replace=cached["tagReplace"],
                    sha=cached["sha"],
                    release_link=cached["releaseLink"],
                    update_time=millis_to_datetime(cached.get("updateTime")),
                )
                logger.info(f"Hydrated {len(cached['tagList']):,} tags from cache (sha={cached['sha'][:8]})")
                return True

            logger.warning(
                "Cached tag data is missing or stale "
                f"(dataStructureVersion={cached.get('dataStructureVersion')!r}, "
                f"expected={DATA_STRUCTURE_VERSION}); rebuilding from fallback"
            )
            self.load_from_fallback()
            return True
        except TagDatabaseError as e:
            logger.error(f"Failed to hydrate tag database: {e}")
        except Exception:
            logger.exception("Unexpected error while hydrating tag database")
        return False

    @staticmethod
    def _is_cache_valid(cached: dict[str, Any]) -> bool:
        if cached.get("dataStructureVersion") != DATA_STRUCTURE_VERSION:
            return False
        if not isinstance(cached.get("tagList"), list) or not isinstance(cached.get("tagReplace"), dict):
            return False
        release_link, sha = cached.get("releaseLink"), cached.get("sha")
        return isinstance(release_link, str) and isinstance(sha, str) and bool(release_link) and bool(sha)

    def load_from_fallback(self) -> NormalizedSnapshot:
        """同梱フォールバックから再構築する.

        Raises:
            ResourceUnavailableError: フォールバックが読めない場合
            MalformedSnapshotError: フォールバックが壊れている場合
        """
        started = time.perf_counter()
        source = self.fallback_loader()
        normalized = self.ingest(
            source.data,
            source.is_compressed,
            source.release_link,
            source.update_time or EPOCH,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"Rebuilt tag database from fallback in {elapsed_ms:.1f} ms")
        return normalized

    def ingest(
        self,
        data: bytes,
        is_compressed: bool,
        release_link: str,
        update_time: datetime | None = None,
    ) -> NormalizedSnapshot:
        """新しいスナップショットを正規化して反映する.

        正規化の例外はそのまま呼び出し元へ伝播し、スロットは変更されない。
        並行呼び出しはロックで直列化される。
        """
        with self._lock:
            normalized = normalize_snapshot(data, is_compressed, release_link, update_time)
            self.apply_snapshot(normalized)
        return normalized

    def apply_snapshot(self, normalized: NormalizedSnapshot) -> None:
        """5スロットを一括で更新し、永続化をバックグラウンドで依頼する."""
        with self._lock:
            self._publish(
                tag_list=normalized.tag_list,
                tag_replace=normalized.tag_replace,
                sha=normalized.sha,
                release_link=normalized.release_link,
                update_time=normalized.update_time,
            )
            self.writer.submit(
                {
                    "tagList": normalized.tag_list,
                    "tagReplace": normalized.tag_replace,
                    "releaseLink": normalized.release_link,
                    "sha": normalized.sha,
                    "updateTime": datetime_to_millis(normalized.update_time),
                    "dataStructureVersion": DATA_STRUCTURE_VERSION,
                }
            )

    def _publish(
        self,
        *,
        tag_list: TagList,
        tag_replace: TagReplace,
        sha: str,
        release_link: str,
        update_time: datetime | None,
    ) -> None:
        with self._lock:
            # 全スロットを書き換えてから通知する（購読者に中途半端な組み合わせを見せない）
            self.update_time._set(update_time)
            self.tag_list._set(tag_list)
            self.tag_replace._set(tag_replace)
            self.sha._set(sha)
            self.release_link._set(release_link)
            self._index = {t["fullKey"]: t for t in reversed(tag_list)}
            for slot in self._slots:
                slot._notify()

    def lookup_tag(self, full_key: str | None = None) -> TagList | TagRecord | None:
        """fullKey 省略時は全タグ、指定時は一致する1件（なければ None）."""
        if not full_key:
            return self.tag_list.value
        return self._index.get(full_key)

    def lookup_replace(self, full_key: str | None = None) -> TagReplace | str | None:
        """fullKey 省略時は置換マップ全体、指定時は装飾済み表示名（なければ None）."""
        if not full_key:
            return self.tag_replace.value
        return self.tag_replace.value.get(full_key)

    def register_handlers(self, router: MessageRouter) -> None:
        router.listener("get-taglist", self.lookup_tag)
        router.listener("get-tagreplace", self.lookup_replace)
        router.listener("ingest", self.ingest)

    def flush(self, timeout: float | None = None) -> None:
        """バックグラウンドの永続化を待つ."""
        self.writer.flush(timeout)

    def close(self) -> None:
        self.writer.close()
