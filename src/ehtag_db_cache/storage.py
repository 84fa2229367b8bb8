"""永続キーバリューストア.

タグDBのキャッシュ（tagList / tagReplace / releaseLink / sha / updateTime /
dataStructureVersion）を保存するための get/set API です。値は JSON として保存します。

注意:
    PRAGMA のうち cache_size / temp_store は接続単位の設定なので、接続ごとに適用します。
"""

from __future__ import annotations

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from loguru import logger

from ehtag_db_cache.core.exceptions import PersistenceFailureError, ResourceUnavailableError

PERSISTENT_PRAGMAS = [
    "PRAGMA journal_mode = WAL;",
    "PRAGMA synchronous = NORMAL;",
]
CONNECTION_PRAGMAS = [
    "PRAGMA cache_size = -16000;",  # 16MB cache
    "PRAGMA temp_store = MEMORY;",
]

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS KV_STORE (
        key TEXT NOT NULL PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at DATETIME DEFAULT (CURRENT_TIMESTAMP)
    );
"""


class BaseKeyValueStore(ABC):
    """永続ストアの基底クラス.

    get() は存在するキーのみを返し、set() は渡された全キーを1回で書き込みます。
    値が None のキーは削除扱いです。
    """

    @abstractmethod
    def get(self, keys: Iterable[str]) -> dict[str, Any]:
        """キーを読み込む.

        Raises:
            ResourceUnavailableError: ストアが読めない場合
        """
        ...

    @abstractmethod
    def set(self, items: Mapping[str, Any]) -> None:
        """キーを書き込む（部分書き込みはしない）.

        Raises:
            PersistenceFailureError: 書き込みに失敗した場合
        """
        ...

    @abstractmethod
    def clear(self) -> None:
        """全キーを削除する."""
        ...


class MemoryKeyValueStore(BaseKeyValueStore):
    """プロセス内のみのストア（テスト・組み込み用）.

    JSON 経由でコピーするので、SQLite 版と同じ値の形になる。
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()
        if initial:
            self.set(initial)

    def get(self, keys: Iterable[str]) -> dict[str, Any]:
        with self._lock:
            return {k: json.loads(self._data[k]) for k in keys if k in self._data}

    def set(self, items: Mapping[str, Any]) -> None:
        try:
            encoded = {k: None if v is None else json.dumps(v, ensure_ascii=False) for k, v in items.items()}
        except (TypeError, ValueError) as e:
            raise PersistenceFailureError(list(items), str(e)) from e
        with self._lock:
            for k, v in encoded.items():
                if v is None:
                    self._data.pop(k, None)
                else:
                    self._data[k] = v

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class SqliteKeyValueStore(BaseKeyValueStore):
    """SQLite ファイルに保存するストア.

    Args:
        db_path: SQLite ファイルパス（親ディレクトリは自動作成）
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        for pragma in CONNECTION_PRAGMAS:
            conn.execute(pragma)
        return conn

    def _ensure_schema(self) -> None:
        if self._initialized:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        is_new = not self.db_path.exists()
        conn = self._connect()
        try:
            if is_new:
                logger.info(f"Creating key-value store: {self.db_path}")
                for pragma in PERSISTENT_PRAGMAS:
                    conn.execute(pragma)
                    logger.debug(f"Applied: {pragma}")
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        finally:
            conn.close()
        self._initialized = True

    def get(self, keys: Iterable[str]) -> dict[str, Any]:
        keys = list(keys)
        if not keys:
            return {}
        if not self.db_path.exists():
            logger.debug(f"Key-value store does not exist yet: {self.db_path}")
            return {}

        placeholders = ", ".join("?" for _ in keys)
        with self._lock:
            try:
                self._ensure_schema()
                conn = self._connect()
                try:
                    rows = conn.execute(
                        f"SELECT key, value FROM KV_STORE WHERE key IN ({placeholders})",
                        keys,
                    ).fetchall()
                finally:
                    conn.close()
            except (sqlite3.Error, OSError) as e:
                raise ResourceUnavailableError(str(self.db_path), str(e)) from e

        result: dict[str, Any] = {}
        for key, value in rows:
            try:
                result[key] = json.loads(value)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring undecodable value for key {key!r} in {self.db_path}")
        return result

    def set(self, items: Mapping[str, Any]) -> None:
        keys = list(items)
        try:
            upserts = [
                (k, json.dumps(v, ensure_ascii=False)) for k, v in items.items() if v is not None
            ]
        except (TypeError, ValueError) as e:
            raise PersistenceFailureError(keys, str(e)) from e
        deletes = [(k,) for k, v in items.items() if v is None]

        with self._lock:
            try:
                self._ensure_schema()
                conn = self._connect()
                try:
                    with conn:
                        conn.executemany(
                            "INSERT INTO KV_STORE (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                            upserts,
                        )
                        conn.executemany("DELETE FROM KV_STORE WHERE key = ?", deletes)
                finally:
                    conn.close()
            except (sqlite3.Error, OSError) as e:
                raise PersistenceFailureError(keys, str(e)) from e

        logger.debug(f"Persisted {len(upserts)} keys ({len(deletes)} removed) to {self.db_path}")

    def clear(self) -> None:
        with self._lock:
            try:
                self._ensure_schema()
                conn = self._connect()
                try:
                    with conn:
                        conn.execute("DELETE FROM KV_STORE")
                finally:
                    conn.close()
            except (sqlite3.Error, OSError) as e:
                raise PersistenceFailureError(["*"], str(e)) from e
        logger.info(f"Cleared key-value store: {self.db_path}")
