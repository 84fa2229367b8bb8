"""永続ストアへのバックグラウンド書き込み（fire-and-forget）.

書き込みは単一のワーカースレッドで投入順に実行され、呼び出し元はストレージの
完了を待ちません。失敗は呼び出し元へ送出せず、エラーフック（既定はログ出力）へ渡します。
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from loguru import logger

from ehtag_db_cache.core.exceptions import PersistenceFailureError
from ehtag_db_cache.storage import BaseKeyValueStore

ErrorHook = Callable[[PersistenceFailureError], None]


def log_persistence_failure(error: PersistenceFailureError) -> None:
    logger.error(f"Persistence failed: {error}")


class PersistenceWriter:
    """キーバリューストア向けのバックグラウンドライター.

    Args:
        store: 書き込み先ストア
        on_error: 書き込みに失敗したときに呼ばれるフック
    """

    def __init__(self, store: BaseKeyValueStore, on_error: ErrorHook | None = None) -> None:
        self.store = store
        self.on_error = on_error or log_persistence_failure
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ehtag-persist")
        self._pending: list[Future] = []

    def submit(self, items: Mapping[str, Any]) -> Future | None:
        """書き込みを予約してすぐに戻る.

        Returns:
            書き込み結果（成功で True）の Future。close() 後は None
        """
        payload = dict(items)
        try:
            future = self._executor.submit(self._write, payload)
        except RuntimeError as e:
            # close() 済みのライターには投入できない
            self.on_error(PersistenceFailureError(list(payload), f"writer closed ({e})"))
            return None
        self._pending.append(future)
        future.add_done_callback(self._forget)
        return future

    def _write(self, items: dict[str, Any]) -> bool:
        try:
            self.store.set(items)
        except PersistenceFailureError as e:
            self.on_error(e)
            return False
        except Exception as e:
            self.on_error(PersistenceFailureError(list(items), repr(e)))
            return False
        logger.debug(f"Persisted keys: {sorted(items)}")
        return True

    def _forget(self, future: Future) -> None:
        try:
            self._pending.remove(future)
        except ValueError:
            pass

    def flush(self, timeout: float | None = None) -> None:
        """予約済みの書き込みがすべて終わるまで待つ."""
        for future in list(self._pending):
            future.result(timeout=timeout)

    def close(self) -> None:
        """残りの書き込みを終えてワーカーを停止する."""
        self._executor.shutdown(wait=True)
