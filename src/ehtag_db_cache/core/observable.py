"""現在値を保持し、変更を購読者へ通知するスロット.

購読時には現在値が即座に1回配信され、その後の更新が続けて届きます。
値の書き換えは所有者（TagDatabase）だけが行い、購読者には公開しません。
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")

Subscriber = Callable[[T], None]


class ObservableSlot(Generic[T]):
    """観測可能な値スロット.

    Args:
        name: ログ用のスロット名
        initial: 初期値
        lock: 所有者と共有するロック（複数スロットを一括更新する場合は同じものを渡す）
    """

    def __init__(self, name: str, initial: T, lock: threading.RLock | None = None) -> None:
        self.name = name
        self._value = initial
        self._subscribers: list[Subscriber[T]] = []
        self._lock = lock or threading.RLock()

    @property
    def value(self) -> T:
        """現在値（同期・非ブロッキング）."""
        return self._value

    def subscribe(self, callback: Subscriber[T]) -> Callable[[], None]:
        """購読を開始する.

        Returns:
            購読解除用の関数
        """
        # 登録と現在値の再生は更新と同じロック下で行う（再生値が後続の更新より後に届かない）
        with self._lock:
            self._subscribers.append(callback)
            self._deliver(callback, self._value)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _set(self, value: T) -> None:
        # 通知は _notify() で別途行う（複数スロットの一括更新のため）
        with self._lock:
            self._value = value

    def _notify(self) -> None:
        with self._lock:
            value = self._value
            for callback in list(self._subscribers):
                self._deliver(callback, value)

    def _deliver(self, callback: Subscriber[T], value: T) -> None:
        try:
            callback(value)
        except Exception:
            logger.exception(f"Subscriber of {self.name!r} raised")

    def __repr__(self) -> str:
        return f"ObservableSlot({self.name!r})"
