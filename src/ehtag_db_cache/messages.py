"""名前付きメッセージのハンドラ登録とディスパッチ（プロセス内）."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from loguru import logger

Handler = Callable[..., Any]


class MessageRouter:
    """メッセージ名 → ハンドラの対応表.

    同じ名前で再登録した場合は後勝ちで置き換えます。
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def listener(self, name: str, handler: Handler) -> None:
        if name in self._handlers:
            logger.warning(f"Replacing handler for message {name!r}")
        self._handlers[name] = handler

    def dispatch(self, name: str, *args: Any) -> Any:
        """ハンドラを呼び出して結果を返す.

        Raises:
            KeyError: 未登録のメッセージ名の場合
        """
        try:
            handler = self._handlers[name]
        except KeyError:
            raise KeyError(f"No handler registered for message {name!r}") from None
        return handler(*args)

    @property
    def names(self) -> list[str]:
        return sorted(self._handlers)
