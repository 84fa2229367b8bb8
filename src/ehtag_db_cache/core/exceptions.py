"""Tag database exceptions.

スナップショットの取り込み・永続化で発生する例外クラスを定義します。
"""


class TagDatabaseError(Exception):
    """ehtag_db_cache の例外基底クラス."""


class MalformedSnapshotError(TagDatabaseError):
    """与えられたバイト列が有効なスナップショットではない場合の例外.

    展開（gzip/zlib/deflate）、UTF-8 デコード、JSON パース、構造チェックの
    いずれかに失敗したときに送出されます。

    Attributes:
        reason: 失敗した段階の説明
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Malformed snapshot: {reason}")


class ResourceUnavailableError(TagDatabaseError):
    """フォールバックスナップショットや永続ストアが読めない場合の例外.

    Attributes:
        resource: 読み込もうとしたリソース（パスやストア名）
    """

    def __init__(self, resource: str, detail: str | None = None) -> None:
        self.resource = resource
        self.detail = detail
        message = f"Resource unavailable: {resource}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class PersistenceFailureError(TagDatabaseError):
    """正規化成功後の永続ストアへの書き込みに失敗した場合の例外.

    メモリ上の状態はすでに新しいスナップショットを反映しているため、
    呼び出し元へは伝播させずログにのみ記録します。

    Attributes:
        keys: 書き込もうとしたキー
    """

    def __init__(self, keys: list[str], detail: str | None = None) -> None:
        self.keys = keys
        self.detail = detail
        message = f"Failed to persist keys {keys}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
