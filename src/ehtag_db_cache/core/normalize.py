"""スナップショットの展開・パース・正規化（RawSnapshot → NormalizedSnapshot）.

設計方針:
    - この関数群は純粋（I/Oなし）。永続化は TagDatabase 側の責務
    - 名前空間 `rows` はメタ情報なのでタグとして扱わない
    - 表示名は2系統を作る
      - plain: 絵文字と <img> を除去したテキスト（tagList の name）
      - decorated: 絵文字を span で囲み、<img> に表示用クラスを付けたもの（tagReplace）
"""

from __future__ import annotations

import gzip
import json
import re
import time
import zlib
from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from typing import Any

import emoji
from loguru import logger

from .exceptions import MalformedSnapshotError
from .models import (
    RESERVED_NAMESPACE,
    NormalizedSnapshot,
    TagList,
    TagReplace,
    normalize_update_time,
)

_PARAGRAPH = re.compile(r"<p>(.+?)</p>")
_IMG_TAG = re.compile(r"<img.*?>", re.IGNORECASE)
_IMG_ATTRS = re.compile(r"<img(.*?)>", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s")

EMOJI_CLASS = "ehs-emoji"
ICON_CLASS = "ehs-icon"

# E-Hentai 検索の名前空間略記（misc は接頭辞なし）
NAMESPACE_ABBREVIATIONS = {
    "artist": "a",
    "character": "c",
    "cosplayer": "cos",
    "female": "f",
    "group": "g",
    "language": "l",
    "location": "loc",
    "male": "m",
    "mixed": "x",
    "other": "o",
    "parody": "p",
    "reclass": "r",
    "misc": "",
}


def get_full_key(namespace: str, key: str) -> str:
    """名前空間とキーから一意な fullKey を作る."""
    return f"{namespace}:{key}"


def get_search_term(namespace: str, key: str) -> str:
    """検索用の語を作る.

    Examples:
        >>> get_search_term("female", "big breasts")
        'f:"big breasts$"'
        >>> get_search_term("artist", "someone")
        'a:someone$'
        >>> get_search_term("misc", "full color")
        '"full color$"'
    """
    prefix = NAMESPACE_ABBREVIATIONS.get(namespace, namespace)
    term = f'"{key}$"' if _WHITESPACE.search(key) else f"{key}$"
    return f"{prefix}:{term}" if prefix else term


def unwrap_paragraph(name: str) -> str:
    """名前全体が <p>...</p> 1つで囲まれていれば外して trim する."""
    m = _PARAGRAPH.fullmatch(name)
    if m:
        name = m.group(1)
    return name.strip()


def clean_name(name: str) -> str:
    """plain 表示名（絵文字・<img> を除去）."""
    name = unwrap_paragraph(name)
    name = emoji.replace_emoji(name, replace="")
    return _IMG_TAG.sub("", name).strip()


def decorate_name(name: str) -> str:
    """decorated 表示名（絵文字をハイライト、<img> にクラス付与）."""
    name = unwrap_paragraph(name)
    name = emoji.replace_emoji(name, replace=lambda chars, _data: f'<span class="{EMOJI_CLASS}">{chars}</span>')
    return _IMG_ATTRS.sub(rf'<img class="{ICON_CLASS}" \1>', name)


def decompress_snapshot(data: bytes, is_compressed: bool) -> str:
    """バイト列を UTF-8 文字列にする（必要なら deflate 系の展開を行う）.

    gzip / zlib / raw deflate のいずれも受け付けます。

    Raises:
        MalformedSnapshotError: 展開またはデコードに失敗した場合
    """
    raw = bytes(data)
    if is_compressed:
        try:
            if raw[:2] == b"\x1f\x8b":
                raw = gzip.decompress(raw)
            else:
                try:
                    raw = zlib.decompress(raw)
                except zlib.error:
                    raw = zlib.decompress(raw, -zlib.MAX_WBITS)
        except (OSError, EOFError, zlib.error) as e:
            raise MalformedSnapshotError(f"decompression failed: {e}") from e

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedSnapshotError(f"invalid UTF-8: {e}") from e


def parse_snapshot(text: str) -> dict[str, Any]:
    """JSON をパースし、RawSnapshot として最低限の構造を検証する."""
    try:
        snapshot = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedSnapshotError(f"invalid JSON: {e}") from e

    if not isinstance(snapshot, dict):
        raise MalformedSnapshotError(f"root must be an object, got {type(snapshot).__name__}")

    head = snapshot.get("head")
    if not isinstance(head, dict) or not isinstance(head.get("sha"), str):
        raise MalformedSnapshotError("missing head.sha")

    data = snapshot.get("data")
    if not isinstance(data, (list, dict)):
        raise MalformedSnapshotError("missing data")

    return snapshot


def iter_namespaces(data: list | dict) -> Iterator[tuple[str, Mapping[str, Any]]]:
    """(namespace, {key: record}) を順に返す.

    配布形式の `[{"namespace": ..., "data": {...}}, ...]` と
    `{namespace: {key: record}}` の両方に対応する。
    """
    if isinstance(data, dict):
        blocks = ({"namespace": ns, "data": records} for ns, records in data.items())
    else:
        blocks = iter(data)

    for block in blocks:
        if not isinstance(block, dict) or not isinstance(block.get("namespace"), str):
            raise MalformedSnapshotError(f"invalid namespace block: {block!r:.80}")
        records = block.get("data") or {}
        if not isinstance(records, dict):
            raise MalformedSnapshotError(f"namespace {block['namespace']!r} data must be an object")
        yield block["namespace"], records


def normalize_snapshot(
    data: bytes,
    is_compressed: bool,
    release_link: str,
    update_time: datetime | None = None,
) -> NormalizedSnapshot:
    """生スナップショットを正規化する.

    Args:
        data: スナップショットのバイト列
        is_compressed: deflate 系で圧縮されているか
        release_link: スナップショットの出所（URL 等）
        update_time: 更新時刻（省略時は現在時刻、エポック0は未設定扱い）

    Returns:
        タグ一覧・置換マップ・メタ情報をまとめた NormalizedSnapshot

    Raises:
        MalformedSnapshotError: 展開・パース・構造検証のいずれかに失敗した場合
    """
    started = time.perf_counter()
    if update_time is None:
        update_time = datetime.now(UTC)

    snapshot = parse_snapshot(decompress_snapshot(data, is_compressed))
    sha = snapshot["head"]["sha"]

    tag_list: TagList = []
    tag_replace: TagReplace = {}
    for namespace, records in iter_namespaces(snapshot["data"]):
        if namespace == RESERVED_NAMESPACE:
            continue
        for key, record in records.items():
            if not isinstance(record, dict):
                raise MalformedSnapshotError(f"record {namespace}:{key} must be an object")
            name = str(record.get("name") or "")
            full_key = get_full_key(namespace, key)

            tag_list.append(
                {
                    **record,
                    "name": clean_name(name),
                    "key": key,
                    "fullKey": full_key,
                    "namespace": namespace,
                    "search": get_search_term(namespace, key),
                }
            )
            # 重複 fullKey は後勝ち（tag_list 側は追記のまま）
            tag_replace[full_key] = decorate_name(name)

    result = NormalizedSnapshot(
        tag_list=tag_list,
        tag_replace=tag_replace,
        sha=sha,
        release_link=release_link,
        update_time=normalize_update_time(update_time),
    )
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"Normalized snapshot {sha[:8] or '(no sha)'}: {len(tag_list):,} tags in {elapsed_ms:.1f} ms")
    logger.debug(f"Namespace counts: {result.namespace_counts()}")
    return result
