"""タグ一覧を Parquet / CSV に書き出す."""

from __future__ import annotations

from pathlib import Path

import polars as pl
from loguru import logger

from ehtag_db_cache.core.models import TagList, TagReplace

EXPORT_SCHEMA = {
    "fullKey": pl.Utf8,
    "namespace": pl.Utf8,
    "key": pl.Utf8,
    "name": pl.Utf8,
    "search": pl.Utf8,
    "replace": pl.Utf8,
}


def tag_list_to_frame(tag_list: TagList, tag_replace: TagReplace) -> pl.DataFrame:
    """タグ一覧を DataFrame にする（生レコードの追加フィールドは含めない）."""
    rows = [
        {
            "fullKey": t["fullKey"],
            "namespace": t["namespace"],
            "key": t["key"],
            "name": t["name"],
            "search": t["search"],
            "replace": tag_replace.get(t["fullKey"]),
        }
        for t in tag_list
    ]
    return pl.DataFrame(rows, schema=EXPORT_SCHEMA)


def export_tag_list(tag_list: TagList, tag_replace: TagReplace, output_path: Path | str) -> pl.DataFrame:
    """タグ一覧をファイルに書き出す.

    Args:
        tag_list: 正規化済みタグ一覧
        tag_replace: fullKey → 装飾済み表示名
        output_path: 出力先（拡張子 .parquet / .csv で形式を決める）

    Returns:
        書き出した DataFrame

    Raises:
        ValueError: 未対応の拡張子の場合
    """
    output_path = Path(output_path)
    suffix = output_path.suffix.lower()
    if suffix not in {".parquet", ".csv"}:
        raise ValueError(f"Unsupported export format: {output_path.suffix!r} (use .parquet or .csv)")

    df = tag_list_to_frame(tag_list, tag_replace)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".parquet":
        df.write_parquet(output_path)
    else:
        df.write_csv(output_path)

    logger.info(f"Exported {df.height:,} tags to {output_path}")
    return df
