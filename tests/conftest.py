"""共通フィクスチャ."""

from __future__ import annotations

import gzip
import json
from collections.abc import Callable, Iterator
from typing import Any

import pytest
from loguru import logger

from ehtag_db_cache.loader import DEFAULT_RELEASE_LINK, RawSnapshotSource

SAMPLE_DATA: list[dict[str, Any]] = [
    {
        "namespace": "rows",
        "data": {"female": {"name": "<p>女性</p>", "intro": ""}},
    },
    {
        "namespace": "female",
        "data": {
            "big breasts": {"name": "<p>巨乳</p>", "intro": "<p>intro</p>", "links": ""},
            "glasses": {"name": "<p>眼镜 👓</p>", "intro": "", "links": ""},
        },
    },
    {
        "namespace": "artist",
        "data": {
            "someone": {"name": "<p>某人 <img src=\"x.png\"></p>", "intro": "", "links": ""},
        },
    },
]


def make_snapshot_bytes(
    data: Any = None,
    *,
    sha: str | None = "0123456789abcdef",
    compress: bool = False,
) -> bytes:
    snapshot: dict[str, Any] = {"data": SAMPLE_DATA if data is None else data}
    if sha is not None:
        snapshot["head"] = {"sha": sha}
    raw = json.dumps(snapshot, ensure_ascii=False).encode("utf-8")
    return gzip.compress(raw) if compress else raw


@pytest.fixture
def snapshot_bytes() -> Callable[..., bytes]:
    return make_snapshot_bytes


@pytest.fixture
def fallback_loader() -> Callable[[], RawSnapshotSource]:
    """圧縮済みのサンプルスナップショットを返すフォールバックローダー."""

    def _load() -> RawSnapshotSource:
        return RawSnapshotSource(
            data=make_snapshot_bytes(sha="fallbacksha0001", compress=True),
            is_compressed=True,
            release_link=DEFAULT_RELEASE_LINK,
            update_time=None,
        )

    return _load


@pytest.fixture
def log_records() -> Iterator[list[dict[str, Any]]]:
    """loguru のログレコードを収集する."""
    records: list[dict[str, Any]] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    try:
        yield records
    finally:
        logger.remove(handler_id)
