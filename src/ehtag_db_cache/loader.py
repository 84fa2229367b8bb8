"""同梱フォールバックスナップショットの読み込み."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from importlib import resources
from pathlib import Path

from loguru import logger

from ehtag_db_cache.core.exceptions import ResourceUnavailableError

FALLBACK_RESOURCE = "assets/tag.db"
DEFAULT_RELEASE_LINK = "https://github.com/EhTagTranslation/EhSyringe/blob/master/src/assets/tag.db"


@dataclass(frozen=True)
class RawSnapshotSource:
    """正規化に必要な生バイト列とメタ情報."""

    data: bytes
    is_compressed: bool
    release_link: str
    update_time: datetime | None = None


def load_fallback(resource_path: Path | str | None = None) -> RawSnapshotSource:
    """同梱のフォールバックスナップショットを読み込む.

    同梱リソースは慣例として圧縮済みとして扱い、更新時刻は未設定（None）になります。

    Args:
        resource_path: 同梱リソースの代わりに使うファイルパス（設定で上書きする場合）

    Returns:
        RawSnapshotSource

    Raises:
        ResourceUnavailableError: リソースが存在しない・読めない場合
    """
    try:
        if resource_path is not None:
            path = Path(resource_path)
            logger.debug(f"Reading fallback snapshot from {path}")
            data = path.read_bytes()
            source = str(path)
        else:
            resource = resources.files("ehtag_db_cache").joinpath(FALLBACK_RESOURCE)
            logger.debug(f"Reading bundled fallback snapshot {FALLBACK_RESOURCE}")
            data = resource.read_bytes()
            source = FALLBACK_RESOURCE
    except OSError as e:
        raise ResourceUnavailableError(str(resource_path or FALLBACK_RESOURCE), str(e)) from e

    logger.info(f"Loaded fallback snapshot {source} ({len(data):,} bytes)")
    return RawSnapshotSource(
        data=data,
        is_compressed=True,
        release_link=DEFAULT_RELEASE_LINK,
        update_time=None,
    )
