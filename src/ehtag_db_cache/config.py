"""設定ファイル（YAML）の読み込み.

設定ファイル例::

    store_path: ~/.cache/ehtag-db/cache.sqlite
    fallback_resource: null   # 同梱 tag.db の代わりに使うファイル
    log_level: INFO

環境変数 EHTAG_DB_CONFIG で設定ファイルの場所を指定できます。
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml
from loguru import logger

CONFIG_ENV_VAR = "EHTAG_DB_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/ehtag-db/config.yml")
DEFAULT_STORE_PATH = Path("~/.cache/ehtag-db/cache.sqlite")
LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class TagDatabaseConfig:
    store_path: Path = DEFAULT_STORE_PATH
    fallback_resource: Path | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        object.__setattr__(self, "store_path", Path(self.store_path).expanduser())
        if self.fallback_resource is not None:
            object.__setattr__(self, "fallback_resource", Path(self.fallback_resource).expanduser())
        level = str(self.log_level).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level {self.log_level!r}. Valid levels: {sorted(LOG_LEVELS)}")
        object.__setattr__(self, "log_level", level)


def resolve_config_path(config_path: Path | str | None = None) -> Path:
    if config_path is not None:
        return Path(config_path).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def load_config(config_path: Path | str | None = None) -> TagDatabaseConfig:
    """設定を読み込む.

    明示的に指定されたファイルが存在しない場合はエラー、既定の場所に
    ファイルがなければ既定値を使う。

    Raises:
        FileNotFoundError: 指定された設定ファイルが存在しない場合
        ValueError: YAML が不正、または未知のキー・不正な値を含む場合
    """
    path = resolve_config_path(config_path)
    explicit = config_path is not None or bool(os.environ.get(CONFIG_ENV_VAR))

    if not path.exists():
        if explicit:
            raise FileNotFoundError(f"Config file not found: {path}")
        logger.debug(f"No config file at {path}; using defaults")
        return TagDatabaseConfig()

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {path}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(TagDatabaseConfig)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {sorted(unknown)}")

    logger.info(f"Loaded config from {path}")
    return TagDatabaseConfig(**data)
