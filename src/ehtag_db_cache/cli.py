"""ehtag-db コマンドラインツール.

キャッシュの状態確認、スナップショットの取り込み、クエリ、エクスポートを行います。
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from functools import partial
from pathlib import Path

from loguru import logger

from ehtag_db_cache.config import TagDatabaseConfig, load_config
from ehtag_db_cache.export import export_tag_list
from ehtag_db_cache.loader import DEFAULT_RELEASE_LINK, load_fallback
from ehtag_db_cache.messages import MessageRouter
from ehtag_db_cache.storage import SqliteKeyValueStore
from ehtag_db_cache.tag_database import TagDatabase


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


def open_database(config: TagDatabaseConfig) -> TagDatabase:
    store = SqliteKeyValueStore(config.store_path)
    return TagDatabase(store, fallback_loader=partial(load_fallback, config.fallback_resource))


def _parse_update_time(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid ISO datetime: {value!r}") from e


def _print_json(value: object) -> None:
    print(json.dumps(value, ensure_ascii=False, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Local EhTag tag database cache")
    parser.add_argument("--config", type=Path, default=None, help="Config YAML path")
    parser.add_argument("--store", type=Path, default=None, help="Override the SQLite cache path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("info", help="Show snapshot metadata")

    p_ingest = sub.add_parser("ingest", help="Ingest a snapshot file")
    p_ingest.add_argument("file", type=Path, help="Snapshot file (JSON, optionally gzip/zlib compressed)")
    compression = p_ingest.add_mutually_exclusive_group()
    compression.add_argument("--compressed", dest="compressed", action="store_true", default=None)
    compression.add_argument("--plain", dest="compressed", action="store_false")
    p_ingest.add_argument("--release-link", default=DEFAULT_RELEASE_LINK, help="Snapshot provenance URL")
    p_ingest.add_argument(
        "--update-time",
        type=_parse_update_time,
        default=None,
        help="Update time (ISO 8601, default: now)",
    )

    p_tag = sub.add_parser("get-taglist", help="Print the tag list or one tag")
    p_tag.add_argument("key", nargs="?", default=None, help="fullKey (namespace:key)")

    p_replace = sub.add_parser("get-tagreplace", help="Print the replace map or one decorated name")
    p_replace.add_argument("key", nargs="?", default=None, help="fullKey (namespace:key)")

    p_export = sub.add_parser("export", help="Export the tag list (.parquet or .csv)")
    p_export.add_argument("output", type=Path, help="Output file path")

    sub.add_parser("rebuild", help="Discard the cache and rebuild from the fallback snapshot")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI エントリポイント."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    if args.store is not None:
        config = TagDatabaseConfig(
            store_path=args.store,
            fallback_resource=config.fallback_resource,
            log_level=config.log_level,
        )
    configure_logging("DEBUG" if args.verbose else config.log_level)

    db = open_database(config)
    router = MessageRouter()
    db.register_handlers(router)
    try:
        if args.command == "info":
            meta = db.meta
            _print_json(
                {
                    "sha": meta.sha,
                    "releaseLink": meta.release_link,
                    "updateTime": meta.update_time.isoformat() if meta.update_time else None,
                    "tagCount": len(db.tag_list.value),
                }
            )
        elif args.command == "ingest":
            data = args.file.read_bytes()
            compressed = args.compressed
            if compressed is None:
                compressed = args.file.suffix.lower() in {".gz", ".db", ".zz"}
            normalized = router.dispatch("ingest", data, compressed, args.release_link, args.update_time)
            logger.info(f"Ingested {len(normalized.tag_list):,} tags (sha={normalized.sha[:8]})")
        elif args.command in {"get-taglist", "get-tagreplace"}:
            result = router.dispatch(args.command, args.key)
            if result is None:
                logger.error(f"Not found: {args.key}")
                sys.exit(1)
            _print_json(result)
        elif args.command == "export":
            export_tag_list(db.tag_list.value, db.tag_replace.value, args.output)
        elif args.command == "rebuild":
            db.store.clear()
            db.load_from_fallback()
    finally:
        db.close()


if __name__ == "__main__":
    main()
