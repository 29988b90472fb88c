from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from coursecraft.ingest import CourseImporter, MarkdownCourseParser
from coursecraft.log_config import configure_logging
from coursecraft.models.configs import Settings, get_settings
from coursecraft.orchestration import load_settings
from coursecraft.store import ContentStore, SQLiteContentConfig


def parse_args() -> argparse.Namespace:
    if Path(".env").exists():
        load_dotenv(".env", override=False)
    parser = argparse.ArgumentParser(description="Import course Markdown files into the content store.")
    parser.add_argument(
        "corpus",
        type=Path,
        nargs="?",
        default=None,
        help="Markdown file or folder to import (default: IMPORT_FOLDER from the environment)",
    )
    parser.add_argument("--pattern", default=None, help="Glob pattern for folder imports (default: *.md)")
    parser.add_argument("--sqlite-db", type=Path, default=None, help="Override the content store path")
    parser.add_argument("--config", type=Path, default=None, help="YAML / TOML / JSON settings file")
    return parser.parse_args()


def build_settings(config_path: Optional[Path]) -> Settings:
    return load_settings(config_path) if config_path else get_settings()


def main() -> int:
    args = parse_args()
    settings = build_settings(args.config)
    configure_logging(settings.logging)

    store = ContentStore(SQLiteContentConfig(db_path=args.sqlite_db or settings.db_path))
    importer = CourseImporter(MarkdownCourseParser(), store, settings)
    try:
        if args.corpus is not None and args.corpus.is_file():
            result = importer.import_many([args.corpus])
        else:
            result = importer.import_directory(args.corpus, args.pattern)
    finally:
        store.close()

    print(
        f"[info] Processed {result.documents_processed} file(s): "
        f"{result.nodes_written} nodes, {result.components_written} components"
    )
    for path, reason in result.failures:
        print(f"[error] {path}: {reason}")
    return 1 if result.failures else 0


if __name__ == "__main__":
    sys.exit(main())
