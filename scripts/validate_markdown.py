from __future__ import annotations

import argparse
import sys
from pathlib import Path

from coursecraft.ingest import MarkdownValidator


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Report structural problems in course Markdown files.")
    parser.add_argument("path", type=Path, help="Markdown file or folder to check")
    parser.add_argument("--pattern", default="*.md", help="Glob pattern for folders (default: *.md)")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    validator = MarkdownValidator()
    if args.path.is_dir():
        issues = validator.validate_directory(args.path, args.pattern)
    elif args.path.is_file():
        issues = validator.validate_text(args.path.read_text(encoding="utf-8"), args.path.name)
    else:
        print(f"[error] Path not found: {args.path}")
        return 2

    for issue in issues:
        print(f"[warn] {issue}")
    if not issues:
        print("[info] No issues found.")
    return 1 if issues else 0


if __name__ == "__main__":
    sys.exit(main())
