from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from coursecraft.errors import CourseCraftError
from coursecraft.log_config import configure_logging
from coursecraft.models.configs import Settings, get_settings
from coursecraft.models.proposal import Proposal, parse_proposals
from coursecraft.orchestration import load_settings
from coursecraft.proposals import ProposalEngine, ProposalReviewQueue
from coursecraft.store import ContentStore, SQLiteContentConfig
from coursecraft.sync import ContentSyncService, GitPublisher


def parse_args() -> argparse.Namespace:
    if Path(".env").exists():
        load_dotenv(".env", override=False)
    parser = argparse.ArgumentParser(description="Apply, queue or review proposal batches.")
    parser.add_argument("--config", type=Path, default=None, help="YAML / TOML / JSON settings file")
    parser.add_argument("--sqlite-db", type=Path, default=None, help="Override the content store path")
    parser.add_argument("--no-sync", action="store_true", help="Skip write-back to Markdown files")
    parser.add_argument("--no-publish", action="store_true", help="Write files but do not commit or open a PR")

    sub = parser.add_subparsers(dest="command", required=True)
    apply_cmd = sub.add_parser("apply", help="Apply a JSON list of proposals now")
    apply_cmd.add_argument("proposals", type=Path)
    submit_cmd = sub.add_parser("submit", help="Queue a JSON list of proposals for review")
    submit_cmd.add_argument("proposals", type=Path)
    approve_cmd = sub.add_parser("approve", help="Apply a queued batch")
    approve_cmd.add_argument("branch")
    reject_cmd = sub.add_parser("reject", help="Reject a queued batch")
    reject_cmd.add_argument("branch")
    sub.add_parser("pending", help="List queued batches")
    return parser.parse_args()


def read_proposals(path: Path) -> List[Proposal]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("proposals", [])
    return parse_proposals(payload)


def build_engine(args: argparse.Namespace, settings: Settings, store: ContentStore) -> ProposalEngine:
    syncer = None if args.no_sync else ContentSyncService.from_settings(store, settings)
    publisher = None
    if syncer is not None and not args.no_publish:
        publisher = GitPublisher.from_config(settings.repo_root, settings.git)
    return ProposalEngine(store, syncer, publisher, branch_prefix=settings.git.branch_prefix)


def main() -> int:
    args = parse_args()
    settings = load_settings(args.config) if args.config else get_settings()
    configure_logging(settings.logging)

    db_path = args.sqlite_db or settings.db_path
    queue = ProposalReviewQueue(db_path, branch_prefix=settings.git.branch_prefix)
    store = ContentStore(SQLiteContentConfig(db_path=db_path))
    store.initialize()
    try:
        if args.command == "pending":
            for batch in queue.list_pending():
                print(f"{batch.branch}\t{len(batch.proposals)} proposal(s)\t{batch.created_at.isoformat()}")
            return 0
        if args.command == "submit":
            branch = queue.submit(read_proposals(args.proposals))
            print(f"[info] Queued for review on {branch}")
            return 0
        if args.command == "reject":
            queue.reject(args.branch)
            print(f"[info] Rejected {args.branch}")
            return 0

        engine = build_engine(args, settings, store)
        if args.command == "approve":
            result = queue.approve(args.branch, engine)
        else:
            result = engine.apply(read_proposals(args.proposals))
    except CourseCraftError as exc:
        print(f"[error] {exc}")
        return 1
    finally:
        store.close()

    print(f"[info] Branch {result.branch}: {len(result.touched)} node(s) touched")
    for sync in result.sync_results:
        status = "changed" if sync.changed else ("unchanged" if sync.success else f"failed: {sync.error}")
        print(f"  node {sync.node_id} -> {sync.path}: {status}")
    if result.published:
        print(f"[info] Pull request: {result.pr_url or '<created>'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
