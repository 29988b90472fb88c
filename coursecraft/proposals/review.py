from __future__ import annotations

import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Union

from coursecraft.errors import NotFoundError, ProposalStateError
from coursecraft.models.proposal import Proposal, parse_proposals
from coursecraft.proposals.engine import ApplyResult, ProposalEngine

logger = logging.getLogger(__name__)


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass(slots=True)
class PendingBatch:
    branch: str
    proposals: List[Proposal]
    status: ReviewStatus
    pr_url: Optional[str]
    created_at: datetime
    updated_at: datetime


class ProposalReviewQueue:
    """Holds proposal batches awaiting human approval, keyed by branch name."""

    def __init__(self, db_path: Path, branch_prefix: str = "content-update") -> None:
        self.db_path = Path(db_path)
        self.branch_prefix = branch_prefix
        self._ensure_parent()
        self._initialize()

    def _ensure_parent(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _initialize(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS pending_proposals (
                    branch TEXT PRIMARY KEY,
                    proposals TEXT NOT NULL,
                    status TEXT NOT NULL,
                    pr_url TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )

    def submit(self, proposals: Iterable[Union[Proposal, dict]], branch: Optional[str] = None) -> str:
        """Queue a batch for review and return its branch name."""

        batch = parse_proposals(proposals)
        branch = branch or f"{self.branch_prefix}-{int(time.time() * 1000)}"
        payload = json.dumps([proposal.model_dump(mode="json", by_alias=True) for proposal in batch])
        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO pending_proposals(branch, proposals, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (branch, payload, ReviewStatus.PENDING.value, now, now),
            )
        logger.info("Queued %d proposal(s) for review on %s", len(batch), branch)
        return branch

    def get(self, branch: str) -> PendingBatch:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM pending_proposals WHERE branch = ?", (branch,)).fetchone()
        if row is None:
            raise NotFoundError(branch, f"No proposal batch for branch: {branch}")
        return _row_to_batch(row)

    def list_pending(self) -> List[PendingBatch]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM pending_proposals WHERE status = ? ORDER BY created_at",
                (ReviewStatus.PENDING.value,),
            ).fetchall()
        return [_row_to_batch(row) for row in rows]

    def set_pr_url(self, branch: str, pr_url: str) -> None:
        self.get(branch)
        self._update(branch, pr_url=pr_url)

    def approve(self, branch: str, engine: ProposalEngine) -> ApplyResult:
        """Apply a pending batch; it stays PENDING if the engine rejects it."""

        batch = self._require_pending(branch)
        result = engine.apply(batch.proposals, branch=branch)
        self._update(branch, status=ReviewStatus.APPROVED, pr_url=result.pr_url or batch.pr_url)
        logger.info("Applied approved batch %s", branch)
        return result

    def reject(self, branch: str) -> None:
        self._require_pending(branch)
        self._update(branch, status=ReviewStatus.REJECTED)
        logger.info("Rejected batch %s", branch)

    def _require_pending(self, branch: str) -> PendingBatch:
        batch = self.get(branch)
        if batch.status is not ReviewStatus.PENDING:
            raise ProposalStateError(f"Batch {branch} is {batch.status.value}, not PENDING")
        return batch

    def _update(self, branch: str, *, status: Optional[ReviewStatus] = None, pr_url: Optional[str] = None) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE pending_proposals
                SET status = COALESCE(?, status), pr_url = COALESCE(?, pr_url), updated_at = ?
                WHERE branch = ?
                """,
                (status.value if status else None, pr_url, now, branch),
            )


def _row_to_batch(row: sqlite3.Row) -> PendingBatch:
    return PendingBatch(
        branch=row["branch"],
        proposals=parse_proposals(json.loads(row["proposals"])),
        status=ReviewStatus(row["status"]),
        pr_url=row["pr_url"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


__all__ = ["PendingBatch", "ProposalReviewQueue", "ReviewStatus"]
