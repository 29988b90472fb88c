"""Proposal batches: atomic application, review queue and pull-request summaries."""

from .engine import ApplyResult, ProposalEngine
from .review import PendingBatch, ProposalReviewQueue, ReviewStatus
from .summary import render_pr_description

__all__ = [
    "ApplyResult",
    "PendingBatch",
    "ProposalEngine",
    "ProposalReviewQueue",
    "ReviewStatus",
    "render_pr_description",
]
