"""Write-back of stored nodes into course Markdown files and publishing of the result."""

from .classifier import FileClassifier, KeywordBucketClassifier, LectureFileClassifier
from .publisher import GitPublisher, Publisher
from .renderer import render_node
from .writer import ContentSyncService, SyncResult

__all__ = [
    "ContentSyncService",
    "FileClassifier",
    "GitPublisher",
    "KeywordBucketClassifier",
    "LectureFileClassifier",
    "Publisher",
    "SyncResult",
    "render_node",
]
