from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from coursecraft.models.node import ContentNode, NodeType

logger = logging.getLogger(__name__)

_LECTURE_NUMBER_PATTERN = re.compile(r"Lecture\s+(\d+)", re.IGNORECASE)
_LECTURE_PREFIX_PATTERN = re.compile(r"^Lecture\s+\d+\s*[:.\-]?\s*", re.IGNORECASE)
_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')


class FileClassifier(ABC):
    """Decides which Markdown file under the repository root holds a node."""

    @abstractmethod
    def classify(self, node: ContentNode, ancestors: Sequence[ContentNode]) -> Optional[Path]:
        """Return the target file, or None when this classifier has no opinion."""


class LectureFileClassifier(FileClassifier):
    """Route a node to the file of the lecture it belongs to.

    Existing ``*.md`` files are matched by ``Lecture N`` or by the lecture
    title; otherwise a ``Lecture N- Title.md`` name is proposed.
    """

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = Path(repo_root)

    def classify(self, node: ContentNode, ancestors: Sequence[ContentNode]) -> Optional[Path]:
        lecture = node if node.node_type is NodeType.LECTURE else None
        if lecture is None:
            lecture = next((a for a in reversed(ancestors) if a.node_type is NodeType.LECTURE), None)
        if lecture is None:
            return None

        number = lecture_number(lecture)
        number_pattern = re.compile(rf"Lecture\s+{number}(?!\d)", re.IGNORECASE) if number else None
        if self.repo_root.is_dir():
            for candidate in sorted(self.repo_root.glob("*.md")):
                name = candidate.name
                if (number_pattern and number_pattern.search(name)) or lecture.title in name:
                    return candidate

        title = _UNSAFE_FILENAME_CHARS.sub("", _LECTURE_PREFIX_PATTERN.sub("", lecture.title)).strip()
        filename = f"Lecture {number}- {title}.md" if number else f"Lecture- {title}.md"
        logger.debug("No file for lecture '%s'; proposing %s", lecture.title, filename)
        return self.repo_root / filename


class KeywordBucketClassifier(FileClassifier):
    """Heuristic routing of titles to bucket files by keyword hits.

    Ambiguous titles can be misrouted; put a more specific classifier ahead of
    this one in the chain when that matters.
    """

    def __init__(self, repo_root: Path, buckets: Mapping[str, Iterable[str]]) -> None:
        self.repo_root = Path(repo_root)
        self.buckets: Dict[str, List[str]] = {
            filename: [keyword.lower() for keyword in keywords] for filename, keywords in buckets.items()
        }

    def classify(self, node: ContentNode, ancestors: Sequence[ContentNode]) -> Optional[Path]:
        for candidate in [node, *reversed(ancestors)]:
            bucket = self.best_bucket(candidate.title)
            if bucket is not None:
                return self.repo_root / bucket
        return None

    def best_bucket(self, title: str) -> Optional[str]:
        lowered = title.lower()
        best: Optional[str] = None
        best_score = 0
        for filename, keywords in self.buckets.items():
            score = sum(1 for keyword in keywords if keyword and keyword in lowered)
            if score > best_score:
                best, best_score = filename, score
        return best


def lecture_number(lecture: ContentNode) -> Optional[str]:
    if lecture.node_number and lecture.node_number.strip().isdigit():
        return lecture.node_number.strip()
    match = _LECTURE_NUMBER_PATTERN.search(lecture.title)
    return match.group(1) if match else None


def classify(
    classifiers: Sequence[FileClassifier],
    node: ContentNode,
    ancestors: Sequence[ContentNode],
) -> Optional[Path]:
    """First non-None answer from the chain."""

    for classifier in classifiers:
        target = classifier.classify(node, ancestors)
        if target is not None:
            return target
    return None


__all__ = [
    "FileClassifier",
    "KeywordBucketClassifier",
    "LectureFileClassifier",
    "classify",
    "lecture_number",
]
