from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List

from coursecraft.ingest.scanner import SLIDE_RANK, headings_of_rank, parse_slide_heading

logger = logging.getLogger(__name__)

_SECTION_TITLE_PATTERN = re.compile(r"^\d+\.\s+.+")


@dataclass(slots=True, frozen=True)
class ValidationIssue:
    filename: str
    message: str

    def __str__(self) -> str:
        return f"{self.filename}: {self.message}"


class MarkdownValidator:
    """Lint course Markdown for structure the parser tolerates but authors should fix."""

    def validate_text(self, text: str, filename: str = "<text>") -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        if not headings_of_rank(text, 1):
            issues.append(ValidationIssue(filename, "Missing course heading (# Course)"))
        if not headings_of_rank(text, 2):
            issues.append(ValidationIssue(filename, "Missing lecture headings (## Lecture)"))
        for heading in headings_of_rank(text, 3):
            if not _SECTION_TITLE_PATTERN.match(heading.text):
                issues.append(ValidationIssue(filename, f"Non-standard section format: {heading.text}"))
        for heading in headings_of_rank(text, SLIDE_RANK):
            parsed = parse_slide_heading(heading.text)
            if parsed is None:
                issues.append(ValidationIssue(filename, f"Slide heading without [seq:NNN] prefix: {heading.text}"))
                continue
            raw_seq, _ = parsed
            if not (raw_seq.isdigit() and len(raw_seq) == 3):
                issues.append(
                    ValidationIssue(
                        filename,
                        f"Invalid slide sequence number (should be 3 digits): {raw_seq}",
                    )
                )
        return issues

    def validate_file(self, path: Path, encoding: str = "utf-8") -> List[ValidationIssue]:
        issues = self.validate_text(path.read_text(encoding=encoding), path.name)
        for issue in issues:
            logger.warning("%s", issue)
        return issues

    def validate_directory(self, folder: Path, pattern: str = "*.md") -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        for path in sorted(folder.glob(pattern)):
            if path.is_file():
                issues.extend(self.validate_file(path))
        return issues


__all__ = ["MarkdownValidator", "ValidationIssue"]
