"""Parsing and import of heading-structured course Markdown."""

from .toc_builder import SEQUENCE_SENTINEL, TOCBuilder, TOCBuilderConfig
from .markdown import MarkdownCourseParser, MarkdownCourseParserConfig, split_slide_body
from .pipeline import CourseImporter, ImportResult
from .validator import MarkdownValidator, ValidationIssue

__all__ = [
    "SEQUENCE_SENTINEL",
    "TOCBuilder",
    "TOCBuilderConfig",
    "CourseImporter",
    "ImportResult",
    "MarkdownCourseParser",
    "MarkdownCourseParserConfig",
    "MarkdownValidator",
    "ValidationIssue",
    "split_slide_body",
]
