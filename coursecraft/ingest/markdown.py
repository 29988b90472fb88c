from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set

from coursecraft.errors import InvalidSequenceNumber, ParseError, UnknownComponentType
from coursecraft.ingest.scanner import (
    COMPONENT_RANK,
    SLIDE_RANK,
    STRUCTURAL_MAX_RANK,
    Heading,
    headings_of_rank,
    iter_headings,
    own_region_end,
    parse_sequence_number,
    parse_slide_heading,
    scope_end,
)
from coursecraft.ingest.toc_builder import TOCBuilder, TOCBuilderConfig
from coursecraft.models.node import ComponentType, NodeType
from coursecraft.models.section import ParsedComponent, ParsedNode

logger = logging.getLogger(__name__)

_LECTURE_NUMBER_PATTERN = re.compile(r"Lecture\s+(\d+)", re.IGNORECASE)
_NUMERIC_PREFIX_PATTERN = re.compile(r"^(\d+(?:\.\d+)*)\.?\s+")


@dataclass(slots=True)
class MarkdownCourseParserConfig(TOCBuilderConfig):
    """Configuration for course Markdown parsing."""

    course_display_order: int = 1


class MarkdownCourseParser(TOCBuilder):
    """Parse ``#`` .. ``######`` course Markdown into a COURSE-rooted ParsedNode tree.

    Ranks map to Course, Lecture, Section, Topic, Slide (``[seq:NNN] Title``)
    and slide Components (``SCRIPT``, ``VISUAL``, ``NOTES``, ``DEMONSTRATION``).
    """

    config: MarkdownCourseParserConfig

    def __init__(self, config: MarkdownCourseParserConfig | None = None) -> None:
        super().__init__(config or MarkdownCourseParserConfig())
        assert isinstance(self.config, MarkdownCourseParserConfig)

    def build(self, document_path: Path) -> ParsedNode:
        text = document_path.read_text(encoding=self.config.encoding)
        return self.parse(text, source=str(document_path))

    def parse(self, text: str, source: Optional[str] = None) -> ParsedNode:
        courses = headings_of_rank(text, 1)
        if not courses:
            raise ParseError(ParseError.NO_COURSE_HEADING, source)
        if len(courses) > 1:
            titles = ", ".join(repr(h.text) for h in courses)
            raise ParseError(ParseError.MULTIPLE_COURSE_HEADINGS, source, titles)

        heading = courses[0]
        end = scope_end(text, 1, heading.body_start)
        intro_end = own_region_end(text, heading.body_start, end)
        course = ParsedNode(
            node_type=NodeType.COURSE,
            title=heading.text,
            content=text[heading.start:intro_end].strip(),
            display_order=self.config.course_display_order,
            span=(heading.start, end),
        )
        logger.debug("Parsing course '%s' from %s", course.title, source or "<text>")
        self._parse_container(text, course, heading, end)
        return course

    # ------------------------------------------------------------------ structure
    def _parse_container(self, text: str, parent: ParsedNode, heading: Heading, end: int) -> None:
        rank = heading.rank
        region_end = own_region_end(text, heading.body_start, end)
        for slide in self._parse_slides(text, parent, heading.body_start, region_end):
            parent.add_child(slide)

        child_rank = rank + 1
        if child_rank > STRUCTURAL_MAX_RANK:
            return

        first = next(iter_headings(text, heading.body_start, end, max_rank=STRUCTURAL_MAX_RANK), None)
        if first is not None and first.rank != child_rank:
            logger.warning(
                "Heading '%s' (rank %d) under %s '%s' skips a level; its content is ignored",
                first.text,
                first.rank,
                parent.node_type.value,
                parent.title,
            )

        for ordinal, child_heading in enumerate(headings_of_rank(text, child_rank, heading.body_start, end), start=1):
            child_end = scope_end(text, child_rank, child_heading.body_start, end)
            child = self._structural_node(text, child_heading, child_end, parent, ordinal)
            parent.add_child(child)
            self._parse_container(text, child, child_heading, child_end)

    def _structural_node(
        self,
        text: str,
        heading: Heading,
        end: int,
        parent: ParsedNode,
        ordinal: int,
    ) -> ParsedNode:
        node_type = NodeType.for_rank(heading.rank)
        title = heading.text
        if node_type is NodeType.LECTURE:
            match = _LECTURE_NUMBER_PATTERN.search(title)
            number = int(match.group(1)) if match else ordinal
            if not match:
                logger.debug("No lecture number in '%s'; using ordinal %d", title, ordinal)
            node_number = str(number)
            display_order = number * 10
        else:
            prefix = _NUMERIC_PREFIX_PATTERN.match(title)
            local = prefix.group(1).split(".")[-1] if prefix else str(ordinal)
            node_number = f"{parent.node_number}.{local}" if parent.node_number else local
            display_order = ordinal * 10

        return ParsedNode(
            node_type=node_type,
            title=title,
            content=text[heading.start:end].strip(),
            display_order=display_order,
            node_number=node_number,
            span=(heading.start, end),
        )

    # ------------------------------------------------------------------ slides
    def _parse_slides(self, text: str, parent: ParsedNode, start: int, end: int) -> List[ParsedNode]:
        slides: List[ParsedNode] = []
        for heading in headings_of_rank(text, SLIDE_RANK, start, end):
            parsed = parse_slide_heading(heading.text)
            if parsed is None:
                logger.warning(
                    "Rank-5 heading '%s' under '%s' is not of the form '[seq:NNN] Title'; skipping",
                    heading.text,
                    parent.title,
                )
                continue
            raw_seq, title = parsed
            try:
                sequence = parse_sequence_number(raw_seq)
            except InvalidSequenceNumber as exc:
                logger.warning("%s on slide '%s'; sorting it last", exc, title)
                sequence = self.config.sequence_sentinel

            slide_end = scope_end(text, SLIDE_RANK, heading.body_start, end)
            body_end = scope_end(text, COMPONENT_RANK, heading.body_start, slide_end)
            label = raw_seq or str(sequence)
            slides.append(
                ParsedNode(
                    node_type=NodeType.SLIDE,
                    title=title or f"Slide {label}",
                    content=text[heading.body_start:body_end].strip(),
                    display_order=sequence,
                    node_number=f"{parent.node_number}.{label}" if parent.node_number else label,
                    span=(heading.start, slide_end),
                    components=self.parse_components(text, title, body_end, slide_end),
                )
            )
        # sort is stable: equal sequence numbers keep document order
        slides.sort(key=lambda slide: slide.display_order)
        return slides

    def parse_components(self, text: str, slide_title: str, start: int, end: int) -> List[ParsedComponent]:
        components: List[ParsedComponent] = []
        seen: Set[ComponentType] = set()
        for heading in headings_of_rank(text, COMPONENT_RANK, start, end):
            block_end = scope_end(text, COMPONENT_RANK, heading.body_start, end)
            try:
                component_type = ComponentType.parse(heading.text)
            except UnknownComponentType as exc:
                logger.warning("%s in slide '%s'; skipping component", exc, slide_title)
                continue
            if component_type in seen:
                logger.warning(
                    "Duplicate %s component in slide '%s'; keeping the first",
                    component_type.value,
                    slide_title,
                )
                continue
            seen.add(component_type)
            components.append(
                ParsedComponent(
                    component_type=component_type,
                    content=text[heading.body_start:block_end].strip(),
                    span=(heading.start, block_end),
                )
            )
        return components


def split_slide_body(text: str) -> tuple[str, List[ParsedComponent]]:
    """Split a slide body (no ``#####`` line) into its own text and component sub-blocks."""

    body_end = scope_end(text, COMPONENT_RANK, 0)
    parser = MarkdownCourseParser()
    components = parser.parse_components(text, "<proposal>", body_end, len(text))
    return text[:body_end].strip(), components


__all__ = ["MarkdownCourseParser", "MarkdownCourseParserConfig", "split_slide_body"]
