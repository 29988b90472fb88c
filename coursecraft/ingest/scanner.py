"""Heading lexer and scope-boundary scanner shared by the parser and write-back.

A heading's *scope* runs from its line to the next heading of the same or a
higher rank (fewer ``#``), or to the end of the bounded region. Lines inside
fenced code blocks are never headings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator, List, Optional, Tuple

from coursecraft.errors import InvalidSequenceNumber


_HEADING_PATTERN = re.compile(r"^(?P<hashes>#{1,6})[ \t]+(?P<text>[^\n]*?)[ \t\r]*$", re.MULTILINE)
_FENCE_PATTERN = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})")
_SLIDE_TEXT_PATTERN = re.compile(r"^\[seq:(?P<seq>[^\]]*)\]\s*(?P<title>.*)$")

STRUCTURAL_MAX_RANK = 4
SLIDE_RANK = 5
COMPONENT_RANK = 6


@dataclass(slots=True, frozen=True)
class Heading:
    """A heading line located in a document."""

    rank: int
    text: str
    start: int
    line_end: int
    body_start: int


@lru_cache(maxsize=64)
def _fenced_spans(doc: str) -> Tuple[Tuple[int, int], ...]:
    spans: List[Tuple[int, int]] = []
    offset = 0
    open_start: Optional[int] = None
    open_fence = ""
    for line in doc.splitlines(keepends=True):
        match = _FENCE_PATTERN.match(line)
        if match:
            fence = match.group("fence")
            if open_start is None:
                open_start, open_fence = offset, fence
            elif fence[0] == open_fence[0] and len(fence) >= len(open_fence):
                spans.append((open_start, offset + len(line)))
                open_start, open_fence = None, ""
        offset += len(line)
    if open_start is not None:
        spans.append((open_start, len(doc)))
    return tuple(spans)


def _in_fence(spans: Tuple[Tuple[int, int], ...], offset: int) -> bool:
    for start, end in spans:
        if start <= offset < end:
            return True
        if start > offset:
            break
    return False


def iter_headings(
    doc: str,
    start: int = 0,
    end: Optional[int] = None,
    *,
    max_rank: int = 6,
) -> Iterator[Heading]:
    """Yield headings of rank <= ``max_rank`` whose line starts in ``[start, end)``."""

    limit = len(doc) if end is None else min(end, len(doc))
    if start >= limit:
        return
    spans = _fenced_spans(doc)
    for match in _HEADING_PATTERN.finditer(doc, start, limit):
        rank = len(match.group("hashes"))
        if rank > max_rank or _in_fence(spans, match.start()):
            continue
        line_end = match.end()
        body_start = line_end + 1 if line_end < len(doc) and doc[line_end] == "\n" else line_end
        yield Heading(
            rank=rank,
            text=match.group("text").strip(),
            start=match.start(),
            line_end=line_end,
            body_start=body_start,
        )


def headings_of_rank(doc: str, rank: int, start: int = 0, end: Optional[int] = None) -> List[Heading]:
    return [heading for heading in iter_headings(doc, start, end, max_rank=rank) if heading.rank == rank]


def scope_end(doc: str, heading_rank: int, start_offset: int, end: Optional[int] = None) -> int:
    """Exclusive end offset of the scope of a rank-``heading_rank`` heading.

    ``start_offset`` should point just past the heading line. The result is the
    start of the next heading line of rank <= ``heading_rank``, or ``end``
    (default: the end of the document) when there is none.
    """

    limit = len(doc) if end is None else min(end, len(doc))
    for heading in iter_headings(doc, start_offset, limit, max_rank=heading_rank):
        return heading.start
    return limit


def own_region_end(doc: str, body_start: int, end: int) -> int:
    """End of a container's own text: the first structural (rank <= 4) heading in its body."""

    return scope_end(doc, STRUCTURAL_MAX_RANK, body_start, end)


def parse_slide_heading(text: str) -> Optional[Tuple[str, str]]:
    """Split ``[seq:NNN] Title`` into ``(raw_seq, title)``; None if it is not a slide heading."""

    match = _SLIDE_TEXT_PATTERN.match(text.strip())
    if not match:
        return None
    return match.group("seq").strip(), match.group("title").strip()


def parse_sequence_number(raw: str) -> int:
    value = raw.strip()
    if not value.isdigit():
        raise InvalidSequenceNumber(raw)
    return int(value)


def heading_line(rank: int, text: str) -> str:
    return f"{'#' * rank} {text.strip()}"


def slide_heading_text(seq: int, title: str) -> str:
    return f"[seq:{seq:03d}] {title.strip()}".rstrip()


__all__ = [
    "COMPONENT_RANK",
    "Heading",
    "SLIDE_RANK",
    "STRUCTURAL_MAX_RANK",
    "heading_line",
    "headings_of_rank",
    "iter_headings",
    "own_region_end",
    "parse_sequence_number",
    "parse_slide_heading",
    "scope_end",
    "slide_heading_text",
]
