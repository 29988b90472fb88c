"""Render stored nodes back into the heading grammar the parser reads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from coursecraft.errors import SyncError
from coursecraft.ingest.scanner import (
    COMPONENT_RANK,
    SLIDE_RANK,
    STRUCTURAL_MAX_RANK,
    Heading,
    heading_line,
    headings_of_rank,
    iter_headings,
    own_region_end,
    parse_slide_heading,
    scope_end,
    slide_heading_text,
)
from coursecraft.models.node import ComponentType, ContentNode, NodeType, SlideComponent
from coursecraft.store.sqlite import ContentStore

# (heading rank, title, occurrence among same-titled siblings) for each step below the rendered node
BlockKey = Tuple[Tuple[int, str, int], ...]


@dataclass(slots=True)
class UnparsedBlocks:
    """Text the parser skipped inside one node; ``leading`` sits before its slides, ``trailing`` after."""

    leading: List[str] = field(default_factory=list)
    trailing: List[str] = field(default_factory=list)


def strip_leading_heading(content: str, rank: int) -> str:
    """Drop a rank-``rank`` heading line when it opens ``content``."""

    text = content.strip()
    first = next(iter_headings(text, 0, None, max_rank=6), None)
    if first is not None and first.start == 0 and first.rank == rank:
        return text[first.body_start:].strip()
    return text


def canonical_content(node_type: NodeType, title: str, content: str) -> str:
    """Structural content always opens with the node's own heading line."""

    rank = node_type.heading_rank
    if rank is None or node_type is NodeType.SLIDE:
        return content
    body = strip_leading_heading(content, rank)
    heading = heading_line(rank, title)
    return f"{heading}\n\n{body}" if body else heading


def own_text(content: str, rank: int) -> str:
    """Text of a structural node before its first nested heading."""

    body = strip_leading_heading(content, rank)
    first = next(iter_headings(body, 0, None, max_rank=6), None)
    return body[: first.start].strip() if first is not None else body


def unparsed_blocks(block: str) -> Dict[BlockKey, UnparsedBlocks]:
    """Find the sub-blocks of an existing node block that import skips.

    These are unknown or repeated ``######`` components, rank-5 headings
    without ``[seq:NNN]``, component blocks ahead of a container's first
    slide, and headings that skip a level. Keys are relative to the block's
    own node, whose key is ``()``.
    """

    found: Dict[BlockKey, UnparsedBlocks] = {}
    first = next(iter_headings(block, 0, None, max_rank=6), None)
    if first is None or block[: first.start].strip():
        return found
    if first.rank == SLIDE_RANK:
        _collect_components(block, first.body_start, len(block), (), found)
    elif first.rank <= STRUCTURAL_MAX_RANK:
        _collect_container(block, first, len(block), (), found)
    return found


def _collect_container(
    text: str,
    heading: Heading,
    end: int,
    key: BlockKey,
    found: Dict[BlockKey, UnparsedBlocks],
) -> None:
    region_end = own_region_end(text, heading.body_start, end)
    slides = headings_of_rank(text, SLIDE_RANK, heading.body_start, region_end)
    nested = next(iter_headings(text, heading.body_start, region_end, max_rank=COMPONENT_RANK), None)
    if nested is not None and nested.rank == COMPONENT_RANK:
        stop = slides[0].start if slides else region_end
        found.setdefault(key, UnparsedBlocks()).leading.append(text[nested.start:stop].strip())

    seen: Dict[Tuple[int, str], int] = {}
    for slide in slides:
        slide_end = scope_end(text, SLIDE_RANK, slide.body_start, region_end)
        parsed = parse_slide_heading(slide.text)
        if parsed is None:
            found.setdefault(key, UnparsedBlocks()).trailing.append(text[slide.start:slide_end].strip())
            continue
        step = _step(seen, SLIDE_RANK, parsed[1])
        _collect_components(text, slide.body_start, slide_end, (*key, step), found)

    child_rank = heading.rank + 1
    if child_rank > STRUCTURAL_MAX_RANK:
        return
    children = headings_of_rank(text, child_rank, heading.body_start, end)
    first = next(iter_headings(text, heading.body_start, end, max_rank=STRUCTURAL_MAX_RANK), None)
    if first is not None and first.rank != child_rank:
        stop = children[0].start if children else end
        found.setdefault(key, UnparsedBlocks()).trailing.append(text[first.start:stop].strip())
    for child in children:
        child_end = scope_end(text, child_rank, child.body_start, end)
        _collect_container(text, child, child_end, (*key, _step(seen, child_rank, child.text)), found)


def _collect_components(
    text: str,
    start: int,
    end: int,
    key: BlockKey,
    found: Dict[BlockKey, UnparsedBlocks],
) -> None:
    seen = set()
    for heading in headings_of_rank(text, COMPONENT_RANK, start, end):
        label = heading.text.strip().upper()
        if label in ComponentType.__members__ and label not in seen:
            seen.add(label)
            continue
        block_end = scope_end(text, COMPONENT_RANK, heading.body_start, end)
        found.setdefault(key, UnparsedBlocks()).trailing.append(text[heading.start:block_end].strip())


def _step(seen: Dict[Tuple[int, str], int], rank: int, title: str) -> Tuple[int, str, int]:
    occurrence = seen.get((rank, title), 0)
    seen[(rank, title)] = occurrence + 1
    return rank, title, occurrence


def render_slide(
    node: ContentNode,
    body: str,
    components: Sequence[SlideComponent],
    extra: Sequence[str] = (),
) -> str:
    parts: List[str] = [heading_line(SLIDE_RANK, slide_heading_text(node.display_order, node.title))]
    if body.strip():
        parts.append(body.strip())
    for component in sorted(components, key=lambda c: (c.display_order, c.id or 0)):
        block = heading_line(COMPONENT_RANK, component.component_type.value)
        if component.content.strip():
            block = f"{block}\n{component.content.strip()}"
        parts.append(block)
    parts.extend(extra)
    return "\n\n".join(parts)


def render_node(
    store: ContentStore,
    node: ContentNode,
    *,
    shallow: bool = False,
    unparsed: Optional[Dict[BlockKey, UnparsedBlocks]] = None,
) -> str:
    """Markdown block for ``node`` at its heading rank.

    ``shallow`` stops at the node's own region: its text and slides, no nested
    containers. Blocks from ``unparsed`` are written back where they were found.
    """

    return _render(store, node, shallow, unparsed or {}, ())


def _render(
    store: ContentStore,
    node: ContentNode,
    shallow: bool,
    unparsed: Dict[BlockKey, UnparsedBlocks],
    key: BlockKey,
) -> str:
    extra = unparsed.get(key, UnparsedBlocks())
    assert node.id is not None
    if node.node_type is NodeType.SLIDE:
        blocks = [*extra.leading, *extra.trailing]
        return render_slide(node, store.latest_content(node.id), store.components_of(node.id), blocks)

    rank = node.node_type.heading_rank
    if rank is None:
        raise SyncError(node.id, None, f"{node.node_type.value} nodes have no heading rank")

    parts: List[str] = [heading_line(rank, node.title)]
    text = own_text(store.latest_content(node.id), rank)
    if text:
        parts.append(text)
    parts.extend(extra.leading)

    children: List[ContentNode] = []
    for child in store.children_of(node.id):
        if child.node_type is NodeType.MODULE:
            # modules group containers without a heading of their own
            assert child.id is not None
            children.extend(store.children_of(child.id))
        else:
            children.append(child)
    # slides live in the container's own region, ahead of nested containers
    slides = sorted((c for c in children if c.node_type is NodeType.SLIDE), key=lambda c: (c.display_order, c.id or 0))
    containers = [c for c in children if c.node_type is not NodeType.SLIDE and c.node_type.heading_rank is not None]

    seen: Dict[Tuple[int, str], int] = {}
    for slide in slides:
        parts.append(_render(store, slide, False, unparsed, (*key, _step(seen, SLIDE_RANK, slide.title))))
    parts.extend(extra.trailing)
    if shallow:
        return "\n\n".join(parts)
    for child in containers:
        child_rank = child.node_type.heading_rank
        assert child_rank is not None
        parts.append(_render(store, child, False, unparsed, (*key, _step(seen, child_rank, child.title))))
    return "\n\n".join(parts)


__all__ = [
    "BlockKey",
    "UnparsedBlocks",
    "canonical_content",
    "own_text",
    "render_node",
    "render_slide",
    "strip_leading_heading",
    "unparsed_blocks",
]
