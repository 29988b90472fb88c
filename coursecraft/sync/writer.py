from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from coursecraft.errors import CourseCraftError, SyncError
from coursecraft.ingest.toc_builder import SEQUENCE_SENTINEL
from coursecraft.ingest.scanner import (
    SLIDE_RANK,
    Heading,
    heading_line,
    headings_of_rank,
    own_region_end,
    parse_slide_heading,
    scope_end,
)
from coursecraft.models.configs import DEFAULT_TOPIC_BUCKETS, Settings
from coursecraft.models.node import ContentNode, NodeType
from coursecraft.store.sqlite import ContentStore
from coursecraft.sync.classifier import (
    FileClassifier,
    KeywordBucketClassifier,
    LectureFileClassifier,
    classify,
)
from coursecraft.sync.renderer import render_node, unparsed_blocks

logger = logging.getLogger(__name__)

_LEADING_BLANK_LINES = re.compile(r"\A(?:[ \t]*\n)+")


@dataclass(slots=True)
class SyncResult:
    """Outcome of writing one node back to its source file."""

    node_id: Optional[int]
    path: Optional[Path]
    success: bool
    changed: bool = False
    error: Optional[str] = None


def default_classifiers(
    repo_root: Path,
    buckets: Optional[Mapping[str, Iterable[str]]] = None,
) -> List[FileClassifier]:
    return [
        LectureFileClassifier(repo_root),
        KeywordBucketClassifier(repo_root, buckets if buckets is not None else DEFAULT_TOPIC_BUCKETS),
    ]


class ContentSyncService:
    """Writes stored nodes back into the course Markdown files they came from."""

    def __init__(
        self,
        store: ContentStore,
        repo_root: Path,
        classifiers: Optional[Sequence[FileClassifier]] = None,
        *,
        encoding: str = "utf-8",
    ) -> None:
        self.store = store
        self.repo_root = Path(repo_root)
        self.classifiers = list(classifiers) if classifiers is not None else default_classifiers(self.repo_root)
        self.encoding = encoding

    @classmethod
    def from_settings(cls, store: ContentStore, settings: Settings) -> "ContentSyncService":
        return cls(store, settings.repo_root, default_classifiers(settings.repo_root, settings.topic_buckets))

    def sync_node_to_file(
        self,
        node: ContentNode,
        previous_title: Optional[str] = None,
        *,
        created: bool = False,
    ) -> SyncResult:
        """Render ``node`` and splice it into its file; failures come back as unsuccessful results.

        ``created`` marks a node added since the file was last written, so an
        existing heading with the same title is never taken to be its block.
        """

        target: Optional[Path] = None
        try:
            if node.id is None:
                raise SyncError(None, None, "node has not been stored")
            ancestors = [a for a in self.store.ancestors(node.id) if a.node_type.heading_rank is not None]
            target = classify(self.classifiers, node, ancestors)
            if target is None:
                raise SyncError(node.id, None, "no source file matches this node")

            original = target.read_text(encoding=self.encoding) if target.exists() else ""
            updated = self.splice_node(original, node, ancestors, previous_title, created=created)
            changed = updated != original
            if changed:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(updated, encoding=self.encoding)
                logger.info("Synced %s '%s' to %s", node.node_type.value, node.title, target)
            else:
                logger.debug("%s '%s' already up to date in %s", node.node_type.value, node.title, target)
            return SyncResult(node_id=node.id, path=target, success=True, changed=changed)
        except (CourseCraftError, OSError, UnicodeDecodeError) as exc:
            logger.error("Failed to sync node %s '%s' to %s: %s", node.id, node.title, target or "<unclassified>", exc)
            return SyncResult(node_id=node.id, path=target, success=False, error=str(exc))

    def splice_node(
        self,
        text: str,
        node: ContentNode,
        ancestors: Sequence[ContentNode],
        previous_title: Optional[str] = None,
        *,
        created: bool = False,
    ) -> str:
        """Return ``text`` with the node's block replaced in place or inserted into its parent scope."""

        rank = node.node_type.heading_rank
        if rank is None:
            raise SyncError(node.id, None, f"{node.node_type.value} nodes have no heading rank")

        start, end = 0, len(text)
        for index, ancestor in enumerate(ancestors):
            ancestor_rank = ancestor.node_type.heading_rank
            assert ancestor_rank is not None
            candidates = [h for h in headings_of_rank(text, ancestor_rank, start, end) if h.text == ancestor.title]
            found = self._claimed_heading(ancestor, (ancestor.title,), candidates)
            if found is None:
                # emit the missing ancestor headings ahead of the block, at the end of what was located
                lines = [heading_line(a.node_type.heading_rank or 0, a.title) for a in ancestors[index:]]
                block = "\n\n".join([*lines, render_node(self.store, node)])
                return _splice(text, end, end, block)
            start = found.body_start
            end = scope_end(text, ancestor_rank, found.body_start, end)

        titles = tuple(t for t in (node.title, previous_title) if t)
        if node.node_type is NodeType.SLIDE:
            span = self._slide_span(text, node, titles, start, end, created)
        elif node.node_type is NodeType.COURSE:
            span = self._course_span(text, titles)
        else:
            candidates = [h for h in headings_of_rank(text, rank, start, end) if h.text in titles]
            existing = self._claimed_heading(node, titles, candidates, created)
            span = (existing.start, scope_end(text, rank, existing.body_start, end)) if existing else (end, end)

        replaced = text[span[0]:span[1]]
        block = render_node(
            self.store,
            node,
            shallow=node.node_type is NodeType.COURSE,
            unparsed=unparsed_blocks(replaced) if replaced.strip() else None,
        )
        return _splice(text, span[0], span[1], block)

    def _slide_span(
        self,
        text: str,
        node: ContentNode,
        titles: Tuple[str, ...],
        start: int,
        end: int,
        created: bool,
    ) -> Tuple[int, int]:
        region_end = own_region_end(text, start, end)
        slides: List[Tuple[Heading, Optional[int], str]] = []
        for heading in headings_of_rank(text, SLIDE_RANK, start, region_end):
            parsed = parse_slide_heading(heading.text)
            if parsed is None:
                continue
            raw_seq, title = parsed
            seq = int(raw_seq) if raw_seq.isdigit() else None
            slides.append((heading, seq, title))

        # the file keeps slides in seq order; equal seqs keep insertion order
        ordered = sorted(
            slides,
            key=lambda entry: (SEQUENCE_SENTINEL if entry[1] is None else entry[1], entry[0].start),
        )
        exact = [h for h, seq, title in ordered if seq == node.display_order and title == node.title]
        twins = [
            peer.id
            for peer in self._peers(node, titles)
            if peer.title == node.title and peer.display_order == node.display_order
        ]
        chosen: Optional[Heading] = None
        if exact and len(exact) == len(twins):
            chosen = exact[twins.index(node.id)]
        elif not created:
            chosen = self._claimed_heading(node, titles, [h for h, _, title in ordered if title in titles])
        if chosen is not None:
            return chosen.start, scope_end(text, SLIDE_RANK, chosen.body_start, region_end)

        later = next((h for h, seq, _ in slides if seq is not None and seq > node.display_order), None)
        insert_at = later.start if later is not None else region_end
        return insert_at, insert_at

    def _course_span(self, text: str, titles: Tuple[str, ...]) -> Tuple[int, int]:
        existing = _find_heading(text, 1, titles, 0, len(text))
        if existing is None:
            return 0, 0
        end = scope_end(text, 1, existing.body_start)
        return existing.start, own_region_end(text, existing.body_start, end)

    def _peers(self, node: ContentNode, titles: Sequence[str]) -> List[ContentNode]:
        """Stored siblings of ``node`` (itself included) that may own a heading titled one of ``titles``."""

        if node.parent_id is None:
            return [node]
        peers = [
            sibling
            for sibling in self.store.children_of(node.parent_id)
            if sibling.node_type is node.node_type and (sibling.id == node.id or sibling.title in titles)
        ]
        if all(peer.id != node.id for peer in peers):
            peers.append(node)
        if node.node_type is NodeType.SLIDE:
            return sorted(peers, key=lambda peer: (peer.display_order, peer.id or 0))
        # containers are imported in document order and added at the end of their parent
        return sorted(peers, key=lambda peer: peer.id or 0)

    def _claimed_heading(
        self,
        node: ContentNode,
        titles: Sequence[str],
        candidates: Sequence[Heading],
        created: bool = False,
    ) -> Optional[Heading]:
        """The candidate heading that belongs to ``node`` when same-titled siblings share a scope.

        Same-titled siblings claim matching headings in stored order; a node
        with no heading left to claim gets None. A ``created`` node only claims
        a heading when every same-titled sibling already has one.
        """

        peers = [peer.id for peer in self._peers(node, titles)]
        if not candidates or (created and len(candidates) < len(peers)):
            return None
        position = peers.index(node.id)
        return candidates[position] if position < len(candidates) else None


def _find_heading(text: str, rank: int, titles: Sequence[str], start: int, end: int) -> Optional[Heading]:
    for heading in headings_of_rank(text, rank, start, end):
        if heading.text in titles:
            return heading
    return None


def _splice(text: str, start: int, stop: int, block: str) -> str:
    """Replace ``text[start:stop]`` with ``block``, separated from its neighbours by exactly one blank line."""

    before = text[:start].rstrip()
    after = _LEADING_BLANK_LINES.sub("", text[stop:]).rstrip()
    parts = [part for part in (before, block.strip(), after) if part]
    return "\n\n".join(parts) + "\n"


__all__ = ["ContentSyncService", "SyncResult", "default_classifiers"]
