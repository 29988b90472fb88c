"""Applies ADD / UPDATE / DELETE proposal batches to the content store.

A batch is applied in list order inside one unit of work: either every
proposal lands or none does. Touched nodes are written back to their source
files only after the commit, and the resulting file changes are handed to the
publisher as one branch and pull request.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from coursecraft.errors import CourseCraftError, InvalidNodeError, ParentNotFound, ProposalBatchError
from coursecraft.ingest.markdown import split_slide_body
from coursecraft.ingest.scanner import SLIDE_RANK
from coursecraft.models.node import STRUCTURAL_TYPES, ContentNode, NodeType
from coursecraft.models.proposal import Proposal, ProposalAction, parse_proposals
from coursecraft.models.section import ParsedComponent
from coursecraft.proposals.summary import render_pr_description
from coursecraft.store.sqlite import ContentStore
from coursecraft.sync.publisher import Publisher
from coursecraft.sync.renderer import canonical_content, strip_leading_heading
from coursecraft.sync.writer import ContentSyncService, SyncResult

logger = logging.getLogger(__name__)

SLIDE_ORDER_STEP = 1
CONTAINER_ORDER_STEP = 10


@dataclass(slots=True)
class ApplyResult:
    touched: List[ContentNode]
    branch: str
    sync_results: List[SyncResult] = field(default_factory=list)
    published: bool = False
    pr_url: Optional[str] = None

    @property
    def files_changed(self) -> bool:
        return any(result.changed for result in self.sync_results)


class ProposalEngine:
    def __init__(
        self,
        store: ContentStore,
        syncer: Optional[ContentSyncService] = None,
        publisher: Optional[Publisher] = None,
        *,
        branch_prefix: str = "content-update",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.syncer = syncer
        self.publisher = publisher
        self.branch_prefix = branch_prefix
        self.clock = clock

    def branch_name(self) -> str:
        return f"{self.branch_prefix}-{int(self.clock() * 1000)}"

    def apply(self, proposals: Iterable[Union[Proposal, dict]], branch: Optional[str] = None) -> ApplyResult:
        """Apply a batch atomically, then write back and publish what it touched.

        Raises ProposalBatchError naming the failing proposal when the batch is
        rolled back. PublishFailure propagates after the store has committed.
        """

        batch = parse_proposals(proposals)
        branch = branch or self.branch_name()
        # node id -> title the node had before this batch renamed it
        touched: Dict[int, Optional[str]] = {}
        added: Set[int] = set()

        with self.store.unit_of_work():
            for index, proposal in enumerate(batch):
                try:
                    self._apply_one(proposal, touched, added)
                except (CourseCraftError, sqlite3.Error) as exc:
                    logger.error("Proposal %d (%s) failed: %s", index, proposal.action.value, exc)
                    raise ProposalBatchError(index, proposal, exc) from exc
        logger.info("Applied %d proposal(s); %d node(s) touched", len(batch), len(touched))

        result = ApplyResult(touched=[], branch=branch)
        for node_id, previous_title in touched.items():
            node = self.store.get_node(node_id)
            if node is None:
                continue
            result.touched.append(node)
            if self.syncer is not None:
                result.sync_results.append(
                    self.syncer.sync_node_to_file(node, previous_title=previous_title, created=node_id in added)
                )

        if result.files_changed and self.publisher is not None:
            count = len(result.touched)
            self.publisher.commit_and_push(branch, f"Apply content updates: {count} changes")
            result.pr_url = self.publisher.create_pr(
                branch,
                f"Content Updates: {count} changes",
                render_pr_description(batch),
            )
            result.published = True
        elif result.touched and self.syncer is not None and not result.files_changed:
            logger.warning("Store updated but no source files changed; nothing to publish")
        return result

    # ------------------------------------------------------------------ actions
    def _apply_one(self, proposal: Proposal, touched: Dict[int, Optional[str]], added: Set[int]) -> None:
        if proposal.action is ProposalAction.ADD:
            node = self._add(proposal)
            assert node.id is not None
            touched[node.id] = None
            added.add(node.id)
        elif proposal.action is ProposalAction.UPDATE:
            assert proposal.target_node_id is not None
            previous = self.store.require_node(proposal.target_node_id)
            node = self._update(proposal, previous)
            assert node.id is not None
            if node.id not in touched:
                touched[node.id] = previous.title if previous.title != node.title else None
        else:
            assert proposal.target_node_id is not None
            removed = [proposal.target_node_id] + [d.id for d in self.store.descendants(proposal.target_node_id)]
            self.store.delete_node(proposal.target_node_id)
            for node_id in removed:
                touched.pop(node_id, None)
                added.discard(node_id)

    def _add(self, proposal: Proposal) -> ContentNode:
        assert proposal.parent_node_id is not None
        parent = self.store.get_node(proposal.parent_node_id)
        if parent is None:
            raise ParentNotFound(proposal.parent_node_id)
        title = proposal.title.strip()
        if not title:
            raise InvalidNodeError(f"ADD {proposal.node_type.value} requires a title")

        content, components = self._prepare_content(proposal.node_type, title, proposal.content)
        display_order = proposal.display_order
        if display_order is None:
            display_order = self._next_display_order(parent.id, proposal.node_type)
        node = self.store.create_node(
            ContentNode(
                node_type=proposal.node_type,
                title=title,
                parent_id=parent.id,
                node_number=proposal.node_number or None,
                display_order=display_order,
                metadata={"rationale": proposal.rationale} if proposal.rationale else {},
            ),
            content,
        )
        self._store_components(node, components)
        return node

    def _update(self, proposal: Proposal, node: ContentNode) -> ContentNode:
        assert node.id is not None
        if proposal.node_type is not node.node_type:
            logger.warning(
                "UPDATE proposal says %s but node %s is a %s; using the stored type",
                proposal.node_type.value,
                node.id,
                node.node_type.value,
            )
        title = proposal.title.strip() or node.title
        node = self.store.update_metadata(
            node.id,
            title=title if title != node.title else None,
            node_number=proposal.node_number.strip() if proposal.node_number and proposal.node_number.strip() else None,
            display_order=proposal.display_order,
        )

        components: List[ParsedComponent] = []
        if proposal.content.strip():
            content, components = self._prepare_content(node.node_type, title, proposal.content)
        else:
            content = self.store.latest_content(node.id)
            if node.node_type in STRUCTURAL_TYPES:
                content = canonical_content(node.node_type, title, content)
        node = self.store.update_node(node.id, content)
        self._store_components(node, components)
        return node

    # ------------------------------------------------------------------ helpers
    def _prepare_content(self, node_type: NodeType, title: str, content: str) -> tuple[str, List[ParsedComponent]]:
        if node_type is NodeType.SLIDE:
            return split_slide_body(strip_leading_heading(content, SLIDE_RANK))
        if node_type in STRUCTURAL_TYPES:
            return canonical_content(node_type, title, content), []
        return content, []

    def _store_components(self, node: ContentNode, components: List[ParsedComponent]) -> None:
        assert node.id is not None
        for parsed in components:
            component = self.store.get_or_create_component(node.id, parsed.component_type, parsed.content)
            if component.content != parsed.content:
                assert component.id is not None
                self.store.update_component(component.id, parsed.content)

    def _next_display_order(self, parent_id: Optional[int], node_type: NodeType) -> int:
        assert parent_id is not None
        siblings = [c.display_order for c in self.store.children_of(parent_id) if c.node_type is node_type]
        step = SLIDE_ORDER_STEP if node_type is NodeType.SLIDE else CONTAINER_ORDER_STEP
        return (max(siblings) if siblings else 0) + step


__all__ = ["ApplyResult", "ProposalEngine"]
