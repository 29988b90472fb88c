from pathlib import Path

import pytest
from pydantic import ValidationError

from coursecraft.errors import NodeNotFound, ParentNotFound, ProposalBatchError, PublishFailure
from coursecraft.models.node import ComponentType, ContentNode, NodeType
from coursecraft.models.proposal import Proposal, ProposalSource
from coursecraft.proposals.engine import ProposalEngine
from coursecraft.store.sqlite import ContentStore, SQLiteContentConfig
from coursecraft.sync.writer import SyncResult


class StubSyncer:
    def __init__(self, changed: bool = True) -> None:
        self.changed = changed
        self.calls = []
        self.created = []

    def sync_node_to_file(self, node, previous_title=None, created=False):
        self.calls.append((node.id, node.title, previous_title))
        self.created.append(created)
        return SyncResult(node_id=node.id, path=Path("lecture.md"), success=True, changed=self.changed)


class StubPublisher:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.pushed = []
        self.prs = []

    def commit_and_push(self, branch, message):
        if self.fail:
            raise PublishFailure(["git", "push"], 1, "remote rejected")
        self.pushed.append((branch, message))

    def create_pr(self, branch, title, body):
        self.prs.append((branch, title, body))
        return "https://example.invalid/pr/1"


def build_course(tmp_path):
    store = ContentStore(SQLiteContentConfig(db_path=Path(tmp_path) / "content.db"))
    store.initialize()
    course = store.create_node(ContentNode(NodeType.COURSE, "Course"), "# Course")
    lecture = store.create_node(
        ContentNode(NodeType.LECTURE, "Lecture 1: Basics", parent_id=course.id, node_number="1"),
        "## Lecture 1: Basics\n\nIntro.",
    )
    section = store.create_node(
        ContentNode(NodeType.SECTION, "1. Old", parent_id=lecture.id, node_number="1.1", display_order=10),
        "### 1. Old\n\nSection text.",
    )
    return store, lecture, section


def test_add_slide_splits_body_and_components(tmp_path):
    store, lecture, _ = build_course(tmp_path)
    engine = ProposalEngine(store)

    result = engine.apply(
        [
            {
                "action": "ADD",
                "nodeType": "SLIDE",
                "parentNodeId": lecture.id,
                "title": "New Slide",
                "content": (
                    "##### [seq:004] New Slide\nSlide body.\n\n###### SCRIPT\nSay it.\n\n###### NOTES\nRemember."
                ),
                "displayOrder": 4,
            }
        ]
    )

    (slide,) = result.touched
    assert slide.node_type is NodeType.SLIDE
    assert slide.display_order == 4
    assert store.latest_content(slide.id) == "Slide body."
    components = store.components_of(slide.id)
    assert [(c.component_type, c.content) for c in components] == [
        (ComponentType.SCRIPT, "Say it."),
        (ComponentType.NOTES, "Remember."),
    ]
    assert result.sync_results == []
    assert result.published is False


def test_failed_batch_leaves_store_unchanged(tmp_path):
    store, lecture, _ = build_course(tmp_path)
    before = [node.id for node in store.iter_nodes()]
    engine = ProposalEngine(store, StubSyncer(), StubPublisher())

    with pytest.raises(ProposalBatchError) as excinfo:
        engine.apply(
            [
                Proposal(action="ADD", node_type="SECTION", parent_node_id=lecture.id, title="2. New"),
                Proposal(action="UPDATE", node_type="SECTION", target_node_id=9999, content="x"),
            ]
        )

    assert excinfo.value.index == 1
    assert isinstance(excinfo.value.cause, NodeNotFound)
    assert [node.id for node in store.iter_nodes()] == before
    assert [n.title for n in store.children_of(lecture.id)] == ["1. Old"]


def test_malformed_record_reports_its_index(tmp_path):
    store, lecture, _ = build_course(tmp_path)
    before = [node.id for node in store.iter_nodes()]

    with pytest.raises(ProposalBatchError) as excinfo:
        ProposalEngine(store, StubSyncer()).apply(
            [
                {"action": "ADD", "nodeType": "SLIDE", "parentNodeId": lecture.id, "title": "Fine"},
                {"action": "UPDATE", "nodeType": "SLIDE"},
            ]
        )

    assert excinfo.value.index == 1
    assert isinstance(excinfo.value.cause, ValidationError)
    assert "UPDATE" in str(excinfo.value)
    assert [node.id for node in store.iter_nodes()] == before


def test_missing_parent_aborts_batch(tmp_path):
    store, _, _ = build_course(tmp_path)
    with pytest.raises(ProposalBatchError) as excinfo:
        ProposalEngine(store).apply(
            [Proposal(action="ADD", node_type="SLIDE", parent_node_id=4242, title="Lost")]
        )
    assert excinfo.value.index == 0
    assert isinstance(excinfo.value.cause, ParentNotFound)


def test_update_renames_heading_and_reuses_content(tmp_path):
    store, _, section = build_course(tmp_path)
    syncer = StubSyncer()
    engine = ProposalEngine(store, syncer)

    engine.apply([Proposal(action="UPDATE", node_type="SECTION", target_node_id=section.id, title="1. New")])

    assert store.require_node(section.id).title == "1. New"
    assert store.latest_content(section.id) == "### 1. New\n\nSection text."
    assert [v.version_number for v in store.list_versions(section.id)] == [1, 2]
    assert syncer.calls == [(section.id, "1. New", "1. Old")]
    assert syncer.created == [False]


def test_update_content_gets_canonical_heading(tmp_path):
    store, _, section = build_course(tmp_path)
    ProposalEngine(store).apply(
        [
            {
                "action": "UPDATE",
                "nodeType": "SECTION",
                "targetNodeId": section.id,
                "content": "Rewritten text.",
                "nodeNumber": "1.9",
                "displayOrder": 90,
            }
        ]
    )
    node = store.require_node(section.id)
    assert store.latest_content(section.id) == "### 1. Old\n\nRewritten text."
    assert (node.node_number, node.display_order) == ("1.9", 90)


def test_delete_drops_node_and_touched_descendants(tmp_path):
    store, lecture, section = build_course(tmp_path)
    slide = store.create_node(ContentNode(NodeType.SLIDE, "S", parent_id=section.id, display_order=1), "body")
    syncer = StubSyncer()

    result = ProposalEngine(store, syncer).apply(
        [
            Proposal(action="UPDATE", node_type="SLIDE", target_node_id=slide.id, content="changed"),
            Proposal(action="ADD", node_type="SLIDE", parent_node_id=lecture.id, title="Keep me", content="kept"),
            Proposal(action="DELETE", node_type="SECTION", target_node_id=section.id),
        ]
    )

    assert [node.title for node in result.touched] == ["Keep me"]
    assert [call[1] for call in syncer.calls] == ["Keep me"]
    assert syncer.created == [True]
    assert store.get_node(section.id) is None
    assert store.get_node(slide.id) is None


def test_changed_files_are_published_on_one_branch(tmp_path):
    store, lecture, _ = build_course(tmp_path)
    publisher = StubPublisher()
    engine = ProposalEngine(store, StubSyncer(changed=True), publisher, clock=lambda: 1_700_000_000.0)

    result = engine.apply(
        [Proposal(action="ADD", node_type="SLIDE", parent_node_id=lecture.id, title="Fresh", rationale="gap")]
    )

    assert result.branch == "content-update-1700000000000"
    assert publisher.pushed == [("content-update-1700000000000", "Apply content updates: 1 changes")]
    (pr,) = publisher.prs
    assert pr[1] == "Content Updates: 1 changes"
    assert "ADD: Fresh" in pr[2]
    assert result.published is True
    assert result.pr_url == "https://example.invalid/pr/1"


def test_nothing_published_when_no_file_changed(tmp_path):
    store, lecture, _ = build_course(tmp_path)
    publisher = StubPublisher()
    ProposalEngine(store, StubSyncer(changed=False), publisher).apply(
        [Proposal(action="ADD", node_type="SLIDE", parent_node_id=lecture.id, title="Quiet")]
    )
    assert publisher.pushed == []
    assert publisher.prs == []


def test_publish_failure_propagates_after_commit(tmp_path):
    store, lecture, _ = build_course(tmp_path)
    engine = ProposalEngine(store, StubSyncer(changed=True), StubPublisher(fail=True))

    with pytest.raises(PublishFailure) as excinfo:
        engine.apply([Proposal(action="ADD", node_type="SLIDE", parent_node_id=lecture.id, title="Committed")])

    assert excinfo.value.returncode == 1
    assert [n.title for n in store.children_of(lecture.id) if n.node_type is NodeType.SLIDE] == ["Committed"]


def test_add_without_display_order_follows_siblings(tmp_path):
    store, lecture, _ = build_course(tmp_path)
    result = ProposalEngine(store).apply(
        [
            Proposal(action="ADD", node_type="SECTION", parent_node_id=lecture.id, title="2. Next"),
            Proposal(action="ADD", node_type="SLIDE", parent_node_id=lecture.id, title="One"),
        ]
    )
    section, slide = result.touched
    assert section.display_order == 20
    assert slide.display_order == 1
    assert store.latest_content(section.id) == "### 2. Next"


class CannedSource:
    def __init__(self, parent_id):
        self.parent_id = parent_id

    def propose(self, request):
        return [Proposal(action="ADD", node_type="TOPIC", parent_node_id=self.parent_id, title=request)]


def test_engine_applies_proposals_from_a_source(tmp_path):
    store, _, section = build_course(tmp_path)
    source: ProposalSource = CannedSource(section.id)

    result = ProposalEngine(store).apply(source.propose("Follow-up"))

    assert [node.title for node in result.touched] == ["Follow-up"]
    assert [child.title for child in store.children_of(section.id)] == ["Follow-up"]
