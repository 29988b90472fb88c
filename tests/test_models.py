import pytest
from pydantic import ValidationError

from coursecraft.errors import InvalidNodeError, ProposalBatchError, UnknownComponentType
from coursecraft.models.node import ComponentType, ContentNode, NodeType
from coursecraft.models.proposal import Proposal, ProposalAction, parse_proposals
from coursecraft.models.section import ParsedComponent, ParsedNode


def test_parsed_node_walk_and_find():
    course = ParsedNode(NodeType.COURSE, "Course", "# Course")
    lecture = ParsedNode(NodeType.LECTURE, "Lecture 1", "## Lecture 1")
    slide = ParsedNode(
        NodeType.SLIDE,
        "S",
        "body",
        components=[ParsedComponent(ComponentType.SCRIPT, "say")],
    )
    course.add_child(lecture)
    lecture.add_child(slide)

    assert [node.title for node in course.walk()] == ["Course", "Lecture 1", "S"]
    assert course.find(NodeType.SLIDE) == [slide]


def test_content_node_invariants():
    with pytest.raises(InvalidNodeError):
        ContentNode(NodeType.COURSE, "Child course", parent_id=1)
    with pytest.raises(InvalidNodeError):
        ContentNode(NodeType.SLIDE, "Orphan slide")

    lecture = ContentNode("lecture", "Lecture 1", parent_id=1)
    assert lecture.node_type is NodeType.LECTURE
    assert ContentNode(NodeType.COURSE, "Course").is_root


def test_node_type_heading_ranks():
    assert NodeType.COURSE.heading_rank == 1
    assert NodeType.SLIDE.heading_rank == 5
    assert NodeType.MODULE.heading_rank is None
    assert NodeType.for_rank(3) is NodeType.SECTION
    with pytest.raises(ValueError):
        NodeType.for_rank(6)


def test_component_type_parse_is_case_insensitive():
    assert ComponentType.parse(" script ") is ComponentType.SCRIPT
    assert ComponentType.parse("Demonstration") is ComponentType.DEMONSTRATION
    with pytest.raises(UnknownComponentType):
        ComponentType.parse("QUIZ")


def test_proposal_accepts_wire_shape():
    proposal = Proposal.model_validate(
        {
            "action": "add",
            "nodeType": "slide",
            "parentNodeId": 3,
            "title": "T",
            "content": None,
            "displayOrder": 5,
        }
    )
    assert proposal.action is ProposalAction.ADD
    assert proposal.node_type is NodeType.SLIDE
    assert proposal.parent_node_id == 3
    assert proposal.content == ""
    assert proposal.display_order == 5


def test_proposal_requires_references():
    with pytest.raises(ValidationError):
        Proposal(action="ADD", node_type="SLIDE", title="No parent")
    with pytest.raises(ValidationError):
        Proposal(action="DELETE", node_type="SLIDE")
    with pytest.raises(ValidationError):
        Proposal(action="MOVE", node_type="SLIDE", target_node_id=1)


def test_proposal_display_order_cannot_be_negative():
    with pytest.raises(ValidationError):
        Proposal(action="ADD", node_type="SLIDE", parent_node_id=1, title="T", display_order=-5)
    assert Proposal(action="ADD", node_type="SLIDE", parent_node_id=1, title="T", display_order=0).display_order == 0


def test_parse_proposals_names_the_bad_record():
    with pytest.raises(ProposalBatchError) as excinfo:
        parse_proposals(
            [
                {"action": "DELETE", "nodeType": "TOPIC", "targetNodeId": 3},
                {"action": "ADD", "nodeType": "SLIDE", "title": "No parent"},
            ]
        )
    assert excinfo.value.index == 1
    assert excinfo.value.proposal == {"action": "ADD", "nodeType": "SLIDE", "title": "No parent"}
