from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from coursecraft.errors import InvalidNodeError, UnknownComponentType


class NodeType(str, Enum):
    COURSE = "COURSE"
    MODULE = "MODULE"
    LECTURE = "LECTURE"
    SECTION = "SECTION"
    TOPIC = "TOPIC"
    SLIDE = "SLIDE"

    @property
    def heading_rank(self) -> Optional[int]:
        """Markdown heading rank used for this node type, None when it has no heading."""

        return _HEADING_RANKS.get(self)

    @classmethod
    def for_rank(cls, rank: int) -> "NodeType":
        for node_type, node_rank in _HEADING_RANKS.items():
            if node_rank == rank:
                return node_type
        raise ValueError(f"No node type uses heading rank {rank}")


_HEADING_RANKS: Dict[NodeType, int] = {
    NodeType.COURSE: 1,
    NodeType.LECTURE: 2,
    NodeType.SECTION: 3,
    NodeType.TOPIC: 4,
    NodeType.SLIDE: 5,
}

COMPONENT_RANK = 6
STRUCTURAL_TYPES = frozenset({NodeType.COURSE, NodeType.LECTURE, NodeType.SECTION, NodeType.TOPIC})


class ComponentType(str, Enum):
    SCRIPT = "SCRIPT"
    VISUAL = "VISUAL"
    NOTES = "NOTES"
    DEMONSTRATION = "DEMONSTRATION"

    @classmethod
    def parse(cls, label: str) -> "ComponentType":
        """Case-insensitive lookup of a rank-6 heading label."""

        key = (label or "").strip().upper()
        try:
            return cls(key)
        except ValueError as exc:
            raise UnknownComponentType(label) from exc


@dataclass(slots=True)
class ContentNode:
    """One element of the course hierarchy; children and versions live in the store."""

    node_type: NodeType
    title: str
    parent_id: Optional[int] = None
    id: Optional[int] = None
    description: Optional[str] = None
    node_number: Optional[str] = None
    display_order: int = 0
    path: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not isinstance(self.node_type, NodeType):
            self.node_type = NodeType(str(self.node_type).upper())
        if self.node_type is NodeType.COURSE and self.parent_id is not None:
            raise InvalidNodeError("COURSE nodes are roots and cannot have a parent")
        if self.node_type is not NodeType.COURSE and self.parent_id is None and self.id is None:
            raise InvalidNodeError(f"{self.node_type.value} node '{self.title}' requires a parent")

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass(slots=True)
class ContentVersion:
    """Immutable snapshot of a node's text."""

    node_id: int
    content: str
    version_number: int
    format: str = "MARKDOWN"
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(slots=True)
class SlideComponent:
    slide_node_id: int
    component_type: ComponentType
    content: str
    display_order: int = 10
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


__all__ = [
    "COMPONENT_RANK",
    "ComponentType",
    "ContentNode",
    "ContentVersion",
    "NodeType",
    "STRUCTURAL_TYPES",
    "SlideComponent",
]
