from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from coursecraft.models.node import ComponentType, NodeType


@dataclass(slots=True)
class ParsedComponent:
    """A ``###### TYPE`` sub-block recovered from a slide."""

    component_type: ComponentType
    content: str
    span: Tuple[int, int] = (0, 0)


@dataclass(slots=True)
class ParsedNode:
    """A heading-scoped block recovered from a Markdown document, before persistence."""

    node_type: NodeType
    title: str
    content: str
    display_order: int = 0
    node_number: Optional[str] = None
    span: Tuple[int, int] = (0, 0)
    children: List["ParsedNode"] = field(default_factory=list)
    components: List[ParsedComponent] = field(default_factory=list)

    def add_child(self, child: "ParsedNode") -> None:
        self.children.append(child)

    def walk(self) -> Iterator["ParsedNode"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, node_type: NodeType) -> List["ParsedNode"]:
        return [node for node in self.walk() if node.node_type is node_type]


__all__ = ["ParsedComponent", "ParsedNode"]
