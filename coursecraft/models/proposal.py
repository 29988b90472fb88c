from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from coursecraft.errors import ProposalBatchError
from coursecraft.models.node import NodeType


class ProposalAction(str, Enum):
    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class Proposal(BaseModel):
    """A single ADD / UPDATE / DELETE instruction against the hierarchy.

    Accepts the collaborator's camelCase keys (``targetNodeId``) as well as
    snake_case field names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    action: ProposalAction
    node_type: NodeType
    target_node_id: Optional[int] = None
    parent_node_id: Optional[int] = None
    title: str = ""
    node_number: Optional[str] = None
    content: str = ""
    rationale: str = ""
    display_order: Optional[int] = Field(default=None, ge=0)

    @field_validator("action", "node_type", mode="before")
    @classmethod
    def _upper(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("content", "title", "rationale", mode="before")
    @classmethod
    def _none_to_blank(cls, value: object) -> object:
        return "" if value is None else value

    @model_validator(mode="after")
    def _check_references(self) -> "Proposal":
        if self.action is ProposalAction.ADD and self.parent_node_id is None:
            raise ValueError("ADD proposals require parentNodeId")
        if self.action is not ProposalAction.ADD and self.target_node_id is None:
            raise ValueError(f"{self.action.value} proposals require targetNodeId")
        return self


class ProposalSource(Protocol):
    """Anything that produces proposals (an LLM analyzer, a batch script, a human)."""

    def propose(self, request: str) -> List[Proposal]:
        ...


def parse_proposals(items: Iterable[object]) -> List[Proposal]:
    """Validate raw records in order; a bad record raises ProposalBatchError carrying its index."""

    batch: List[Proposal] = []
    for index, item in enumerate(items):
        if isinstance(item, Proposal):
            batch.append(item)
            continue
        try:
            batch.append(Proposal.model_validate(item))
        except ValidationError as exc:
            raise ProposalBatchError(index, item, exc) from exc
    return batch


__all__ = ["Proposal", "ProposalAction", "ProposalSource", "parse_proposals"]
