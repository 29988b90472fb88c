"""Course content hierarchy: Markdown import, versioned storage, proposals and write-back."""

from .models.node import ComponentType, ContentNode, NodeType
from .models.proposal import Proposal

__all__ = ["ComponentType", "ContentNode", "NodeType", "Proposal"]
