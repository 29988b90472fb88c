from __future__ import annotations

from typing import Any, Optional, Sequence


class CourseCraftError(Exception):
    """Base class for all coursecraft failures."""


class ParseError(CourseCraftError):
    """Heading structure of a single document is missing or malformed."""

    NO_COURSE_HEADING = "NoCourseHeading"
    MULTIPLE_COURSE_HEADINGS = "MultipleCourseHeadings"

    def __init__(self, reason: str, source: Optional[str] = None, detail: str = "") -> None:
        self.reason = reason
        self.source = source
        self.detail = detail
        where = f" in {source}" if source else ""
        suffix = f": {detail}" if detail else ""
        super().__init__(f"{reason}{where}{suffix}")


class NotFoundError(CourseCraftError):
    """A referenced node does not exist."""

    def __init__(self, node_id: Any, message: Optional[str] = None) -> None:
        self.node_id = node_id
        super().__init__(message or f"Node not found: {node_id}")


class NodeNotFound(NotFoundError):
    pass


class ParentNotFound(NotFoundError):
    def __init__(self, node_id: Any) -> None:
        super().__init__(node_id, f"Parent node not found: {node_id}")


class InvalidNodeError(CourseCraftError):
    """A node or component violates a structural invariant."""


class VersionConflict(CourseCraftError):
    """Reserved for optimistic concurrency checks on UPDATE; nothing raises it yet."""


class UnknownComponentType(CourseCraftError):
    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(f"Unknown component type: {label!r}")


class InvalidSequenceNumber(CourseCraftError):
    def __init__(self, raw: str) -> None:
        self.raw = raw
        super().__init__(f"Invalid slide sequence number: {raw!r}")


class ProposalBatchError(CourseCraftError):
    """A proposal batch was aborted; nothing from it was committed."""

    def __init__(self, index: int, proposal: Any, cause: Exception) -> None:
        self.index = index
        self.proposal = proposal
        self.cause = cause
        action = proposal.get("action") if isinstance(proposal, dict) else getattr(proposal, "action", None)
        label = getattr(action, "value", action)
        super().__init__(f"Proposal #{index} ({label}) aborted the batch: {cause}")


class ProposalStateError(CourseCraftError):
    """A pending proposal batch is not in a state that allows the request."""


class SyncError(CourseCraftError):
    """A node could not be written back to its source file."""

    def __init__(self, node_id: Any, path: Any, reason: str) -> None:
        self.node_id = node_id
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to sync node {node_id} to {path}: {reason}")


class PublishFailure(CourseCraftError):
    """An external commit / pull-request command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"Command failed ({returncode}): {' '.join(self.command)}{detail}")


__all__ = [
    "CourseCraftError",
    "InvalidNodeError",
    "InvalidSequenceNumber",
    "NodeNotFound",
    "NotFoundError",
    "ParentNotFound",
    "ParseError",
    "ProposalBatchError",
    "ProposalStateError",
    "PublishFailure",
    "SyncError",
    "UnknownComponentType",
    "VersionConflict",
]
