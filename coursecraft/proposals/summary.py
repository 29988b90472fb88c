from __future__ import annotations

from typing import List, Sequence

from coursecraft.models.proposal import Proposal, ProposalAction

PREVIEW_LIMIT = 300


def render_pr_description(proposals: Sequence[Proposal], heading: str = "Content Updates") -> str:
    """Markdown body for the pull request that carries a proposal batch."""

    lines: List[str] = [f"# {heading}", "", f"This PR contains the following {len(proposals)} changes:", ""]
    for index, proposal in enumerate(proposals, start=1):
        lines.append(f"## {index}. {proposal.action.value}: {proposal.title}")
        lines.append("")
        lines.append(f"**Node Type:** {proposal.node_type.value}")
        if proposal.target_node_id is not None:
            lines.append(f"**Target Node ID:** {proposal.target_node_id}")
        if proposal.parent_node_id is not None:
            lines.append(f"**Parent Node ID:** {proposal.parent_node_id}")
        lines.append(f"**Rationale:** {proposal.rationale}")
        lines.append("")
        if proposal.action is ProposalAction.DELETE:
            continue

        lines.append("<details>")
        lines.append("<summary>Content Preview</summary>")
        lines.append("")
        content = proposal.content
        if content:
            preview = content[:PREVIEW_LIMIT] + "..." if len(content) > PREVIEW_LIMIT else content
        else:
            preview = "No content provided in this proposal (structural change or title update only)."
        lines.extend(["<pre>", preview, "</pre>", "</details>", ""])

    lines.append("Please review these changes and provide feedback.")
    return "\n".join(lines)


__all__ = ["PREVIEW_LIMIT", "render_pr_description"]
