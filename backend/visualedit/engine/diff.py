"""Diff artifacts — baseline vs. current markup per node, and the reference text block."""

from __future__ import annotations

import difflib

from visualedit.dom.document import Document
from visualedit.engine.context import RequestContext
from visualedit.engine.ledger import SessionLedger
from visualedit.models.diff import DiffArtifact, NodeDiff

REFERENCE_PREFIX = "Use this as reference to make the change, do not actually write this code:\n\n"
REMOVED = "(removed)"


def unified_diff(before: str, after: str | None, label: str = "el") -> str:
    lines = difflib.unified_diff(
        before.splitlines(),
        (after or "").splitlines(),
        fromfile=f"a/{label}",
        tofile=f"b/{label}",
        lineterm="",
    )
    return "\n".join(lines)


def build_artifact(ctx: RequestContext, ledger: SessionLedger, document: Document) -> DiffArtifact:
    """Diff every target of a committed request against its session baseline."""
    nodes: list[NodeDiff] = []
    for target in ctx.targets:
        before = ledger.baseline(target.node, document.serialize)
        after = document.serialize(target.node) if document.contains(target.node) else None
        nodes.append(
            NodeDiff(
                label=target.label,
                path=target.path,
                before=before,
                after=after,
                diff=unified_diff(before, after, target.label),
                script=target.script,
            )
        )
    return DiffArtifact(
        request_id=ctx.request_id,
        session_id=ledger.id,
        prompts=list(ledger.prompts),
        nodes=nodes,
    )


def render_reference(artifact: DiffArtifact) -> str:
    """Text block for the delivery collaborator: scripts first, then prompts and before/after markup."""
    prompts = "\n".join(artifact.prompts)
    blocks: list[str] = []
    for node in artifact.nodes:
        context = f"Prompts:\n{prompts}\n\nBefore:\n{node.before}\n\nAfter:\n{node.after if node.after is not None else REMOVED}"
        blocks.append(f"{REFERENCE_PREFIX}{node.script}\n\n---\n\n{context}")
    return "\n\n===\n\n".join(blocks)
