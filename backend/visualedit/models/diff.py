"""Diff artifact handed to the delivery collaborator after a commit."""

from __future__ import annotations

from pydantic import BaseModel, Field


class NodeDiff(BaseModel):
    label: str = Field(..., description="Short element label, e.g. button#save.primary")
    path: str = Field(default="", description="Tree path of the node at request time")
    before: str = Field(..., description="Baseline markup captured the first time the node was touched")
    after: str | None = Field(default=None, description="Markup after the edit; None when the edit removed the node")
    diff: str = Field(default="", description="Unified line diff from baseline to current")
    script: str = Field(default="", description="Accepted (sanitized) script")


class DiffArtifact(BaseModel):
    request_id: str
    session_id: str
    prompts: list[str] = Field(default_factory=list)
    nodes: list[NodeDiff] = Field(default_factory=list)
