"""Progress events streamed while an edit request runs."""

from __future__ import annotations

import json
from typing import Literal

from pydantic import BaseModel

from visualedit.models.diff import DiffArtifact

EventType = Literal["status", "done", "error"]


class AgentEvent(BaseModel):
    type: EventType
    content: str
    artifact: DiffArtifact | None = None

    @classmethod
    def status(cls, content: str) -> "AgentEvent":
        return cls(type="status", content=content)

    @classmethod
    def done(cls, content: str, artifact: DiffArtifact | None = None) -> "AgentEvent":
        return cls(type="done", content=content, artifact=artifact)

    @classmethod
    def error(cls, content: str) -> "AgentEvent":
        return cls(type="error", content=content)

    def to_sse(self) -> str:
        """Render as a server-sent event frame."""
        data = json.dumps(self.model_dump(exclude_none=True))
        return f"event: {self.type}\ndata: {data}\n\n"
