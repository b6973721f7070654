"""RequestContext — the mutable state of one edit request while it resolves.

Per-node state → TargetState (context markup, resolution, accepted script)
Request-wide state → RequestContext (prompt, ordering, timing)
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field

from lxml import etree

from visualedit.models.conversation import Message


def new_request_id() -> str:
    return f"req-{uuid.uuid4().hex[:12]}"


@dataclass
class EditRequest:
    """One prompt against an ordered, non-empty list of target nodes."""

    prompt: str
    nodes: list[etree._Element]
    id: str = field(default_factory=new_request_id)


@dataclass
class NodeResolution:
    """What the iteration driver settled on for one node."""

    code: str
    # user/assistant/feedback messages of this node's exchange, in send order
    messages: list[Message] = field(default_factory=list)
    # Iterate-directives processed before the final script arrived
    iterations: int = 0


@dataclass
class TargetState:
    """Data for a single target node of a request."""

    node: etree._Element
    # Short label for messages, e.g. button#save.primary
    label: str = ""
    # Tree path at request time
    path: str = ""
    # Ancestor-bounded markup used in the first prompt for this node
    context: str = ""
    # Serialized subtree at request time
    markup: str = ""
    # Set by the driver once a final script arrives
    resolution: NodeResolution | None = None
    # Sanitized script actually executed at commit
    script: str = ""


@dataclass
class RequestContext:
    """Shared state flowing through one request."""

    request: EditRequest
    targets: list[TargetState] = field(default_factory=list)
    # Target currently being resolved or committed (for error labels)
    current: TargetState | None = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def request_id(self) -> str:
        return self.request.id

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at
