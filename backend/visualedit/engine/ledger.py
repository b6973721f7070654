"""Session ledger — prompts, conversation, baselines and the undo/redo stacks.

Pure bookkeeping. The ledger never talks to the generator and only mutates the
tree through the transactions it is handed (undo) or the replay callable it is
given (redo).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from lxml import etree

from visualedit.dom.recorder import CompositeTransaction
from visualedit.models.conversation import Message

logger = logging.getLogger(__name__)


@dataclass
class LedgerEntry:
    """A committed request: what ran where, and how to take it back."""

    request_id: str
    prompt: str
    nodes: list[etree._Element]
    labels: list[str]
    scripts: list[str]
    transaction: CompositeTransaction = field(default_factory=CompositeTransaction)


ReplayFn = Callable[[LedgerEntry], CompositeTransaction]


class SessionLedger:
    """Ephemeral, single-user session state. Created on the first request, never persisted."""

    def __init__(self, session_id: str | None = None) -> None:
        self.id = session_id or f"session-{uuid.uuid4().hex[:12]}"
        self.prompts: list[str] = []
        self.conversation: list[Message] = []
        self.undo_stack: list[LedgerEntry] = []
        self.redo_stack: list[LedgerEntry] = []
        # Keyed by id(node); the node is stored alongside so the id can't be reused
        self._baselines: dict[int, tuple[etree._Element, str]] = {}
        self._introduced: dict[int, etree._Element] = {}

    # -- history ------------------------------------------------------------

    def append_prompt(self, prompt: str) -> None:
        self.prompts.append(prompt)

    def append_message(self, message: Message) -> None:
        self.conversation.append(message)

    def extend_conversation(self, messages: list[Message]) -> None:
        self.conversation.extend(messages)

    # -- per-node state -------------------------------------------------------

    def baseline(self, node: etree._Element, serialize: Callable[[etree._Element], str]) -> str:
        """Snapshot of ``node`` from the first time it was touched this session."""
        key = id(node)
        if key not in self._baselines:
            self._baselines[key] = (node, serialize(node))
        return self._baselines[key][1]

    def has_baseline(self, node: etree._Element) -> bool:
        return id(node) in self._baselines

    def introduced(self, node: etree._Element) -> bool:
        """True once the node's context has been sent in a committed exchange."""
        return id(node) in self._introduced

    def mark_introduced(self, node: etree._Element) -> None:
        self._introduced[id(node)] = node

    # -- undo / redo ----------------------------------------------------------

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    def push(self, entry: LedgerEntry) -> None:
        """Record a newly committed request. Any redo history is discarded."""
        self.undo_stack.append(entry)
        if self.redo_stack:
            logger.debug("Session %s: dropping %d redo entries", self.id, len(self.redo_stack))
        self.redo_stack.clear()

    def undo(self) -> LedgerEntry | None:
        if not self.undo_stack:
            return None
        entry = self.undo_stack.pop()
        try:
            entry.transaction.undo()
        finally:
            # The transaction is drained either way; redo re-runs the scripts
            self.redo_stack.append(entry)
        logger.info("Session %s: undid %s", self.id, entry.request_id)
        return entry

    def redo(self, replay: ReplayFn) -> LedgerEntry | None:
        """Re-apply the most recently undone request through ``replay``.

        If ``replay`` raises, the entry stays on the redo stack and the error
        propagates.
        """
        if not self.redo_stack:
            return None
        entry = self.redo_stack[-1]
        transaction = replay(entry)
        self.redo_stack.pop()
        entry.transaction = transaction
        self.undo_stack.append(entry)
        logger.info("Session %s: redid %s", self.id, entry.request_id)
        return entry
