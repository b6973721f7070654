"""VisualEditor — inbound facade: start requests, undo, redo."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from lxml import etree

from visualedit.dom.context import build_ancestor_context
from visualedit.dom.document import Document
from visualedit.engine.config import EngineConfig
from visualedit.engine.context import EditRequest
from visualedit.engine.driver import ContextBuilder
from visualedit.engine.errors import RequestInProgress
from visualedit.engine.ledger import LedgerEntry, SessionLedger
from visualedit.engine.orchestrator import DeliverFn, RequestOrchestrator
from visualedit.engine.sandbox import ScriptRunner
from visualedit.llm.client import ScriptGenerator
from visualedit.models.events import AgentEvent

logger = logging.getLogger(__name__)


class VisualEditor:
    """One document, one generator, one lazily created session.

    Only one request runs at a time; starting a second while the first is
    streaming raises RequestInProgress.
    """

    def __init__(
        self,
        document: Document,
        generator: ScriptGenerator,
        runner: ScriptRunner | None = None,
        config: EngineConfig | None = None,
        context_builder: ContextBuilder = build_ancestor_context,
        deliver: DeliverFn | None = None,
    ) -> None:
        self.document = document
        self.generator = generator
        self.runner = runner
        self.config = config or EngineConfig()
        self.context_builder = context_builder
        self.deliver = deliver
        self._session: SessionLedger | None = None
        self._busy = False

    @property
    def session(self) -> SessionLedger | None:
        return self._session

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def can_undo(self) -> bool:
        return self._session is not None and self._session.can_undo

    @property
    def can_redo(self) -> bool:
        return self._session is not None and self._session.can_redo

    def select(self, xpath: str) -> list[etree._Element]:
        return self.document.select(xpath)

    def _orchestrator(self, ledger: SessionLedger) -> RequestOrchestrator:
        return RequestOrchestrator(
            self.document,
            self.generator,
            ledger,
            runner=self.runner,
            config=self.config,
            context_builder=self.context_builder,
            deliver=self.deliver,
        )

    async def start_request(
        self,
        prompt: str,
        nodes: list[etree._Element],
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[AgentEvent]:
        if self._busy:
            raise RequestInProgress("An edit request is already running for this document")
        self._busy = True
        try:
            if self._session is None:
                self._session = SessionLedger()
                logger.info("Started session %s", self._session.id)
            request = EditRequest(prompt=prompt, nodes=list(nodes))
            async with aclosing(self._orchestrator(self._session).run(request, cancel)) as events:
                async for event in events:
                    yield event
        finally:
            self._busy = False

    def undo(self) -> LedgerEntry | None:
        if self._session is None:
            return None
        self._check_idle()
        return self._session.undo()

    def redo(self) -> LedgerEntry | None:
        """Re-run the last undone request's scripts. Raises ReplayError if they no longer apply."""
        if self._session is None:
            return None
        self._check_idle()
        return self._session.redo(self._orchestrator(self._session).replay)

    def discard_session(self) -> None:
        self._check_idle()
        if self._session is not None:
            logger.info("Discarded session %s", self._session.id)
        self._session = None

    def _check_idle(self) -> None:
        if self._busy:
            raise RequestInProgress("An edit request is still running for this document")
