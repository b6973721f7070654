"""Request orchestrator — resolve every target, then commit them all or none."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing

from lxml import etree

from visualedit.dom.context import build_ancestor_context
from visualedit.dom.document import Document, describe
from visualedit.dom.recorder import CompositeTransaction, MutationRecorder, Transaction
from visualedit.engine.config import EngineConfig
from visualedit.engine.context import EditRequest, NodeResolution, RequestContext, TargetState
from visualedit.engine.diff import build_artifact
from visualedit.engine.driver import ContextBuilder, IterationDriver
from visualedit.engine.errors import EditError, ReplayError, ScriptFailed, ScriptRejected, TargetVanished
from visualedit.engine.ledger import LedgerEntry, SessionLedger
from visualedit.engine.sandbox import PythonSandbox, ScriptRunner
from visualedit.engine.validator import validate_script
from visualedit.llm.client import ScriptGenerator
from visualedit.models.conversation import Message
from visualedit.models.diff import DiffArtifact
from visualedit.models.events import AgentEvent

logger = logging.getLogger(__name__)

DeliverFn = Callable[[DiffArtifact], None]

APPLYING_CHANGES = "Applying changes…"


class RequestOrchestrator:
    """Owns one request from start to commit (or to a single error event)."""

    def __init__(
        self,
        document: Document,
        generator: ScriptGenerator,
        ledger: SessionLedger,
        runner: ScriptRunner | None = None,
        config: EngineConfig | None = None,
        context_builder: ContextBuilder = build_ancestor_context,
        deliver: DeliverFn | None = None,
    ) -> None:
        self.document = document
        self.ledger = ledger
        self.runner = runner or PythonSandbox()
        self.config = config or EngineConfig()
        self.deliver = deliver
        self.driver = IterationDriver(
            generator,
            document,
            runner=self.runner,
            config=self.config,
            context_builder=context_builder,
        )

    async def run(self, request: EditRequest, cancel: asyncio.Event | None = None) -> AsyncIterator[AgentEvent]:
        """Stream status events, ending with exactly one ``done`` or ``error`` event."""
        cancel = cancel or asyncio.Event()
        ctx = RequestContext(request=request)
        logger.info("Request %s: %r on %d node(s)", request.id, request.prompt, len(request.nodes))

        try:
            self._prepare(ctx)

            pending: list[Message] = []
            for target in ctx.targets:
                ctx.current = target
                history = [*self.ledger.conversation, *pending]
                first = not self.ledger.introduced(target.node)
                steps = self.driver.resolve(target, request.prompt, history, cancel, first_message=first)
                async with aclosing(steps) as resolving:
                    async for step in resolving:
                        if isinstance(step, NodeResolution):
                            target.resolution = step
                        else:
                            yield AgentEvent.status(step)
                pending.extend(target.resolution.messages)

            yield AgentEvent.status(APPLYING_CHANGES)
            transaction = self._commit(ctx)
        except Exception as e:
            label = ctx.current.label if ctx.current else ""
            if isinstance(e, EditError):
                logger.warning("Request %s failed on %s: %s", request.id, label or "request", e)
            else:
                logger.exception("Request %s crashed on %s", request.id, label or "request")
            yield AgentEvent.error(f"Failed to edit {label}: {e}" if label else f"Failed to edit: {e}")
            return

        artifact = self._record(ctx, transaction, pending)
        self._deliver(artifact)
        logger.info("Request %s committed in %.1fs (%d mutations)", request.id, ctx.elapsed, len(transaction))
        yield AgentEvent.done(f"Completed in {ctx.elapsed:.1f}s", artifact)

    # -- phases -------------------------------------------------------------

    def _prepare(self, ctx: RequestContext) -> None:
        nodes = ctx.request.nodes
        if not nodes:
            raise ScriptRejected("no target elements")

        seen: set[int] = set()
        for node in nodes:
            if id(node) in seen:
                continue
            seen.add(id(node))
            target = TargetState(node=node, label=describe(node))
            ctx.current = target
            if not self.document.contains(node):
                raise TargetVanished(target.label)
            target.path = self.document.path_of(node)
            target.context = self.driver.node_context(node)
            target.markup = self.document.serialize(node)
            self.ledger.baseline(node, self.document.serialize)
            ctx.targets.append(target)
        ctx.current = None

    def _commit(self, ctx: RequestContext) -> CompositeTransaction:
        """Apply every node's final script. No awaits: nothing can interleave."""
        for target in ctx.targets:
            if not self.document.contains(target.node):
                ctx.current = target
                raise TargetVanished(target.label)

        composite = CompositeTransaction()
        try:
            for target in ctx.targets:
                ctx.current = target
                code = target.resolution.code.strip()
                if not code:
                    raise ScriptRejected("no changes generated")
                validation = validate_script(code)
                if not validation.valid:
                    raise ScriptRejected(validation.error)
                # An earlier node's script may have removed this one
                if not self.document.contains(target.node):
                    raise TargetVanished(target.label)
                target.script = validation.sanitized
                composite.add(self._execute(target.node, validation.sanitized))
        except BaseException:
            composite.undo()
            raise
        return composite

    def _execute(self, node: etree._Element, script: str) -> Transaction:
        recorder = MutationRecorder(node)
        try:
            outcome = self.runner.run(recorder.element, script)
        except BaseException:
            recorder.undo()
            raise
        if not outcome.success:
            recorder.undo()
            raise ScriptFailed(outcome.error or "script failed")
        return recorder.transaction

    def _record(self, ctx: RequestContext, transaction: CompositeTransaction, exchanges: list[Message]) -> DiffArtifact:
        self.ledger.append_prompt(ctx.request.prompt)
        self.ledger.extend_conversation(exchanges)
        for target in ctx.targets:
            self.ledger.mark_introduced(target.node)
        self.ledger.push(
            LedgerEntry(
                request_id=ctx.request_id,
                prompt=ctx.request.prompt,
                nodes=[t.node for t in ctx.targets],
                labels=[t.label for t in ctx.targets],
                scripts=[t.script for t in ctx.targets],
                transaction=transaction,
            )
        )
        return build_artifact(ctx, self.ledger, self.document)

    def _deliver(self, artifact: DiffArtifact) -> None:
        if self.deliver is None:
            return
        try:
            self.deliver(artifact)
        except Exception as e:
            # The edit is committed; a failed hand-off doesn't undo it
            logger.warning("Delivery of %s failed: %s", artifact.request_id, e)

    # -- redo ---------------------------------------------------------------

    def replay(self, entry: LedgerEntry) -> CompositeTransaction:
        """Re-validate and re-execute an entry's scripts. Raises ReplayError, leaving the tree unchanged."""
        composite = CompositeTransaction()
        try:
            for node, label, script in zip(entry.nodes, entry.labels, entry.scripts):
                if not self.document.contains(node):
                    raise TargetVanished(label)
                validation = validate_script(script)
                if not validation.valid:
                    raise ScriptRejected(validation.error)
                composite.add(self._execute(node, validation.sanitized))
        except EditError as e:
            composite.undo()
            raise ReplayError(f"Could not redo {entry.request_id}: {e}") from e
        except BaseException:
            composite.undo()
            raise
        return composite
