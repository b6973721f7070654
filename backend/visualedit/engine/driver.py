"""Iteration protocol driver — resolves one target node to a final script.

The generator may answer with a final script or with an iterate-directive
asking to see the effect of some code first. Directive code runs for real
against the node (speculative execution), the updated markup is fed back, and
every speculative change is reverted before ``resolve`` finishes, however it
finishes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass

from lxml import etree

from visualedit.dom.context import build_ancestor_context
from visualedit.dom.document import Document
from visualedit.dom.recorder import MutationRecorder
from visualedit.engine.config import EngineConfig
from visualedit.engine.context import NodeResolution, TargetState
from visualedit.engine.errors import (
    EditError,
    GeneratorError,
    MaxIterationsExceeded,
    RequestCancelled,
    RollbackError,
    TargetVanished,
)
from visualedit.engine.protocol import FinalScript, IterateDirective, parse_agent_response
from visualedit.engine.sandbox import PythonSandbox, ScriptRunner
from visualedit.engine.validator import validate_script
from visualedit.llm.client import ScriptGenerator
from visualedit.llm.prompts import build_iteration_message, build_user_message
from visualedit.models.conversation import Message

logger = logging.getLogger(__name__)

ContextBuilder = Callable[..., str]

GENERATING = "Generating…"
APPLYING = "Applying…"
REMOVED_PLACEHOLDER = "(element removed)"
REMOVED_BY_ITERATION = "element was removed by a previous iteration"


@dataclass
class GeneratorReply:
    """Final item of an exchange: the generator's raw reply text."""

    text: str


def progress_text(elapsed: float) -> str:
    return f"{GENERATING} {elapsed:.1f}s" if elapsed >= 0.1 else GENERATING


class IterationDriver:
    """Runs the generator exchange loop for one node at a time."""

    def __init__(
        self,
        generator: ScriptGenerator,
        document: Document,
        runner: ScriptRunner | None = None,
        config: EngineConfig | None = None,
        context_builder: ContextBuilder = build_ancestor_context,
    ) -> None:
        self.generator = generator
        self.document = document
        self.runner = runner or PythonSandbox()
        self.config = config or EngineConfig()
        self.context_builder = context_builder

    def node_context(self, node: etree._Element) -> str:
        return self.context_builder(node, levels=self.config.ancestor_levels)

    async def exchange(
        self,
        messages: list[Message],
        cancel: asyncio.Event,
    ) -> AsyncIterator[str | GeneratorReply]:
        """Send ``messages``, yielding progress ticks until the reply arrives.

        The last item is a GeneratorReply. Setting ``cancel`` abandons the call
        and raises RequestCancelled.
        """
        if cancel.is_set():
            raise RequestCancelled()

        start = time.monotonic()
        call = asyncio.ensure_future(self.generator.generate(list(messages), cancel))
        cancelled = asyncio.ensure_future(cancel.wait())
        try:
            while not call.done():
                yield progress_text(time.monotonic() - start)
                await asyncio.wait(
                    {call, cancelled},
                    timeout=self.config.progress_interval,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if cancel.is_set():
                    raise RequestCancelled()
        finally:
            for pending in (call, cancelled):
                if not pending.done():
                    pending.cancel()

        try:
            text = call.result()
        except EditError:
            raise
        except asyncio.CancelledError as e:
            raise RequestCancelled() from e
        except Exception as e:
            raise GeneratorError(str(e) or type(e).__name__) from e

        logger.debug("Generator replied in %.1fs (%d chars)", time.monotonic() - start, len(text))
        yield GeneratorReply(text)

    async def resolve(
        self,
        target: TargetState,
        prompt: str,
        history: list[Message],
        cancel: asyncio.Event,
        first_message: bool = True,
    ) -> AsyncIterator[str | NodeResolution]:
        """Drive the exchange for one node. Yields progress text, then a NodeResolution."""
        exchange = [Message.user(build_user_message(prompt, target.context, first_message))]
        speculative: list[MutationRecorder] = []
        iteration = 0
        resolution: NodeResolution | None = None

        try:
            while iteration <= self.config.max_iterations:
                reply: GeneratorReply | None = None
                async with aclosing(self.exchange([*history, *exchange], cancel)) as steps:
                    async for step in steps:
                        if isinstance(step, GeneratorReply):
                            reply = step
                        else:
                            yield step

                exchange.append(Message.assistant(reply.text))
                response = parse_agent_response(reply.text)
                if isinstance(response, FinalScript):
                    resolution = NodeResolution(code=response.code, messages=exchange, iterations=iteration)
                    break

                yield APPLYING
                feedback = self._speculate(target, response, speculative)
                exchange.append(Message.user(feedback))
                iteration += 1

            if resolution is None:
                raise MaxIterationsExceeded(self.config.max_iterations)
        finally:
            self._revert(speculative)

        yield resolution

    def _speculate(
        self,
        target: TargetState,
        directive: IterateDirective,
        speculative: list[MutationRecorder],
    ) -> str:
        """Run directive code for real and describe the outcome for the generator."""
        node = target.node
        if not self.document.contains(node):
            if not speculative:
                raise TargetVanished(target.label)
            # Detached by an earlier iteration; reverted once the node resolves
            logger.debug("Iteration code for %s skipped: element removed by a previous iteration", target.label)
            return build_iteration_message(REMOVED_PLACEHOLDER, f"Error: {REMOVED_BY_ITERATION}")

        validation = validate_script(directive.code)
        if not validation.valid:
            logger.debug("Iteration code for %s rejected: %s", target.label, validation.error)
            return build_iteration_message(self.node_context(node), f"Error: {validation.error}")

        recorder = MutationRecorder(node)
        speculative.append(recorder)
        outcome = self.runner.run(recorder.element, validation.sanitized)
        if outcome.success:
            result = outcome.result
        else:
            recorder.undo()
            result = f"Error: {outcome.error}"
        logger.debug("Speculative run on %s: %d mutations (%s)", target.label, len(recorder.transaction), directive.reason)

        markup = self.node_context(node) if self.document.contains(node) else REMOVED_PLACEHOLDER
        return build_iteration_message(markup, result)

    def _revert(self, speculative: list[MutationRecorder]) -> None:
        failures: list[RollbackError] = []
        while speculative:
            recorder = speculative.pop()
            try:
                recorder.undo()
            except RollbackError as e:
                failures.append(e)
        if failures:
            logger.warning("Speculative revert left %d failed inverse(s)", len(failures))
            raise failures[0]
