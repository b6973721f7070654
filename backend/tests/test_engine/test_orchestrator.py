"""Tests for the request orchestrator: sequential resolution, atomic commit, single terminal event."""

from __future__ import annotations

import asyncio

import pytest

from visualedit.engine.config import EngineConfig
from visualedit.engine.context import EditRequest
from visualedit.engine.ledger import SessionLedger
from visualedit.engine.orchestrator import APPLYING_CHANGES, RequestOrchestrator
from visualedit.engine.sandbox import PythonSandbox
from tests.conftest import BLOCK, ScriptedGenerator, collect, iterate

FAST = EngineConfig(progress_interval=0.01)


def _run(doc, replies, nodes, prompt="colour it", ledger=None, deliver=None):
    ledger = ledger or SessionLedger()
    generator = ScriptedGenerator(replies)
    orchestrator = RequestOrchestrator(doc, generator, ledger, config=FAST, deliver=deliver)
    events = collect(orchestrator.run(EditRequest(prompt=prompt, nodes=nodes)))
    return events, generator, ledger


class _Halt(BaseException):
    pass


class _FailingRunner:
    """Sandbox that mutates as usual, then raises ``error`` on call number ``fail_on``."""

    def __init__(self, fail_on=None, error=None):
        self.sandbox = PythonSandbox()
        self.fail_on = fail_on
        self.error = error
        self.calls = 0

    def run(self, handle, code):
        self.calls += 1
        result = self.sandbox.run(handle, code)
        if self.calls == self.fail_on:
            raise self.error or _Halt("halted")
        return result


def _circles(doc):
    return doc.select("//svg:circle")


def _assert_single_terminal(events, kind):
    terminal = [e for e in events if e.type != "status"]
    assert len(terminal) == 1
    assert events[-1].type == kind
    return events[-1]


# ---------------------------------------------------------------------------
# Successful requests
# ---------------------------------------------------------------------------

class TestCommit:
    def test_single_node(self, card_doc):
        (button,) = card_doc.select("//button")
        events, _, ledger = _run(card_doc, ["el.classes.add('active')"], [button])

        done = _assert_single_terminal(events, "done")
        assert done.content.startswith("Completed in ")
        assert any(e.content == APPLYING_CHANGES for e in events)
        assert button.get("class") == "btn primary active"

        node = done.artifact.nodes[0]
        assert node.label == "button#save.btn.primary"
        assert "active" in node.after
        assert "active" not in node.before
        assert node.script == "el.classes.add('active')"
        assert node.diff.startswith("--- a/button#save.btn.primary")
        assert done.artifact.prompts == ["colour it"]

        assert ledger.prompts == ["colour it"]
        assert [m.role for m in ledger.conversation] == ["user", "assistant"]
        assert ledger.can_undo
        assert ledger.introduced(button)

    def test_three_nodes_one_undo(self, smiley_doc):
        before = smiley_doc.serialize()
        face, left, right = _circles(smiley_doc)
        events, _, ledger = _run(
            smiley_doc,
            ["el.set('fill', 'yellow')", "el.set('fill', 'black')", "el.set('fill', 'black')"],
            [face, left, right],
        )
        _assert_single_terminal(events, "done")
        assert [c.get("fill") for c in (face, left, right)] == ["yellow", "black", "black"]
        assert len(ledger.undo_stack) == 1

        ledger.undo()
        assert smiley_doc.serialize() == before

    def test_later_nodes_see_earlier_exchanges(self, smiley_doc):
        _, left, right = _circles(smiley_doc)
        _, generator, _ = _run(smiley_doc, ["el.set('r', '2')", "el.set('r', '2')"], [left, right])
        second_call = generator.calls[1]
        assert [m.role for m in second_call] == ["user", "assistant", "user"]
        assert second_call[1].content == "el.set('r', '2')"

    def test_iteration_then_commit(self, card_doc):
        before = card_doc.serialize()
        (title,) = card_doc.select("//h2")
        events, _, _ = _run(
            card_doc,
            [iterate("return len(el.text)"), "el.text = el.text.upper()"],
            [title],
        )
        _assert_single_terminal(events, "done")
        assert title.text == "HELLO"
        assert card_doc.serialize() != before

    def test_commit_after_speculative_self_removal(self, card_doc):
        (item,) = card_doc.select("//li[2]")
        events, _, _ = _run(card_doc, [iterate("el.remove()"), iterate("return 1"), "el.text = 'TWO'"], [item])
        _assert_single_terminal(events, "done")
        assert "<li>TWO</li>" in card_doc.serialize()

    def test_duplicate_targets_resolved_once(self, card_doc):
        (button,) = card_doc.select("//button")
        events, generator, _ = _run(card_doc, ["el.set('title', 'x')"], [button, button])
        _assert_single_terminal(events, "done")
        assert len(generator.calls) == 1
        assert len(events[-1].artifact.nodes) == 1

    def test_removing_the_target_reports_removed(self, card_doc):
        (item,) = card_doc.select("//li[1]")
        events, _, _ = _run(card_doc, ["el.remove()"], [item])
        done = _assert_single_terminal(events, "done")
        assert done.artifact.nodes[0].after is None
        assert "one" not in card_doc.serialize()

    def test_delivery_receives_artifact(self, card_doc):
        delivered = []
        (button,) = card_doc.select("//button")
        events, _, _ = _run(card_doc, ["el.text = 'Store'"], [button], deliver=delivered.append)
        assert delivered == [events[-1].artifact]

    def test_delivery_failure_is_not_fatal(self, card_doc):
        def _broken(artifact):
            raise OSError("clipboard unavailable")

        (button,) = card_doc.select("//button")
        events, _, ledger = _run(card_doc, ["el.text = 'Store'"], [button], deliver=_broken)
        _assert_single_terminal(events, "done")
        assert ledger.can_undo


# ---------------------------------------------------------------------------
# All-or-nothing
# ---------------------------------------------------------------------------

class TestAtomicity:
    def test_failing_third_script_rolls_back_all(self, smiley_doc):
        before = smiley_doc.serialize()
        events, _, ledger = _run(
            smiley_doc,
            ["el.set('fill', 'red')", "el.set('fill', 'blue')", "el.set('fill', 'green')\nraise ValueError('boom')"],
            _circles(smiley_doc),
        )
        error = _assert_single_terminal(events, "error")
        assert error.content == "Failed to edit circle: boom"
        assert smiley_doc.serialize() == before
        assert not ledger.can_undo
        assert ledger.prompts == []
        assert ledger.conversation == []

    def test_unsafe_final_script_rolls_back_all(self, smiley_doc):
        before = smiley_doc.serialize()
        face, left, _ = _circles(smiley_doc)
        events, _, ledger = _run(smiley_doc, ["el.set('fill', 'red')", "import os"], [face, left])
        error = _assert_single_terminal(events, "error")
        assert "Potentially unsafe code detected" in error.content
        assert smiley_doc.serialize() == before
        assert not ledger.can_undo

    def test_node_removed_by_earlier_script(self, smiley_doc):
        before = smiley_doc.serialize()
        _, left, right = _circles(smiley_doc)
        events, _, _ = _run(smiley_doc, ["el.next_sibling.remove()", "el.set('fill', 'red')"], [left, right])
        error = _assert_single_terminal(events, "error")
        assert error.content == "Failed to edit circle: element circle is no longer in the document"
        assert smiley_doc.serialize() == before

    def test_empty_script(self, card_doc):
        (button,) = card_doc.select("//button")
        events, _, _ = _run(card_doc, ["   "], [button])
        error = _assert_single_terminal(events, "error")
        assert error.content == "Failed to edit button#save.btn.primary: no changes generated"

    def test_runner_crash_rolls_back_all(self, smiley_doc):
        before = smiley_doc.serialize()
        ledger = SessionLedger()
        runner = _FailingRunner(fail_on=2, error=RuntimeError("runner crashed"))
        orchestrator = RequestOrchestrator(
            smiley_doc, ScriptedGenerator(["el.set('fill', 'red')"] * 3), ledger, runner=runner, config=FAST
        )
        events = collect(orchestrator.run(EditRequest(prompt="p", nodes=_circles(smiley_doc))))
        error = _assert_single_terminal(events, "error")
        assert error.content == "Failed to edit circle: runner crashed"
        assert smiley_doc.serialize() == before
        assert not ledger.can_undo

    def test_base_exception_during_redo_rolls_back(self, smiley_doc):
        ledger = SessionLedger()
        runner = _FailingRunner()
        orchestrator = RequestOrchestrator(
            smiley_doc, ScriptedGenerator(["el.set('fill', 'red')"] * 3), ledger, runner=runner, config=FAST
        )
        collect(orchestrator.run(EditRequest(prompt="p", nodes=_circles(smiley_doc))))
        ledger.undo()
        undone = smiley_doc.serialize()

        runner.fail_on = runner.calls + 2
        with pytest.raises(_Halt):
            ledger.redo(orchestrator.replay)
        assert smiley_doc.serialize() == undone
        assert ledger.can_redo and not ledger.can_undo

    def test_generator_failure_on_second_node(self, smiley_doc):
        before = smiley_doc.serialize()
        face, left, _ = _circles(smiley_doc)
        events, _, ledger = _run(smiley_doc, ["el.set('fill', 'red')", RuntimeError("rate limited")], [face, left])
        error = _assert_single_terminal(events, "error")
        assert "rate limited" in error.content
        assert smiley_doc.serialize() == before
        assert ledger.conversation == []


# ---------------------------------------------------------------------------
# Rejected before any exchange
# ---------------------------------------------------------------------------

class TestPreparation:
    def test_no_targets(self, card_doc):
        events, generator, _ = _run(card_doc, [], [])
        error = _assert_single_terminal(events, "error")
        assert error.content == "Failed to edit: no target elements"
        assert generator.calls == []

    def test_detached_target(self, card_doc):
        (item,) = card_doc.select("//li[2]")
        item.getparent().remove(item)
        events, generator, _ = _run(card_doc, [], [item])
        error = _assert_single_terminal(events, "error")
        assert error.content == "Failed to edit li: element li is no longer in the document"
        assert generator.calls == []

    def test_baseline_captured_at_first_touch(self, card_doc):
        (button,) = card_doc.select("//button")
        original = card_doc.serialize(button)
        ledger = SessionLedger()
        _run(card_doc, ["el.text = 'One'"], [button], ledger=ledger)
        events, _, _ = _run(card_doc, ["el.text = 'Two'"], [button], ledger=ledger)
        node = events[-1].artifact.nodes[0]
        assert node.before == original
        assert ">Two<" in node.after
        assert events[-1].artifact.prompts == ["colour it", "colour it"]


def test_cancel_mid_request_leaves_tree_untouched(smiley_doc):
    before = smiley_doc.serialize()
    face, left, _ = _circles(smiley_doc)
    ledger = SessionLedger()
    orchestrator = RequestOrchestrator(
        smiley_doc, ScriptedGenerator(["el.set('fill', 'red')", BLOCK]), ledger, config=FAST
    )

    async def _go():
        cancel = asyncio.Event()
        events = []
        async for event in orchestrator.run(EditRequest(prompt="p", nodes=[face, left]), cancel):
            events.append(event)
            # second node's exchange has started
            if len(orchestrator.driver.generator.calls) == 2 and event.type == "status":
                cancel.set()
        return events

    events = asyncio.run(_go())
    error = _assert_single_terminal(events, "error")
    assert error.content == "Failed to edit circle: Request cancelled"
    assert smiley_doc.serialize() == before
    assert not ledger.can_undo
