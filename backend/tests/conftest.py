"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json

import pytest

from visualedit.dom.document import Document
from visualedit.models.conversation import Message


# Sample SVGs (lucide icons)

SMILEY_SVG = '''<svg xmlns="http://www.w3.org/2000/svg" width="24" height="24" viewBox="0 0 24 24" fill="none" stroke="currentColor" stroke-width="2" stroke-linecap="round" stroke-linejoin="round">
  <circle cx="12" cy="12" r="10"/>
  <circle cx="8" cy="9" r="1"/>
  <circle cx="16" cy="9" r="1"/>
  <path d="M8 14s1.5 2 4 2 4-2 4-2"/>
</svg>'''

HOME_SVG = '''<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" width="24" height="24" viewBox="0 0 24 24" fill="none" stroke="currentColor" stroke-width="2" stroke-linecap="round" stroke-linejoin="round">
  <path d="M15 21v-8a1 1 0 0 0-1-1h-4a1 1 0 0 0-1 1v8"/>
  <path d="M3 10a2 2 0 0 1 .709-1.528l7-5.999a2 2 0 0 1 2.582 0l7 5.999A2 2 0 0 1 21 10v9a2 2 0 0 1-2 2H5a2 2 0 0 1-2-2z"/>
</svg>'''

BAR_CHART_SVG = '''<svg xmlns="http://www.w3.org/2000/svg" width="24" height="24" viewBox="0 0 24 24" fill="none" stroke="currentColor" stroke-width="2" stroke-linecap="round" stroke-linejoin="round">
  <line x1="18" x2="18" y1="20" y2="10"/>
  <line x1="12" x2="12" y1="20" y2="4"/>
  <line x1="6" x2="6" y1="20" y2="14"/>
</svg>'''

# Sample HTML fragments

CARD_HTML = (
    '<div id="card" class="card" style="color: red; padding: 4px">'
    '<h2 class="title">Hello</h2>'
    '<p>Some <b>bold</b> text</p>'
    '<ul id="list"><li>one</li><li>two</li><li>three</li></ul>'
    '<button id="save" class="btn primary" data-user-id="7">Save</button>'
    '</div>'
)

PAGE_HTML = (
    '<html><head><title>t</title></head><body>'
    '<main class="layout"><section id="hero">'
    '<div class="row"><button id="go"><svg viewBox="0 0 24 24"><path d="M1 1L2 2"></path></svg>Go</button></div>'
    '</section></main>'
    '</body></html>'
)


# ---------------------------------------------------------------------------
# Scripted generator
# ---------------------------------------------------------------------------

# Reply that never arrives (until the exchange is cancelled)
BLOCK = object()


class ScriptedGenerator:
    """Fake ScriptGenerator replaying canned replies in order and recording every call."""

    def __init__(self, replies: list | None = None) -> None:
        self.replies = list(replies or [])
        self.calls: list[list[Message]] = []

    async def generate(self, messages: list[Message], cancel: asyncio.Event | None = None) -> str:
        self.calls.append(list(messages))
        if not self.replies:
            raise AssertionError("ScriptedGenerator ran out of replies")
        reply = self.replies.pop(0)
        if reply is BLOCK:
            await asyncio.Event().wait()
        if isinstance(reply, Exception):
            raise reply
        return reply


def iterate(code: str, reason: str = "check the result") -> str:
    return json.dumps({"iterate": True, "code": code, "reason": reason})


def collect(events) -> list:
    """Drain an async iterator of events on a fresh loop."""

    async def _drain():
        return [event async for event in events]

    return asyncio.run(_drain())


@pytest.fixture
def card_doc() -> Document:
    return Document.from_markup(CARD_HTML, "html")


@pytest.fixture
def smiley_doc() -> Document:
    return Document.from_markup(SMILEY_SVG, "svg")
