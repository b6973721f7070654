"""Tests for the LangChain-backed generator and backend selection."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from visualedit.engine.errors import GeneratorError
from visualedit.llm.client import AnthropicScriptGenerator, create_generator
from visualedit.llm.http import HttpScriptGenerator
from visualedit.models.conversation import Message


class _FakeLLM:
    def __init__(self, content):
        self.content = content
        self.received = None

    async def ainvoke(self, messages):
        self.received = messages
        if isinstance(self.content, Exception):
            raise self.content
        return SimpleNamespace(content=self.content)


def _generator(content) -> tuple[AnthropicScriptGenerator, _FakeLLM]:
    generator = AnthropicScriptGenerator(api_key="sk-test", model="claude-test", max_tokens=100, timeout=5.0)
    fake = _FakeLLM(content)
    generator._llm = fake
    return generator, fake


class TestAnthropicGenerator:
    def test_message_mapping(self):
        generator, fake = _generator("el.text = 'x'")
        reply = asyncio.run(generator.generate([Message.user("hi"), Message.assistant("x = 1"), Message.user("again")]))
        assert reply == "el.text = 'x'"
        kinds = [type(m).__name__ for m in fake.received]
        assert kinds == ["SystemMessage", "HumanMessage", "AIMessage", "HumanMessage"]
        assert "def _edit(el):" in fake.received[0].content

    def test_content_blocks_joined(self):
        generator, _ = _generator([{"type": "text", "text": "el.set("}, {"type": "text", "text": "'a', 'b')"}])
        assert asyncio.run(generator.generate([Message.user("hi")])) == "el.set('a', 'b')"

    def test_failure_wrapped(self):
        generator, _ = _generator(RuntimeError("overloaded"))
        with pytest.raises(GeneratorError, match="overloaded"):
            asyncio.run(generator.generate([Message.user("hi")]))

    def test_missing_key(self):
        generator = AnthropicScriptGenerator(model="claude-test")
        generator.api_key = ""
        with pytest.raises(GeneratorError, match="ANTHROPIC_API_KEY"):
            asyncio.run(generator.generate([Message.user("hi")]))


class TestCreateGenerator:
    def test_anthropic(self):
        assert isinstance(create_generator("anthropic"), AnthropicScriptGenerator)

    def test_http(self, monkeypatch):
        from visualedit.config import settings

        monkeypatch.setattr(settings, "generator_endpoint", "http://localhost:9/edit")
        generator = create_generator("http")
        assert isinstance(generator, HttpScriptGenerator)
        assert generator.endpoint == "http://localhost:9/edit"

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_generator("carrier-pigeon")
