"""Tests for the HTTP-backed script generator using httpx.MockTransport."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from visualedit.engine.errors import GeneratorError
from visualedit.llm.http import HttpScriptGenerator
from visualedit.models.conversation import Message

ENDPOINT = "http://generator.test/api/visual-edit"
HEALTH = "http://generator.test/api/health"


def _generator(handler) -> HttpScriptGenerator:
    return HttpScriptGenerator(ENDPOINT, HEALTH, timeout=5.0, transport=httpx.MockTransport(handler))


def _generate(generator: HttpScriptGenerator, messages: list[Message]) -> str:
    async def _go():
        async with generator:
            return await generator.generate(messages)

    return asyncio.run(_go())


def _healthy(generator: HttpScriptGenerator) -> bool:
    async def _go():
        async with generator:
            return await generator.healthy()

    return asyncio.run(_go())


class TestGenerate:
    def test_posts_messages_and_returns_text(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, text="el.set('fill', 'red')")

        reply = _generate(_generator(handler), [Message.user("hi"), Message.assistant("x = 1")])
        assert reply == "el.set('fill', 'red')"
        assert seen["url"] == ENDPOINT
        assert seen["body"] == {
            "messages": [
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": "x = 1"},
            ]
        }

    def test_json_error_field(self):
        def handler(request):
            return httpx.Response(500, json={"error": "model overloaded"})

        with pytest.raises(GeneratorError, match="^model overloaded$"):
            _generate(_generator(handler), [Message.user("hi")])

    def test_plain_text_error(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        with pytest.raises(GeneratorError, match="^Bad Gateway$"):
            _generate(_generator(handler), [Message.user("hi")])

    def test_empty_error_body(self):
        def handler(request):
            return httpx.Response(503)

        with pytest.raises(GeneratorError, match="API error: 503"):
            _generate(_generator(handler), [Message.user("hi")])

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GeneratorError, match="connection refused"):
            _generate(_generator(handler), [Message.user("hi")])

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(GeneratorError, match="timed out after 5s"):
            _generate(_generator(handler), [Message.user("hi")])

    def test_endpoint_required(self):
        with pytest.raises(ValueError):
            HttpScriptGenerator("")


class TestHealth:
    def test_healthy(self):
        def handler(request):
            assert str(request.url) == HEALTH
            return httpx.Response(200, json={"healthy": True})

        assert _healthy(_generator(handler)) is True

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json={"healthy": False}),
            httpx.Response(200, json={"healthy": "yes"}),
            httpx.Response(200, text="ok"),
            httpx.Response(500, json={"healthy": True}),
        ],
    )
    def test_unhealthy(self, response):
        assert _healthy(_generator(lambda request: response)) is False

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        assert _healthy(_generator(handler)) is False

    def test_no_healthcheck_endpoint(self):
        generator = HttpScriptGenerator(ENDPOINT, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        assert _healthy(generator) is False
