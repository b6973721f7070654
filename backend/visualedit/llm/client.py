"""Script generators — LangChain ChatAnthropic wrapper and backend selection."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from visualedit.engine.errors import GeneratorError
from visualedit.llm.prompts import get_system_prompt
from visualedit.models.conversation import Message

logger = logging.getLogger(__name__)


class ScriptGenerator(Protocol):
    """Remote code-generation service: conversation in, reply text out.

    Implementations may watch ``cancel`` themselves; the iteration driver also
    abandons the call as soon as the event is set.
    """

    async def generate(self, messages: list[Message], cancel: asyncio.Event | None = None) -> str: ...


class AnthropicScriptGenerator:
    """Calls Claude through LangChain with the edit system prompt."""

    def __init__(
        self,
        api_key: str = "",
        model: str | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> None:
        from visualedit.config import settings

        self.api_key = api_key or settings.anthropic_api_key
        self.model = model or settings.model_edit
        self.max_tokens = max_tokens or settings.max_tokens
        self.timeout = timeout or settings.generator_timeout
        self._llm = None

    def _get_llm(self):
        if not self.api_key:
            raise GeneratorError("LLM not configured — set ANTHROPIC_API_KEY in .env")
        if self._llm is None:
            from langchain_anthropic import ChatAnthropic

            self._llm = ChatAnthropic(
                model=self.model,
                api_key=self.api_key,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        return self._llm

    async def generate(self, messages: list[Message], cancel: asyncio.Event | None = None) -> str:
        from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

        llm = self._get_llm()

        chat: list = [SystemMessage(content=get_system_prompt())]
        for msg in messages:
            if msg.role == "user":
                chat.append(HumanMessage(content=msg.content))
            elif msg.role == "assistant":
                chat.append(AIMessage(content=msg.content))

        logger.debug("Generator request: %d messages to %s", len(chat), self.model)
        try:
            response = await llm.ainvoke(chat)
        except Exception as e:
            raise GeneratorError(f"Generator request failed: {e}") from e

        content = response.content
        if isinstance(content, list):
            # Content blocks: keep the text ones
            content = "".join(block.get("text", "") for block in content if isinstance(block, dict))
        return str(content)


def create_generator(backend: str | None = None) -> ScriptGenerator:
    """Build the generator selected by ``settings.generator_backend``."""
    from visualedit.config import settings

    backend = backend or settings.generator_backend
    if backend == "http":
        from visualedit.llm.http import HttpScriptGenerator

        return HttpScriptGenerator(
            endpoint=settings.generator_endpoint,
            healthcheck_endpoint=settings.generator_healthcheck_endpoint,
            timeout=settings.generator_timeout,
        )
    if backend == "anthropic":
        return AnthropicScriptGenerator()
    raise ValueError(f"Unknown generator backend {backend!r} (expected 'anthropic' or 'http')")
