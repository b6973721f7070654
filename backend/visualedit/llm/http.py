"""HTTP script generator — POSTs the conversation to a visual-edit endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from visualedit.engine.errors import GeneratorError
from visualedit.models.conversation import Message

logger = logging.getLogger(__name__)


class HttpScriptGenerator:
    """Generator backed by a remote service speaking ``{"messages": [...]}`` -> text.

    Non-2xx replies are turned into GeneratorError, using the body's ``error``
    field when the body is JSON.
    """

    def __init__(
        self,
        endpoint: str,
        healthcheck_endpoint: str = "",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("HttpScriptGenerator needs an endpoint (set GENERATOR_ENDPOINT)")
        self.endpoint = endpoint
        self.healthcheck_endpoint = healthcheck_endpoint
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Content-Type": "application/json"},
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpScriptGenerator":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def generate(self, messages: list[Message], cancel: asyncio.Event | None = None) -> str:
        payload = {"messages": [m.model_dump() for m in messages]}
        try:
            response = await self.client.post(self.endpoint, json=payload)
        except httpx.TimeoutException as err:
            raise GeneratorError(f"Generator timed out after {self.timeout:.0f}s") from err
        except httpx.HTTPError as err:
            raise GeneratorError(f"Generator request failed: {err}") from err

        if response.is_error:
            raise GeneratorError(_error_message(response))
        return response.text

    async def healthy(self) -> bool:
        """True when the healthcheck endpoint answers ``{"healthy": true}``."""
        if not self.healthcheck_endpoint:
            return False
        try:
            response = await self.client.get(self.healthcheck_endpoint, timeout=1.0)
        except httpx.HTTPError as err:
            logger.warning("Generator healthcheck failed: %s", err)
            return False
        if response.is_error:
            return False
        try:
            data = response.json()
        except json.JSONDecodeError:
            return False
        return isinstance(data, dict) and data.get("healthy") is True


def _error_message(response: httpx.Response) -> str:
    text = response.text or f"API error: {response.status_code}"
    try:
        data = response.json()
    except json.JSONDecodeError:
        return text
    error = data.get("error") if isinstance(data, dict) else None
    if not error:
        return text
    return error if isinstance(error, str) else json.dumps(error)
