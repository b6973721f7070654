"""Generator response protocol — final scripts vs. iterate-directives."""

from __future__ import annotations

import json
import re
from typing import Literal, Union

from pydantic import BaseModel, Field, ValidationError


class FinalScript(BaseModel):
    kind: Literal["final"] = "final"
    code: str


class IterateDirective(BaseModel):
    kind: Literal["iterate"] = "iterate"
    code: str
    reason: str = ""


AgentResponse = Union[FinalScript, IterateDirective]


class _Directive(BaseModel):
    code: str
    iterate: bool = False
    reason: str = Field(default="")


_FENCE_RE = re.compile(r"^```[\w-]*[ \t]*\n?(.*?)\n?```$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Remove one markdown code fence wrapping the whole text."""
    match = _FENCE_RE.match(text.strip())
    return match.group(1).strip() if match else text.strip()


def parse_agent_response(text: str) -> AgentResponse:
    """Classify a generator reply.

    A self-contained JSON object with a ``code`` field is a directive
    (``"iterate": true`` asks to see the result first). Anything else,
    including malformed JSON, is a final script.
    """
    trimmed = strip_code_fence(text)
    if trimmed.startswith("{") and trimmed.endswith("}"):
        try:
            payload = json.loads(trimmed)
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict) and "code" in payload:
            try:
                directive = _Directive.model_validate(payload)
            except ValidationError:
                directive = None
            if directive is not None:
                if directive.iterate:
                    return IterateDirective(code=directive.code, reason=directive.reason)
                return FinalScript(code=directive.code)
    return FinalScript(code=trimmed)
