"""API request models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class CreateDocumentRequest(BaseModel):
    markup: str = Field(..., description="HTML or SVG markup of the live document")
    kind: Literal["html", "svg"] = Field(default="html", description="How to parse the markup")


class EditRequestBody(BaseModel):
    prompt: str = Field(..., min_length=1, description="Modification request in natural language")
    targets: list[str] = Field(..., min_length=1, description="XPath selectors of the target nodes, in order")
