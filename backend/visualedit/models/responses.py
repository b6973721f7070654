"""API response models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    generator_backend: str = ""
    healthy: bool = True


class DocumentResponse(BaseModel):
    document_id: str
    kind: str
    markup: str
    can_undo: bool = False
    can_redo: bool = False
    prompts: list[str] = Field(default_factory=list)


class HistoryResponse(BaseModel):
    document_id: str
    markup: str
    can_undo: bool
    can_redo: bool
    request_id: str | None = None


class CancelResponse(BaseModel):
    cancelled: bool
