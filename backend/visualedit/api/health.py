"""Health check + meta endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from visualedit.dependencies import Workspace, get_settings, get_workspace
from visualedit.models.responses import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(settings=Depends(get_settings), workspace: Workspace = Depends(get_workspace)) -> HealthResponse:
    healthy = True
    if settings.generator_backend == "http":
        from visualedit.llm.http import HttpScriptGenerator

        try:
            generator = workspace.generator
        except ValueError:
            generator = None
        healthy = isinstance(generator, HttpScriptGenerator) and await generator.healthy()
    elif settings.generator_backend == "anthropic":
        healthy = bool(settings.anthropic_api_key)

    return HealthResponse(
        status="ok",
        version="0.1.0",
        generator_backend=settings.generator_backend,
        healthy=healthy,
    )


@router.get("/prompts")
async def prompts() -> dict[str, str]:
    from visualedit.llm.prompts import get_all_templates

    return get_all_templates()
