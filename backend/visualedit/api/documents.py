"""Document endpoints — open a document, stream edits, cancel, undo, redo."""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from lxml import etree

from visualedit.dependencies import DocumentSlot, Workspace, get_workspace
from visualedit.engine.errors import ReplayError, RequestInProgress, RollbackError
from visualedit.models.events import AgentEvent
from visualedit.models.requests import CreateDocumentRequest, EditRequestBody
from visualedit.models.responses import CancelResponse, DocumentResponse, HistoryResponse

router = APIRouter(prefix="/documents")
logger = logging.getLogger(__name__)


def _slot(document_id: str, workspace: Workspace) -> DocumentSlot:
    try:
        return workspace.get(document_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown document {document_id}") from None


def _document_response(slot: DocumentSlot) -> DocumentResponse:
    editor = slot.editor
    return DocumentResponse(
        document_id=slot.id,
        kind=slot.document.kind,
        markup=slot.document.serialize(),
        can_undo=editor.can_undo,
        can_redo=editor.can_redo,
        prompts=list(editor.session.prompts) if editor.session else [],
    )


def _history_response(slot: DocumentSlot, request_id: str | None) -> HistoryResponse:
    return HistoryResponse(
        document_id=slot.id,
        markup=slot.document.serialize(),
        can_undo=slot.editor.can_undo,
        can_redo=slot.editor.can_redo,
        request_id=request_id,
    )


def _resolve_targets(slot: DocumentSlot, selectors: list[str]) -> list[etree._Element]:
    nodes: list[etree._Element] = []
    for selector in selectors:
        try:
            matched = slot.editor.select(selector)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        if not matched:
            raise HTTPException(status_code=400, detail=f"No element matches {selector!r}")
        nodes.extend(node for node in matched if all(node is not n for n in nodes))
    return nodes


@router.post("", response_model=DocumentResponse)
async def create_document(req: CreateDocumentRequest, workspace: Workspace = Depends(get_workspace)) -> DocumentResponse:
    try:
        slot = workspace.create(req.markup, req.kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _document_response(slot)


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(document_id: str, workspace: Workspace = Depends(get_workspace)) -> DocumentResponse:
    return _document_response(_slot(document_id, workspace))


@router.post("/{document_id}/edit")
async def edit_document(
    document_id: str,
    req: EditRequestBody,
    workspace: Workspace = Depends(get_workspace),
) -> StreamingResponse:
    slot = _slot(document_id, workspace)
    if slot.editor.busy:
        raise HTTPException(status_code=409, detail="An edit request is already running for this document")
    nodes = _resolve_targets(slot, req.targets)

    cancel = asyncio.Event()
    slot.cancel = cancel

    async def _events():
        try:
            async with aclosing(slot.editor.start_request(req.prompt, nodes, cancel)) as events:
                async for event in events:
                    yield event.to_sse()
        except RequestInProgress as e:
            yield AgentEvent.error(str(e)).to_sse()
        finally:
            if slot.cancel is cancel:
                slot.cancel = None

    return StreamingResponse(
        _events(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/{document_id}/cancel", response_model=CancelResponse)
async def cancel_edit(document_id: str, workspace: Workspace = Depends(get_workspace)) -> CancelResponse:
    slot = _slot(document_id, workspace)
    if slot.cancel is None or slot.cancel.is_set():
        return CancelResponse(cancelled=False)
    slot.cancel.set()
    logger.info("Cancel requested for %s", document_id)
    return CancelResponse(cancelled=True)


@router.post("/{document_id}/undo", response_model=HistoryResponse)
async def undo_edit(document_id: str, workspace: Workspace = Depends(get_workspace)) -> HistoryResponse:
    slot = _slot(document_id, workspace)
    try:
        entry = slot.editor.undo()
    except RequestInProgress as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except RollbackError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return _history_response(slot, entry.request_id if entry else None)


@router.post("/{document_id}/redo", response_model=HistoryResponse)
async def redo_edit(document_id: str, workspace: Workspace = Depends(get_workspace)) -> HistoryResponse:
    slot = _slot(document_id, workspace)
    try:
        entry = slot.editor.redo()
    except (ReplayError, RequestInProgress) as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _history_response(slot, entry.request_id if entry else None)


@router.delete("/{document_id}/session", response_model=DocumentResponse)
async def discard_session(document_id: str, workspace: Workspace = Depends(get_workspace)) -> DocumentResponse:
    slot = _slot(document_id, workspace)
    try:
        slot.editor.discard_session()
    except RequestInProgress as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _document_response(slot)
