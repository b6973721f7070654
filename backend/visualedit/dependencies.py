"""FastAPI dependency injection — settings and the in-memory document workspace."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from visualedit.config import settings
from visualedit.dom.document import Document, DocumentKind
from visualedit.engine.config import EngineConfig
from visualedit.engine.editor import VisualEditor
from visualedit.llm.client import ScriptGenerator, create_generator

logger = logging.getLogger(__name__)


@dataclass
class DocumentSlot:
    """A live document with its editor and the cancel signal of the running request."""

    id: str
    editor: VisualEditor
    cancel: asyncio.Event | None = field(default=None)

    @property
    def document(self) -> Document:
        return self.editor.document


class Workspace:
    """Documents being edited by this process. Nothing is persisted."""

    def __init__(
        self,
        generator_factory: Callable[[], ScriptGenerator] = create_generator,
        config: EngineConfig | None = None,
    ) -> None:
        self._generator_factory = generator_factory
        self._generator: ScriptGenerator | None = None
        self.config = config
        self._slots: dict[str, DocumentSlot] = {}

    @property
    def generator(self) -> ScriptGenerator:
        if self._generator is None:
            self._generator = self._generator_factory()
        return self._generator

    def create(self, markup: str, kind: DocumentKind = "html") -> DocumentSlot:
        """Parse ``markup`` into a new document. Raises ValueError on bad markup."""
        document = Document.from_markup(markup, kind)
        editor = VisualEditor(document, self.generator, config=self.config or EngineConfig.from_settings())
        slot = DocumentSlot(id=f"doc-{uuid.uuid4().hex[:12]}", editor=editor)
        self._slots[slot.id] = slot
        logger.info("Workspace: opened %s (%s)", slot.id, kind)
        return slot

    def get(self, document_id: str) -> DocumentSlot:
        return self._slots[document_id]

    def __contains__(self, document_id: str) -> bool:
        return document_id in self._slots

    def __len__(self) -> int:
        return len(self._slots)


_workspace: Workspace | None = None


def get_settings():
    return settings


def get_workspace() -> Workspace:
    global _workspace
    if _workspace is None:
        _workspace = Workspace()
    return _workspace
