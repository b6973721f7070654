"""Edit engine error taxonomy.

Every failure that ends a request is an EditError; the orchestrator turns it
into a single error event and leaves the tree as it was before the request.
"""

from __future__ import annotations


class EditError(Exception):
    """Base class for failures that abort an edit request."""


class GeneratorError(EditError):
    """Transport or service failure while talking to the script generator."""


class RequestCancelled(EditError):
    """The caller set the cancellation signal while a generator exchange was in flight."""

    def __init__(self, message: str = "Request cancelled") -> None:
        super().__init__(message)


class MaxIterationsExceeded(EditError):
    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Max iterations ({max_iterations}) reached without final code")
        self.max_iterations = max_iterations


class ScriptRejected(EditError):
    """A final script failed validation (syntax or denylisted construct)."""


class ScriptFailed(EditError):
    """A final script raised while being applied."""


class TargetVanished(EditError):
    """A target node is no longer attached to the document."""

    def __init__(self, label: str) -> None:
        super().__init__(f"element {label} is no longer in the document")
        self.label = label


class ReplayError(EditError):
    """Redo could not re-apply a previously committed request."""


class RollbackError(EditError):
    """One or more inverse operations failed while undoing a transaction."""


class RequestInProgress(EditError):
    """A second request was started while one is still running on the session."""
