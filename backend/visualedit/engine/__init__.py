"""Visual edit engine: iteration protocol, atomic commit, undo/redo."""

from visualedit.engine.config import EngineConfig
from visualedit.engine.errors import (
    EditError,
    GeneratorError,
    MaxIterationsExceeded,
    ReplayError,
    RequestCancelled,
    RequestInProgress,
    RollbackError,
    ScriptFailed,
    ScriptRejected,
    TargetVanished,
)

__all__ = [
    "EngineConfig",
    "EditError",
    "GeneratorError",
    "MaxIterationsExceeded",
    "ReplayError",
    "RequestCancelled",
    "RequestInProgress",
    "RollbackError",
    "ScriptFailed",
    "ScriptRejected",
    "TargetVanished",
]
