"""Script execution boundary — run a validated script against a recording handle."""

from __future__ import annotations

import builtins
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from visualedit.dom.recorder import ElementHandle
from visualedit.engine.validator import SCRIPT_FUNCTION, compile_script

logger = logging.getLogger(__name__)

# Builtins visible to edit scripts: no import machinery, no I/O, no reflection
SAFE_BUILTINS = (
    "abs", "all", "any", "bool", "dict", "divmod", "enumerate", "filter", "float",
    "format", "frozenset", "int", "isinstance", "len", "list", "map", "max", "min",
    "next", "print", "range", "repr", "reversed", "round", "set", "sorted", "str",
    "sum", "tuple", "zip", "True", "False", "None",
    "Exception", "ValueError", "TypeError", "KeyError", "IndexError", "AttributeError",
)


@dataclass
class ExecutionResult:
    success: bool
    result: str | None = None
    error: str | None = None


class ScriptRunner(Protocol):
    def run(self, handle: ElementHandle, code: str) -> ExecutionResult: ...


def _quiet_print(*args: Any, **kwargs: Any) -> None:
    logger.debug("script output: %s", " ".join(str(a) for a in args))


class PythonSandbox:
    """Runs script bodies as ``_edit(el)`` with a restricted builtins namespace.

    Exceptions raised by the script are reported in the result, not raised;
    undoing whatever the script did before it failed is the caller's job.
    """

    def __init__(self, extra_globals: dict[str, Any] | None = None) -> None:
        self._builtins = {name: getattr(builtins, name) for name in SAFE_BUILTINS}
        self._builtins["print"] = _quiet_print
        self._extra = dict(extra_globals or {})

    def run(self, handle: ElementHandle, code: str) -> ExecutionResult:
        try:
            compiled = compile_script(code)
        except SyntaxError as e:
            return ExecutionResult(False, error=f"Invalid Python syntax: {e.msg}")

        namespace: dict[str, Any] = {"__builtins__": dict(self._builtins), **self._extra}
        try:
            exec(compiled, namespace)
            value = namespace[SCRIPT_FUNCTION](handle)
        except (KeyboardInterrupt, SystemExit):
            raise
        except BaseException as e:
            logger.debug("Script raised %s: %s", type(e).__name__, e)
            return ExecutionResult(False, error=str(e) or type(e).__name__)

        return ExecutionResult(True, result=None if value is None else str(value))
