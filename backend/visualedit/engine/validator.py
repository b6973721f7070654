"""Script validator — sanitize, syntax-check and denylist generated edit scripts.

Pure: nothing here executes the script. A script is the body of
``def _edit(el): ...``; ``compile_script`` returns the compiled module that
defines that function, which is what the sandbox runs.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass
from types import CodeType

SCRIPT_FUNCTION = "_edit"
SCRIPT_PARAMETER = "el"
SCRIPT_FILENAME = "<edit-script>"

# Typographic substitutions LLMs and chat UIs introduce into code
_TRANSLATION = str.maketrans(
    {
        **dict.fromkeys("\u2018\u2019\u2032\u2035", "'"),
        **dict.fromkeys("\u201c\u201d\u2033\u2036", "\""),
        **dict.fromkeys("\u2014\u2013\u2212", "-"),
        "\u2026": "...",
        **dict.fromkeys("\u00a0\u202f\u205f", " "),
        **{chr(cp): " " for cp in range(0x2000, 0x200B)},
        **dict.fromkeys("\u200b\u200c\u200d\ufeff"),
    }
)

# (label, pattern) pairs checked against the sanitized text
UNSAFE_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("dynamic code evaluation", re.compile(r"\beval\s*\(")),
    ("dynamic code evaluation", re.compile(r"\bexec\s*\(")),
    ("dynamic code evaluation", re.compile(r"\bcompile\s*\(")),
    ("indirect function construction", re.compile(r"\bFunctionType\b")),
    ("indirect function construction", re.compile(r"\bLambdaType\b")),
    ("indirect function construction", re.compile(r"\bCodeType\b")),
    ("indirect function construction", re.compile(r"__import__")),
    ("indirect function construction", re.compile(r"__builtins__")),
    ("indirect function construction", re.compile(r"__globals__")),
    ("indirect function construction", re.compile(r"__code__")),
    ("indirect function construction", re.compile(r"__subclasses__")),
    ("cookie access", re.compile(r"\.cookies?\b")),
    ("cookie access", re.compile(r"\bhttp\.cookies\b")),
    ("cookie access", re.compile(r"\bhttp\.cookiejar\b")),
    ("cookie access", re.compile(r"\bSimpleCookie\b")),
    ("outbound network call", re.compile(r"\burlopen\s*\(")),
    ("outbound network call", re.compile(r"\burllib\b")),
    ("outbound network call", re.compile(r"\brequests\.")),
    ("outbound network call", re.compile(r"\bhttpx\b")),
    ("outbound network call", re.compile(r"\baiohttp\b")),
    ("outbound network call", re.compile(r"\bsocket\b")),
    # str.format field names reach attributes without an attribute node
    ("private attribute access", re.compile(r"\.__\w+__")),
    ("private attribute access", re.compile(r"\{[^}]*\._")),
    ("frame introspection", re.compile(r"\{[^}]*\.(?:(?:gi|ag|cr|f|tb)_\w+|mro)\b")),
]


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    sanitized: str
    error: str | None = None


def sanitize_script(text: str) -> str:
    """Replace typographic quotes, dashes and spaces with their ASCII forms."""
    return text.translate(_TRANSLATION)


# Generator, coroutine, frame and traceback attributes lead back to real globals
_INTROSPECTION_RE = re.compile(r"^(?:(?:gi|ag|cr|f|tb)_\w+|mro)$")


class _BodyChecker(ast.NodeVisitor):
    """Find constructs the sandbox forbids, in the body and in every nested scope."""

    def __init__(self) -> None:
        self.problem: tuple[str, str] | None = None

    def _flag(self, label: str, pattern: str) -> None:
        if self.problem is None:
            self.problem = (label, pattern)

    def visit_Import(self, node: ast.Import) -> None:
        self._flag("import statement", f"import {node.names[0].name}")

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        self._flag("import statement", f"from {node.module or '.'} import")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_"):
            self._flag("private attribute access", f".{node.attr}")
        elif _INTROSPECTION_RE.match(node.attr):
            self._flag("frame introspection", f".{node.attr}")
        self.generic_visit(node)

    def visit_Yield(self, node: ast.AST) -> None:
        self._flag("generator script", "yield")
        self.generic_visit(node)

    visit_YieldFrom = visit_Yield

    def visit_Await(self, node: ast.Await) -> None:
        self._flag("generator script", "await")
        self.generic_visit(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._flag("generator script", f"async def {node.name}")
        self.generic_visit(node)


def _script_module(code: str) -> ast.Module:
    body = ast.parse(code, filename=SCRIPT_FILENAME, mode="exec").body
    module = ast.parse(f"def {SCRIPT_FUNCTION}({SCRIPT_PARAMETER}):\n    pass\n", filename=SCRIPT_FILENAME)
    if body:
        module.body[0].body = body
    return ast.fix_missing_locations(module)


def compile_script(code: str) -> CodeType:
    """Compile a script body into a module defining ``_edit(el)``. Raises SyntaxError."""
    return compile(_script_module(code), SCRIPT_FILENAME, "exec")


def _syntax_detail(e: SyntaxError) -> str:
    if e.lineno:
        return f"{e.msg} (line {e.lineno})"
    return e.msg or "invalid syntax"


def validate_script(text: str) -> ValidationResult:
    sanitized = sanitize_script(text)

    try:
        module = _script_module(sanitized)
        compile(module, SCRIPT_FILENAME, "exec")
    except (SyntaxError, ValueError) as e:
        detail = _syntax_detail(e) if isinstance(e, SyntaxError) else str(e)
        return ValidationResult(False, sanitized, f"Invalid Python syntax: {detail}")

    for label, pattern in UNSAFE_PATTERNS:
        if pattern.search(sanitized):
            return ValidationResult(False, sanitized, f"Potentially unsafe code detected: {label} ({pattern.pattern})")

    checker = _BodyChecker()
    for statement in module.body[0].body:
        checker.visit(statement)
    if checker.problem is not None:
        label, pattern = checker.problem
        return ValidationResult(False, sanitized, f"Potentially unsafe code detected: {label} ({pattern})")

    return ValidationResult(True, sanitized)
