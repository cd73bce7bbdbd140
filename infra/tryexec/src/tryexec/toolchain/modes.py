"""
Compilation modes of the Python toolchain.

``script`` accepts any sequence of statements, including top-level
``await``.  When the last statement is a bare expression its value is kept
as the run's return value, the way an interactive prompt echoes it.

``program`` expects a complete module: declarations only at module scope and
a ``main`` function the host calls once the module has been loaded.  A bare
statement such as ``print("hello!")`` is therefore rejected in program mode.
"""

from __future__ import annotations

import ast
import re
from typing import List, Optional

from .base import ERROR, CompilationMode, ToolchainDiagnostic
from .lines import LineIndex

RETURN_VALUE_NAME = "__return_value__"
ENTRY_POINT = "main"

MISSING_ENTRY_POINT = "PY5001"
STATEMENT_AT_PROGRAM_SCOPE = "PY5002"

_DEF_MAIN = re.compile(r"(?:async\s+)?def\s+" + ENTRY_POINT + r"\b")

_DECLARATIONS = (
    ast.Import,
    ast.ImportFrom,
    ast.FunctionDef,
    ast.AsyncFunctionDef,
    ast.ClassDef,
    ast.Assign,
    ast.AnnAssign,
    ast.If,
    ast.Try,
)

if hasattr(ast, "TryStar"):
    _DECLARATIONS += (ast.TryStar,)


def node_span(node: ast.AST, lines: LineIndex) -> ToolchainDiagnostic:
    start = lines.byte_offset(node.lineno, node.col_offset)
    end_lineno = getattr(node, "end_lineno", None) or node.lineno
    end_col = getattr(node, "end_col_offset", None)
    end = lines.byte_offset(end_lineno, end_col) if end_col is not None else start
    return ToolchainDiagnostic(ERROR, "", "", start, max(start, end))


def _error(code: str, message: str, span: Optional[ToolchainDiagnostic] = None) -> ToolchainDiagnostic:
    if span is None:
        return ToolchainDiagnostic(ERROR, code, message)
    return ToolchainDiagnostic(ERROR, code, message, span.start, span.end)


class ModeStrategy:
    """Checks and rewrites applied to a parsed module before compilation."""

    mode: CompilationMode
    flags = 0
    module_name = "__main__"
    entry_point: Optional[str] = None

    def check(self, tree: ast.Module, lines: LineIndex) -> List[ToolchainDiagnostic]:
        return []

    def transform(self, tree: ast.Module) -> ast.Module:
        return tree


class ScriptMode(ModeStrategy):
    mode = CompilationMode.SCRIPT
    flags = ast.PyCF_ALLOW_TOP_LEVEL_AWAIT

    def transform(self, tree: ast.Module) -> ast.Module:
        if tree.body and isinstance(tree.body[-1], ast.Expr):
            last = tree.body[-1]
            target = ast.Name(id=RETURN_VALUE_NAME, ctx=ast.Store())
            tree.body[-1] = ast.copy_location(ast.Assign(targets=[target], value=last.value), last)
            ast.fix_missing_locations(tree)
        return tree


class ProgramMode(ModeStrategy):
    mode = CompilationMode.PROGRAM
    module_name = "__program__"
    entry_point = ENTRY_POINT

    def check(self, tree: ast.Module, lines: LineIndex) -> List[ToolchainDiagnostic]:
        diagnostics = []
        for index, node in enumerate(tree.body):
            if isinstance(node, _DECLARATIONS) or (index == 0 and _is_docstring(node)):
                continue
            diagnostics.append(
                _error(
                    STATEMENT_AT_PROGRAM_SCOPE,
                    "Only declarations are allowed at program scope; move statements into main()",
                    node_span(node, lines),
                )
            )

        entries = [
            node
            for node in tree.body
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name == ENTRY_POINT
        ]
        if not entries:
            diagnostics.append(
                _error(
                    MISSING_ENTRY_POINT,
                    f"Program does not contain a '{ENTRY_POINT}' function suitable for an entry point",
                )
            )
        elif _required_arguments(entries[-1]):
            diagnostics.append(
                _error(
                    MISSING_ENTRY_POINT,
                    f"'{ENTRY_POINT}' must be callable without arguments to be used as an entry point",
                    _def_span(entries[-1], lines),
                )
            )
        return diagnostics


def _is_docstring(node: ast.stmt) -> bool:
    return (
        isinstance(node, ast.Expr)
        and isinstance(node.value, ast.Constant)
        and isinstance(node.value.value, str)
    )


def _required_arguments(node: ast.FunctionDef) -> int:
    args = node.args
    positional = len(args.posonlyargs) + len(args.args) - len(args.defaults)
    keyword_only = sum(1 for default in args.kw_defaults if default is None)
    return positional + keyword_only


def _def_span(node: ast.FunctionDef, lines: LineIndex) -> ToolchainDiagnostic:
    # Decorated functions report the ``def`` line, not the decorator.
    start = lines.byte_offset(node.lineno, node.col_offset)
    line = lines.line_text(node.lineno)
    column = start - lines.offset(node.lineno, 0)
    match = _DEF_MAIN.match(line, column)
    end = start + (match.end() - column if match else 0)
    return ToolchainDiagnostic(ERROR, "", "", start, end)


MODES = {
    CompilationMode.SCRIPT: ScriptMode(),
    CompilationMode.PROGRAM: ProgramMode(),
}
