"""
Toolchain for Python source.

Compilation happens in the service process with the interpreter's own
parser and compiler.  The resulting code object is marshalled into the run
directory together with a small manifest, and a fresh interpreter running
:mod:`tryexec.toolchain.host` executes it.  Because the artifact is
marshalled, the child interpreter must be the same Python version as the
service; by default it is ``sys.executable``.
"""

from __future__ import annotations

import ast
import contextlib
import json
import marshal
import re
import sys
import threading
import uuid
import warnings
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from . import symbols
from .base import (
    ERROR,
    WARNING,
    CompilationMode,
    CompilationResult,
    CompiledArtifact,
    CompletionCandidate,
    Introspection,
    RunHandle,
    Toolchain,
    ToolchainDiagnostic,
)
from .lines import LineIndex
from .modes import MODES
from .process import ProcessRunHandle

FILENAME_PREFIX = "<workspace-"
HOST_PATH = Path(__file__).with_name("host.py")

SYNTAX_ERROR = "PY1001"
INDENTATION_ERROR = "PY1002"
TAB_ERROR = "PY1003"
SYNTAX_WARNING = "PY2001"
OTHER_WARNING = "PY2000"


# Warnings are global interpreter state shared by concurrent compilations.  One
# hook routes each warning to the compilation whose unique filename raised it.
_collectors: Dict[str, List[warnings.WarningMessage]] = {}
_collectors_lock = threading.Lock()
_passthrough = warnings.showwarning
_ALWAYS = ("always", re.escape(FILENAME_PREFIX))


def _route_warning(message, category, filename, lineno, file=None, line=None):
    with _collectors_lock:
        collector = _collectors.get(filename)
        if collector is not None:
            collector.append(warnings.WarningMessage(message, category, filename, lineno, file, line))
            return
    _passthrough(message, category, filename, lineno, file, line)


def _install_hook() -> None:
    global _passthrough
    if warnings.showwarning is not _route_warning:
        _passthrough = warnings.showwarning
        warnings.showwarning = _route_warning
    # Kept in front so that "ignore" or "error" filters never hide compiler warnings.
    first = warnings.filters[0] if warnings.filters else None
    if not (first and first[0] == _ALWAYS[0] and first[3] is not None and first[3].pattern == _ALWAYS[1]):
        warnings.filterwarnings(_ALWAYS[0], module=_ALWAYS[1])


@contextlib.contextmanager
def collect_warnings(filename: str) -> Iterator[List[warnings.WarningMessage]]:
    """Collect the warnings raised while compiling ``filename``."""
    caught: List[warnings.WarningMessage] = []
    with _collectors_lock:
        _install_hook()
        _collectors[filename] = caught
    try:
        yield caught
    finally:
        with _collectors_lock:
            del _collectors[filename]


def syntax_diagnostic(exc: SyntaxError, lines: LineIndex) -> ToolchainDiagnostic:
    if isinstance(exc, TabError):
        code = TAB_ERROR
    elif isinstance(exc, IndentationError):
        code = INDENTATION_ERROR
    else:
        code = SYNTAX_ERROR
    lineno = exc.lineno or 1
    # SyntaxError offsets are 1-based character columns.
    start = lines.offset(lineno, (exc.offset or 1) - 1)
    end = start
    end_lineno = getattr(exc, "end_lineno", None)
    end_offset = getattr(exc, "end_offset", None)
    if end_lineno and end_offset and end_offset > 0:
        end = max(lines.offset(end_lineno, end_offset - 1), start)
    return ToolchainDiagnostic(ERROR, code, exc.msg or str(exc), start, end)


def warning_diagnostic(caught: warnings.WarningMessage, lines: LineIndex) -> ToolchainDiagnostic:
    code = SYNTAX_WARNING if issubclass(caught.category, SyntaxWarning) else OTHER_WARNING
    start = lines.offset(caught.lineno, 0)
    end = start + len(lines.line_text(caught.lineno))
    return ToolchainDiagnostic(WARNING, code, str(caught.message), start, end)


class PythonToolchain(Toolchain):
    """Compile with CPython, run with a child interpreter."""

    def __init__(self, python: Optional[str] = None, max_output_chars: int = 100_000) -> None:
        self.python = python or sys.executable
        self.max_output_chars = max_output_chars

    def compile(self, source: str, mode: CompilationMode) -> CompilationResult:
        strategy = MODES[mode]
        lines = LineIndex(source)
        diagnostics: List[ToolchainDiagnostic] = []
        code = None
        filename = f"{FILENAME_PREFIX}{uuid.uuid4().hex[:12]}>"
        with collect_warnings(filename) as caught:
            try:
                tree = ast.parse(source, filename=filename)
                diagnostics.extend(strategy.check(tree, lines))
                if not diagnostics:
                    code = compile(
                        strategy.transform(tree),
                        filename,
                        "exec",
                        flags=strategy.flags,
                        dont_inherit=True,
                    )
            except SyntaxError as exc:
                diagnostics.append(syntax_diagnostic(exc, lines))
        diagnostics.extend(warning_diagnostic(w, lines) for w in caught)

        if code is None:
            return CompilationResult(None, diagnostics)
        artifact = CompiledArtifact(
            mode=mode,
            code=marshal.dumps(code),
            filename=filename,
            entry_point=strategy.entry_point,
        )
        return CompilationResult(artifact, diagnostics)

    def launch(self, artifact: CompiledArtifact, run_dir: Path) -> RunHandle:
        (run_dir / ".program.bin").write_bytes(artifact.code)
        manifest = {
            "mode": artifact.mode.value,
            "filename": artifact.filename,
            "entry_point": artifact.entry_point,
            "module_name": MODES[artifact.mode].module_name,
        }
        (run_dir / ".manifest.json").write_text(json.dumps(manifest), encoding="utf-8")
        cmd = [self.python, "-I", "-u", str(HOST_PATH), str(run_dir)]
        return ProcessRunHandle(cmd, run_dir, self.max_output_chars)

    def complete(self, source: str, position: int) -> List[CompletionCandidate]:
        return symbols.complete(source, position)

    def inspect(self, source: str, position: int) -> Optional[Introspection]:
        return symbols.introspect(source, position)
