"""
Compiler adapter.

Chooses the compilation mode from the workspace type and hands the merged
workspace text to the toolchain.  ``script`` compiles bare statements;
every other workspace type (``console`` and friends) is compiled as a
complete program that must provide an entry point.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .toolchain.base import (
    ERROR,
    CompilationMode,
    CompiledArtifact,
    Toolchain,
    ToolchainDiagnostic,
)
from .workspace import SCRIPT, Workspace

logger = logging.getLogger("tryexec.compiler")

NO_ARTIFACT = "PY0000"


def compilation_mode(workspace_type: str) -> CompilationMode:
    if workspace_type.strip().lower() == SCRIPT:
        return CompilationMode.SCRIPT
    return CompilationMode.PROGRAM


@dataclass
class CompilationOutcome:
    """Artifact or diagnostics, both in the toolchain's merged coordinates."""

    mode: CompilationMode
    artifact: Optional[CompiledArtifact]
    diagnostics: List[ToolchainDiagnostic] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.artifact is not None


class CompilerAdapter:
    """Compiles a workspace in the mode chosen by its type."""

    def __init__(self, toolchain: Toolchain) -> None:
        self.toolchain = toolchain

    def compile(self, workspace: Workspace) -> CompilationOutcome:
        mode = compilation_mode(workspace.workspace_type)
        result = self.toolchain.compile(workspace.merged.text, mode)
        diagnostics = list(result.diagnostics)

        if result.succeeded:
            return CompilationOutcome(mode, result.artifact, diagnostics)

        if not result.errors:
            # A toolchain that returns nothing to run must say why.
            diagnostics.append(
                ToolchainDiagnostic(ERROR, NO_ARTIFACT, "Compilation did not produce a runnable artifact")
            )
        logger.info(
            "Compilation failed in %s mode with %d diagnostic(s)", mode.value, len(diagnostics)
        )
        return CompilationOutcome(mode, None, diagnostics)
