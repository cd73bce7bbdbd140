"""
Compiler toolchains for the run pipeline.

A toolchain compiles merged workspace source into an artifact (or
diagnostics), launches artifacts in a fresh execution context and answers
completion and introspection queries.  The pipeline only talks to the
``Toolchain`` interface from ``base.py``; ``PythonToolchain`` is the
implementation the service ships with.
"""

from .base import (
    CompilationMode,
    CompilationResult,
    CompiledArtifact,
    CompletionCandidate,
    HostOutcome,
    Introspection,
    RunHandle,
    Toolchain,
    ToolchainDiagnostic,
)
from .python_toolchain import PythonToolchain

__all__ = [
    "CompilationMode",
    "CompilationResult",
    "CompiledArtifact",
    "CompletionCandidate",
    "HostOutcome",
    "Introspection",
    "RunHandle",
    "Toolchain",
    "ToolchainDiagnostic",
    "PythonToolchain",
]
