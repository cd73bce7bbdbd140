"""
Base interfaces and dataclasses for compiler toolchains.

The pipeline depends on a toolchain only through :class:`Toolchain`:

* :meth:`Toolchain.compile` turns merged source text into a
  :class:`CompiledArtifact` or a list of diagnostics whose offsets are
  expressed in the merged text.  It never runs user code.
* :meth:`Toolchain.launch` starts an artifact in a fresh execution context
  and returns a :class:`RunHandle` the sandbox polls against its deadlines.
* :meth:`Toolchain.complete` and :meth:`Toolchain.inspect` answer editor
  queries at a cursor position without executing anything.

Any implementation honouring these contracts can be substituted, which is
how the sandbox is tested against a fake toolchain and a virtual clock.
"""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


class CompilationMode(str, enum.Enum):
    SCRIPT = "script"
    PROGRAM = "program"


ERROR = "error"
WARNING = "warning"


@dataclass(frozen=True)
class ToolchainDiagnostic:
    """Compiler diagnostic with a ``[start, end)`` span in merged coordinates.

    A diagnostic without ``start`` concerns the compilation unit as a whole
    (a missing entry point, for instance) and has no location of its own.
    """

    severity: str
    id: str
    message: str
    start: Optional[int] = None
    end: Optional[int] = None


@dataclass(frozen=True)
class CompiledArtifact:
    """Opaque result of a successful compilation.

    ``code`` is the serialized code object; it is only meaningful to the
    toolchain that produced it.
    """

    mode: CompilationMode
    code: bytes
    filename: str
    entry_point: Optional[str] = None


@dataclass
class CompilationResult:
    artifact: Optional[CompiledArtifact]
    diagnostics: List[ToolchainDiagnostic] = field(default_factory=list)

    @property
    def errors(self) -> List[ToolchainDiagnostic]:
        return [d for d in self.diagnostics if d.severity == ERROR]

    @property
    def succeeded(self) -> bool:
        return self.artifact is not None and not self.errors


@dataclass(frozen=True)
class HostOutcome:
    """What the execution host reported after running user code."""

    exception: Optional[str] = None
    return_value: Optional[str] = None


@dataclass(frozen=True)
class CompletionCandidate:
    label: str
    kind: str
    insert_text: Optional[str] = None
    documentation: Optional[str] = None


@dataclass(frozen=True)
class Introspection:
    name: str
    kind: str
    signature: Optional[str] = None
    documentation: Optional[str] = None


class RunHandle(abc.ABC):
    """A launched artifact.

    Handles never block: the sandbox decides how long to wait by polling
    them against its clock.
    """

    @property
    @abc.abstractmethod
    def started(self) -> bool:
        """``True`` once setup is done and user code has begun running."""
        raise NotImplementedError

    @abc.abstractmethod
    def poll(self) -> Optional[int]:
        """Exit status, or ``None`` while still running."""
        raise NotImplementedError

    @abc.abstractmethod
    def kill(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def output(self) -> str:
        """Output captured so far."""
        raise NotImplementedError

    @abc.abstractmethod
    def outcome(self) -> Optional[HostOutcome]:
        """The host's report, once it has been received."""
        raise NotImplementedError

    def close(self) -> None:
        """Release resources held by the handle."""


class Toolchain(abc.ABC):
    """Compiler, launcher and symbol resolver for one language."""

    @abc.abstractmethod
    def compile(self, source: str, mode: CompilationMode) -> CompilationResult:
        raise NotImplementedError

    @abc.abstractmethod
    def launch(self, artifact: CompiledArtifact, run_dir: Path) -> RunHandle:
        """Start ``artifact`` with ``run_dir`` as its working directory."""
        raise NotImplementedError

    @abc.abstractmethod
    def complete(self, source: str, position: int) -> List[CompletionCandidate]:
        raise NotImplementedError

    def inspect(self, source: str, position: int) -> Optional[Introspection]:
        return None
