"""Fake toolchain for testing the run pipeline.

The fakes follow a :class:`~tryexec.clock.VirtualClock`: a fake run starts
``startup`` virtual seconds after launch and finishes ``duration`` virtual
seconds after that.  Nothing really runs, so timeout boundaries can be
tested without waiting.

Usage:
    clock = VirtualClock()
    toolchain = FakeToolchain(clock, duration=2.0, output="partial")
    sandbox = ExecutionSandbox(toolchain, clock=clock)
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, List, Optional

from tryexec.clock import VirtualClock
from tryexec.toolchain.base import (
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


class FakeRunHandle(RunHandle):
    """Run handle whose lifecycle is a function of virtual time.

    Attributes:
        crash: the host exits with status 1 before reporting ``ready``
        killed: set once the sandbox killed the run
    """

    def __init__(
        self,
        clock: VirtualClock,
        startup: float = 0.0,
        duration: float = 0.0,
        output: str = "",
        outcome: Optional[HostOutcome] = HostOutcome(),
        exit_code: int = 0,
        crash: bool = False,
    ) -> None:
        self.clock = clock
        self.launched_at = clock.now()
        self.startup = startup
        self.duration = duration
        self._output = output
        self._outcome = outcome
        self.exit_code = exit_code
        self.crash = crash
        self.killed = False
        self.closed = False

    @property
    def started(self) -> bool:
        if self.crash or self.killed:
            return False
        return self.clock.now() >= self.launched_at + self.startup

    def poll(self) -> Optional[int]:
        if self.killed:
            return -9
        now = self.clock.now()
        if self.crash and now >= self.launched_at + self.startup:
            return 1
        if now >= self.launched_at + self.startup + self.duration:
            return self.exit_code
        return None

    def kill(self) -> None:
        self.killed = True

    def output(self) -> str:
        return self._output

    def outcome(self) -> Optional[HostOutcome]:
        if self.killed or self.poll() is None:
            return None
        return self._outcome

    def close(self) -> None:
        self.closed = True


class FakeToolchain(Toolchain):
    """In-memory toolchain that records what the pipeline asked of it.

    Attributes:
        sources: merged source text of every compilation, in order
        launched: run handles created by :meth:`launch`
        run_dir_files: files found in the run directory at launch time
    """

    def __init__(
        self,
        clock: VirtualClock,
        diagnostics: Optional[List[ToolchainDiagnostic]] = None,
        produce_artifact: bool = True,
        block_compile: bool = False,
        completions: Optional[List[CompletionCandidate]] = None,
        **handle_options,
    ) -> None:
        self.clock = clock
        self.diagnostics = diagnostics or []
        self.produce_artifact = produce_artifact
        self.completions = completions or []
        self.handle_options = handle_options
        self.sources: List[str] = []
        self.modes: List[CompilationMode] = []
        self.positions: List[int] = []
        self.launched: List[FakeRunHandle] = []
        self.run_dir_files: Dict[str, str] = {}
        self._unblocked = threading.Event()
        if not block_compile:
            self._unblocked.set()

    def release(self) -> None:
        """Let a blocked compilation finish."""
        self._unblocked.set()

    def compile(self, source: str, mode: CompilationMode) -> CompilationResult:
        self.sources.append(source)
        self.modes.append(mode)
        self._unblocked.wait(timeout=10)
        artifact = None
        if self.produce_artifact:
            artifact = CompiledArtifact(mode=mode, code=b"", filename="<fake>")
        return CompilationResult(artifact, list(self.diagnostics))

    def launch(self, artifact: CompiledArtifact, run_dir: Path) -> RunHandle:
        for path in run_dir.rglob("*"):
            if path.is_file():
                self.run_dir_files[path.relative_to(run_dir).as_posix()] = path.read_text()
        handle = FakeRunHandle(self.clock, **self.handle_options)
        self.launched.append(handle)
        return handle

    def complete(self, source: str, position: int) -> List[CompletionCandidate]:
        self.sources.append(source)
        self.positions.append(position)
        return list(self.completions)

    def inspect(self, source: str, position: int) -> Optional[Introspection]:
        self.sources.append(source)
        self.positions.append(position)
        return Introspection("fake", "function", "()", "Fake symbol.")
