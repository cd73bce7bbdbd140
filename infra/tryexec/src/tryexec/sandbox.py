"""
Execution sandbox.

A run walks through the states::

    PENDING -> COMPILING -> RUNNING -> SUCCEEDED | FAILED
                   |            |
                   |            +-> USER_CODE_TIMED_OUT
                   +-> INFRASTRUCTURE_TIMED_OUT

Two independent deadlines bound a run.  The infrastructure deadline starts
before compilation and covers compilation plus execution-host startup; its
expiry is the service's fault and raises :class:`InfrastructureTimeout`.
The user-code deadline starts once the host reports that user code is
running; its expiry is the program's fault and raises
:class:`UserCodeTimeout`.  Both deadlines are measured with the injected
:class:`~tryexec.clock.Clock`, never with wall-clock sleeps.

Every run compiles from scratch, gets its own temporary run directory and a
fresh execution host; nothing is shared between runs.
"""

from __future__ import annotations

import concurrent.futures
import enum
import logging
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .clock import Clock, Deadline, SystemClock
from .compiler import CompilationOutcome, CompilerAdapter
from .diagnostics import Diagnostic, DiagnosticMapper
from .errors import InfrastructureTimeout, SandboxError, UserCodeTimeout
from .toolchain.base import RunHandle, Toolchain
from .workspace import Workspace

logger = logging.getLogger("tryexec.sandbox")


class RunState(str, enum.Enum):
    PENDING = "pending"
    COMPILING = "compiling"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    INFRASTRUCTURE_TIMED_OUT = "infrastructure_timed_out"
    USER_CODE_TIMED_OUT = "user_code_timed_out"


@dataclass(frozen=True)
class RunBudget:
    """Time budgets of one run, in seconds."""

    infrastructure_timeout: float
    user_code_timeout: float

    @classmethod
    def from_milliseconds(cls, infrastructure_ms: int, user_code_ms: int) -> "RunBudget":
        return cls(infrastructure_ms / 1000.0, user_code_ms / 1000.0)


@dataclass
class RunResult:
    """Outcome of a run that did not time out.

    Attributes
    ----------
    succeeded: bool
        ``True`` when the program compiled and ran without raising.
    output: str
        Captured standard output and error, or the formatted diagnostics
        when compilation failed.
    exception: str, optional
        ``"Type: message"`` of an exception raised by the program.
    return_value: str, optional
        ``repr`` of the value of a trailing expression (script mode) or of
        ``main()``'s return value (program mode).
    diagnostics: list of Diagnostic
        Compiler errors and warnings in the caller's coordinates.
    """

    succeeded: bool
    output: str = ""
    exception: Optional[str] = None
    return_value: Optional[str] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)


class ExecutionSandbox:
    """Compiles and runs workspaces under a pair of deadlines."""

    def __init__(
        self,
        toolchain: Toolchain,
        clock: Optional[Clock] = None,
        work_dir: Optional[Path] = None,
        default_budget: RunBudget = RunBudget(5.0, 15.0),
        poll_interval: float = 0.02,
    ) -> None:
        self.toolchain = toolchain
        self.compiler = CompilerAdapter(toolchain)
        self.clock = clock or SystemClock()
        self.work_dir = work_dir
        self.default_budget = default_budget
        self.poll_interval = poll_interval

    def run(self, workspace: Workspace, budget: Optional[RunBudget] = None) -> RunResult:
        return SandboxRun(self, workspace, budget or self.default_budget).execute()

    def diagnose(self, workspace: Workspace, budget: Optional[RunBudget] = None) -> List[Diagnostic]:
        """Compile without running and return the mapped diagnostics."""
        run = SandboxRun(self, workspace, budget or self.default_budget)
        outcome = run.compile(Deadline(self.clock, run.budget.infrastructure_timeout))
        return DiagnosticMapper(workspace).map_all(outcome.diagnostics)


class SandboxRun:
    """One pass through the run state machine."""

    def __init__(self, sandbox: ExecutionSandbox, workspace: Workspace, budget: RunBudget) -> None:
        self.sandbox = sandbox
        self.workspace = workspace
        self.budget = budget
        self.run_id = uuid.uuid4().hex[:12]
        self.state = RunState.PENDING

    def _transition(self, state: RunState) -> None:
        logger.debug("Run %s: %s -> %s", self.run_id, self.state.value, state.value)
        self.state = state

    def execute(self) -> RunResult:
        infrastructure = Deadline(self.sandbox.clock, self.budget.infrastructure_timeout)
        outcome = self.compile(infrastructure)

        mapper = DiagnosticMapper(self.workspace)
        diagnostics = mapper.map_all(outcome.diagnostics)
        if not outcome.succeeded:
            self._transition(RunState.FAILED)
            return RunResult(
                succeeded=False,
                output="\n".join(mapper.format(d) for d in diagnostics),
                diagnostics=diagnostics,
            )

        work_dir = str(self.sandbox.work_dir) if self.sandbox.work_dir else None
        with tempfile.TemporaryDirectory(prefix="run-", dir=work_dir) as tmpdir:
            run_dir = Path(tmpdir)
            self._write_files(run_dir)
            handle = self.sandbox.toolchain.launch(outcome.artifact, run_dir)
            try:
                self._await_start(handle, infrastructure)
                return self._supervise(handle, diagnostics)
            finally:
                handle.close()

    def compile(self, infrastructure: Deadline) -> CompilationOutcome:
        self._transition(RunState.COMPILING)
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="tryexec-compile"
        )
        try:
            future = executor.submit(self.sandbox.compiler.compile, self.workspace)
        finally:
            # An overrunning compilation is abandoned, not waited for.
            executor.shutdown(wait=False)

        if not infrastructure.wait_for(future, self.sandbox.poll_interval):
            future.cancel()
            self._transition(RunState.INFRASTRUCTURE_TIMED_OUT)
            logger.warning(
                "Run %s: compilation exceeded the infrastructure budget of %.3fs",
                self.run_id,
                self.budget.infrastructure_timeout,
            )
            raise InfrastructureTimeout(
                f"Compilation did not finish within {self.budget.infrastructure_timeout:g}s",
                self.budget.infrastructure_timeout,
            )
        return future.result()

    def _write_files(self, run_dir: Path) -> None:
        for item in self.workspace.files:
            path = run_dir / item.name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(item.text, encoding="utf-8")

    def _await_start(self, handle: RunHandle, infrastructure: Deadline) -> None:
        ready = infrastructure.poll(
            lambda: handle.started or handle.poll() is not None,
            self.sandbox.poll_interval,
        )
        if not ready:
            handle.kill()
            self._transition(RunState.INFRASTRUCTURE_TIMED_OUT)
            logger.warning(
                "Run %s: execution host did not start within %.3fs",
                self.run_id,
                self.budget.infrastructure_timeout,
            )
            raise InfrastructureTimeout(
                f"Execution host did not start within {self.budget.infrastructure_timeout:g}s",
                self.budget.infrastructure_timeout,
                handle.output(),
            )
        if not handle.started:
            self._transition(RunState.FAILED)
            raise SandboxError(
                f"Execution host exited with status {handle.poll()} before starting: "
                f"{handle.output()[-500:]}"
            )

    def _supervise(self, handle: RunHandle, diagnostics: List[Diagnostic]) -> RunResult:
        self._transition(RunState.RUNNING)
        user_code = Deadline(self.sandbox.clock, self.budget.user_code_timeout)
        finished = user_code.poll(lambda: handle.poll() is not None, self.sandbox.poll_interval)
        if not finished:
            handle.kill()
            output = handle.output()
            self._transition(RunState.USER_CODE_TIMED_OUT)
            logger.warning(
                "Run %s: user code exceeded its budget of %.3fs",
                self.run_id,
                self.budget.user_code_timeout,
            )
            raise UserCodeTimeout(
                f"Program did not finish within {self.budget.user_code_timeout:g}s",
                self.budget.user_code_timeout,
                output,
            )

        exit_code = handle.poll()
        report = handle.outcome()
        if report is not None:
            exception = report.exception
            return_value = report.return_value
        else:
            exception = None if exit_code == 0 else f"Process exited with status {exit_code}"
            return_value = None

        succeeded = exception is None
        self._transition(RunState.SUCCEEDED if succeeded else RunState.FAILED)
        logger.info(
            "Run %s finished: succeeded=%s, exit_code=%s, elapsed=%.3fs",
            self.run_id,
            succeeded,
            exit_code,
            user_code.elapsed(),
        )
        return RunResult(
            succeeded=succeeded,
            output=handle.output(),
            exception=exception,
            return_value=return_value,
            diagnostics=diagnostics,
        )
