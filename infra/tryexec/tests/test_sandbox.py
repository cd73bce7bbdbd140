"""
Tests for the execution sandbox.

The sandbox runs against a fake toolchain and a virtual clock, so every
timeout boundary below is reached by advancing virtual time rather than by
waiting.
"""

from __future__ import annotations

import pytest

from fakes import FakeToolchain
from tryexec.errors import InfrastructureTimeout, SandboxError, UserCodeTimeout
from tryexec.sandbox import ExecutionSandbox, RunBudget
from tryexec.toolchain.base import ERROR, WARNING, HostOutcome, ToolchainDiagnostic
from tryexec.workspace import Buffer, WorkspaceFile, Workspace


def make_sandbox(toolchain, clock):
    return ExecutionSandbox(
        toolchain,
        clock=clock,
        default_budget=RunBudget(1.0, 1.0),
        poll_interval=0.05,
    )


def test_successful_run_reports_output_and_return_value(clock, script_workspace):
    toolchain = FakeToolchain(
        clock,
        duration=0.2,
        output="hello!\n",
        outcome=HostOutcome(return_value="42"),
    )
    result = make_sandbox(toolchain, clock).run(script_workspace)

    assert result.succeeded
    assert result.output == "hello!\n"
    assert result.return_value == "42"
    assert result.exception is None
    assert toolchain.launched[0].closed
    assert not toolchain.launched[0].killed


def test_user_exception_is_a_failed_result(clock, script_workspace):
    toolchain = FakeToolchain(
        clock,
        output="partial\n",
        outcome=HostOutcome(exception="ZeroDivisionError: division by zero"),
    )
    result = make_sandbox(toolchain, clock).run(script_workspace)

    assert not result.succeeded
    assert result.exception == "ZeroDivisionError: division by zero"
    assert result.output == "partial\n"


def test_exit_without_report_uses_exit_status(clock, script_workspace):
    toolchain = FakeToolchain(clock, outcome=None, exit_code=3)
    result = make_sandbox(toolchain, clock).run(script_workspace)

    assert not result.succeeded
    assert result.exception == "Process exited with status 3"


def test_user_code_timeout_keeps_partial_output(clock, script_workspace):
    toolchain = FakeToolchain(clock, duration=30.0, output="before sleep\n")
    sandbox = make_sandbox(toolchain, clock)

    with pytest.raises(UserCodeTimeout) as excinfo:
        sandbox.run(script_workspace, RunBudget(1.0, 0.5))

    assert excinfo.value.output == "before sleep\n"
    assert excinfo.value.budget == 0.5
    assert toolchain.launched[0].killed
    assert toolchain.launched[0].closed


def test_slow_startup_is_an_infrastructure_timeout(clock, script_workspace):
    toolchain = FakeToolchain(clock, startup=2.0)
    sandbox = make_sandbox(toolchain, clock)

    with pytest.raises(InfrastructureTimeout):
        sandbox.run(script_workspace, RunBudget(0.5, 10.0))

    assert toolchain.launched[0].killed


def test_slow_compilation_is_an_infrastructure_timeout(clock, script_workspace):
    toolchain = FakeToolchain(clock, block_compile=True)
    sandbox = make_sandbox(toolchain, clock)
    try:
        with pytest.raises(InfrastructureTimeout):
            sandbox.run(script_workspace, RunBudget(0.5, 10.0))
    finally:
        toolchain.release()

    assert toolchain.launched == []


def test_same_request_maps_to_distinct_timeouts_under_different_budgets(clock, script_workspace):
    toolchain = FakeToolchain(clock, startup=0.5, duration=2.0)
    sandbox = make_sandbox(toolchain, clock)

    with pytest.raises(InfrastructureTimeout):
        sandbox.run(script_workspace, RunBudget(0.2, 10.0))
    with pytest.raises(UserCodeTimeout):
        sandbox.run(script_workspace, RunBudget(1.0, 1.0))
    assert sandbox.run(script_workspace, RunBudget(1.0, 10.0)).succeeded


def test_user_code_budget_starts_after_startup(clock, script_workspace):
    # Startup and user code each stay within their own budget, their sum does not.
    toolchain = FakeToolchain(clock, startup=0.8, duration=0.8)
    result = make_sandbox(toolchain, clock).run(script_workspace, RunBudget(1.0, 1.0))

    assert result.succeeded


def test_host_crash_before_start_is_a_sandbox_error(clock, script_workspace):
    toolchain = FakeToolchain(clock, crash=True, output="Fatal Python error")

    with pytest.raises(SandboxError):
        make_sandbox(toolchain, clock).run(script_workspace)

    assert toolchain.launched[0].closed


def test_compilation_failure_returns_formatted_diagnostics(clock):
    workspace = Workspace(workspace_type="script", buffers=(Buffer("main", "x = (1,\ny = 2"),))
    toolchain = FakeToolchain(
        clock,
        produce_artifact=False,
        diagnostics=[ToolchainDiagnostic(ERROR, "PY1001", "'(' was never closed", 4, 5)],
    )
    result = make_sandbox(toolchain, clock).run(workspace)

    assert not result.succeeded
    assert toolchain.launched == []
    assert [(d.id, d.start, d.end, d.buffer_id) for d in result.diagnostics] == [
        ("PY1001", 4, 5, "main")
    ]
    assert result.output == "main(1,5): error PY1001: '(' was never closed"


def test_missing_artifact_without_errors_is_reported(clock, script_workspace):
    toolchain = FakeToolchain(clock, produce_artifact=False)
    result = make_sandbox(toolchain, clock).run(script_workspace)

    assert not result.succeeded
    assert [d.id for d in result.diagnostics] == ["PY0000"]


def test_warnings_are_carried_on_success(clock, script_workspace):
    toolchain = FakeToolchain(
        clock,
        diagnostics=[ToolchainDiagnostic(WARNING, "PY2001", "invalid escape sequence", 0, 3)],
    )
    result = make_sandbox(toolchain, clock).run(script_workspace)

    assert result.succeeded
    assert [d.severity for d in result.diagnostics] == [WARNING]


def test_files_are_written_to_the_run_directory(clock):
    workspace = Workspace(
        workspace_type="script",
        buffers=(Buffer("", "print(open('data/input.txt').read())"),),
        files=(WorkspaceFile("data/input.txt", "payload"),),
    )
    toolchain = FakeToolchain(clock)
    make_sandbox(toolchain, clock).run(workspace)

    assert toolchain.run_dir_files == {"data/input.txt": "payload"}


def test_diagnose_compiles_without_launching(clock, script_workspace):
    toolchain = FakeToolchain(
        clock,
        diagnostics=[ToolchainDiagnostic(WARNING, "PY2001", "invalid escape sequence", 0, 5)],
    )
    diagnostics = make_sandbox(toolchain, clock).diagnose(script_workspace)

    assert [d.id for d in diagnostics] == ["PY2001"]
    assert toolchain.launched == []


def test_every_run_compiles_from_scratch(clock, script_workspace):
    toolchain = FakeToolchain(clock)
    sandbox = make_sandbox(toolchain, clock)
    sandbox.run(script_workspace)
    sandbox.run(script_workspace)

    assert len(toolchain.sources) == 2
    assert len(toolchain.launched) == 2
